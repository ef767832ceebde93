"""Tests for the command line config loading."""

import json
import os

from scripts.run_crawl import expand_env_vars, load_config, load_env_file, parse_env_lines


def test_expand_env_vars(monkeypatch):
    monkeypatch.setenv("DRIVE_QUERY", "trashed = false")
    data = {"params": {"query": "${DRIVE_QUERY}", "spaces": "$UNSET_DRIVE_VAR"}, "n": 3}
    assert expand_env_vars(data) == {
        "params": {"query": "trashed = false", "spaces": "$UNSET_DRIVE_VAR"},
        "n": 3,
    }


def test_key_file_overrides_credential_params(tmp_path, private_key_pem):
    config_path = tmp_path / "crawl.json"
    config_path.write_text(
        json.dumps({"params": {"client_email": "old@example.com", "number_of_threads": "2"}})
    )
    key_path = tmp_path / "key.json"
    key_path.write_text(
        json.dumps(
            {
                "type": "service_account",
                "private_key": private_key_pem,
                "private_key_id": "kid",
                "client_email": "new@example.com",
            }
        )
    )

    config = load_config(config_path, key_path)

    assert config.crawl.params["client_email"] == "new@example.com"
    assert config.crawl.params["private_key_id"] == "kid"
    assert "type" not in config.crawl.params
    assert config.crawl.number_of_threads == 2


def test_parse_env_lines():
    lines = [
        "# comment",
        "",
        "export DRIVE_KEY_ID=abc",
        "DRIVE_EMAIL = 'crawler@example.com'",
        'DRIVE_QUERY="name contains \'report\'"',
        "not an assignment",
    ]
    assert parse_env_lines(lines) == {
        "DRIVE_KEY_ID": "abc",
        "DRIVE_EMAIL": "crawler@example.com",
        "DRIVE_QUERY": "name contains 'report'",
    }


def test_load_env_file_keeps_existing_values(tmp_path, monkeypatch):
    env_file = tmp_path / "crawl.env"
    env_file.write_text("DRIVE_TEST_A=from-file\nDRIVE_TEST_B=from-file\n")
    monkeypatch.setenv("DRIVE_TEST_A", "from-env")
    monkeypatch.delenv("DRIVE_TEST_B", raising=False)

    added = load_env_file(str(env_file))

    assert added == ["DRIVE_TEST_B"]
    assert os.environ["DRIVE_TEST_A"] == "from-env"
    assert os.environ["DRIVE_TEST_B"] == "from-file"
    monkeypatch.delenv("DRIVE_TEST_B")
