"""Translation of Drive sharing entries into role tokens."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .interfaces import RoleMapper
from .models import FileDescriptor, Permission, User

logger = logging.getLogger(__name__)

GUEST_USER = "guest"
USER_KIND = "user"
GROUP_KIND = "group"


class DefaultRoleMapper(RoleMapper):
    """Prefix-encodes principals: ``1<user>`` for users, ``2<group>`` for groups."""

    def __init__(self, user_prefix: str = "1", group_prefix: str = "2") -> None:
        self._prefixes = {USER_KIND: user_prefix, GROUP_KIND: group_prefix}

    def map_permission(self, kind: str, principal: Optional[str]) -> Optional[str]:
        if principal is None or kind not in self._prefixes:
            return None
        return f"{self._prefixes[kind]}{principal}"


class PermissionResolver:
    def __init__(self, role_mapper: RoleMapper) -> None:
        self._role_mapper = role_mapper

    def get_permission(self, permission_type: Optional[str], value: Optional[str]) -> Optional[str]:
        if permission_type == "anyone":
            return self._role_mapper.map_permission(USER_KIND, GUEST_USER)
        if value is None:
            return None
        if permission_type == "user":
            return self._role_mapper.map_permission(USER_KIND, value)
        if permission_type in ("group", "domain"):
            return self._role_mapper.map_permission(GROUP_KIND, value)
        return None

    def from_permission(self, permission: Permission) -> Optional[str]:
        logger.debug("permission: %s", permission)
        if permission.deleted:
            return None
        principal = permission.email_address
        if permission.type == "domain":
            principal = permission.domain or principal
        return self.get_permission(permission.type, principal)

    def from_user(self, user: User) -> Optional[str]:
        logger.debug("user: %s", user)
        return self.get_permission("user", user.email_address)

    def get_file_permissions(
        self, file: FileDescriptor, default_permissions: Iterable[str] = ()
    ) -> List[str]:
        """Roles for every live permission and owner, then the static defaults."""
        roles: List[str] = []
        for permission in file.permissions:
            role = self.from_permission(permission)
            if role is not None:
                roles.append(role)
        for owner in file.owners:
            role = self.from_user(owner)
            if role is not None:
                roles.append(role)
        roles.extend(p for p in default_permissions if p.strip())
        return roles
