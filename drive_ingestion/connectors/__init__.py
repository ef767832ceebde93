"""Remote storage clients."""

from .google_drive import GoogleDriveClient

__all__ = ["GoogleDriveClient"]
