"""
    Resolves the Cloudinary credentials used for image uploads
"""
import os

import cloudinary
import logfire

from typing import Mapping, Optional

from schema.file_upload import UploadCredentials, IncompleteCredentials
from models.helpers import UploadErrorKind
from utils.exceptions import UploadError

STORE_SETTINGS = {
    "cloud_name": "STORE_NAME",
    "api_key": "STORE_API_KEY",
    "api_secret": "STORE_API_SECRET",
}


def read_store_settings(environ: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """Read the store settings, blank values come back as empty strings."""
    environ = environ if environ is not None else os.environ
    return {
        field: (environ.get(variable) or "").strip()
        for field, variable in STORE_SETTINGS.items()
    }


def find_missing_settings(values: dict[str, str]) -> list[str]:
    return [STORE_SETTINGS[field] for field, value in values.items() if not value]


class UploadConfiguration:
    """Lazily resolved, process-wide upload configuration.

    Nothing is read from the environment until the first upload attempt.
    A complete set of credentials is memoized for the lifetime of the
    instance; an incomplete set is not, so the environment is read again on
    the next attempt.

    Args:
        environ (Mapping[str, str] | None): Where to read settings from. Defaults to `os.environ`.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ if environ is not None else os.environ
        self._credentials: UploadCredentials | None = None
        self._client_configured = False

    def resolve_credentials(self) -> UploadCredentials | IncompleteCredentials:
        """Read the three store settings.

        Returns:
            UploadCredentials | IncompleteCredentials: The credentials, or the names of the missing settings.
        """
        if self._credentials is not None:
            return self._credentials

        values = read_store_settings(self._environ)
        missing = find_missing_settings(values)

        if missing:
            return IncompleteCredentials(missing=missing)

        self._credentials = UploadCredentials(**values)
        return self._credentials

    def missing_settings(self) -> list[str]:
        resolved = self.resolve_credentials()
        if isinstance(resolved, IncompleteCredentials):
            return list(resolved.missing)
        return []

    @property
    def is_configured(self) -> bool:
        return not self.missing_settings()

    def require_credentials(self) -> UploadCredentials:
        """Return complete credentials or fail fast.

        Raises:
            UploadError: NOT_CONFIGURED naming every missing setting.

        Returns:
            UploadCredentials: The resolved credentials.
        """
        resolved = self.resolve_credentials()

        if isinstance(resolved, IncompleteCredentials):
            names = ", ".join(resolved.missing)
            raise UploadError(
                UploadErrorKind.NOT_CONFIGURED,
                f"Cloudinary is not configured. Missing {names}. "
                f"Please set {names} in your .env file.",
            )
        return resolved

    def configure_store_client_once(self, credentials: UploadCredentials) -> None:
        """Configure the Cloudinary SDK the first time it is needed. Later calls do nothing."""
        if self._client_configured:
            return

        cloudinary.config(
            cloud_name=credentials.cloud_name,
            api_key=credentials.api_key,
            api_secret=credentials.api_secret,
        )
        self._client_configured = True
        logfire.info(f"Cloudinary client configured for cloud: {credentials.cloud_name}")

    @property
    def client_configured(self) -> bool:
        return self._client_configured


# Shared by every request, reads nothing until first use
upload_configuration = UploadConfiguration()
