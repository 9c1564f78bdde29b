"""Persistent per-profile credential and failure-state store.

Stores one JSON file per profile in ``~/.local/share/maascli/credentials/``
(XDG) or the platform-equivalent directory. The file holds the active
:data:`~maascli.models.Credential` and the profile's
:class:`~maascli.models.AuthFailureState`, written through
:func:`~maascli.config.atomic_write` with ``0o600`` permissions.

File layout::

    {
      "credential": {"kind": "oauth", "access_token": "...", ...},
      "failures": {"count": 2, "last_failure_at": "2025-01-01T00:00:00Z"}
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from maascli.config import atomic_write, get_data_dir
from maascli.models import AuthFailureState, Credential

logger = logging.getLogger(__name__)

_FILE_MODE = 0o600


class StoredProfile(BaseModel):
    """On-disk shape of a profile's credential file."""

    credential: Optional[Credential] = None
    failures: AuthFailureState = Field(default_factory=AuthFailureState)


def _credentials_dir() -> Path:
    path = get_data_dir() / "credentials"
    path.mkdir(parents=True, exist_ok=True)
    return path


class CredentialStore:
    """Read/write the credential and failure state of a single profile.

    A missing or unreadable file is treated as "nothing stored" rather than
    an error, so a corrupted file never blocks a fresh login.

    Args:
        profile_name: The profile identifier used to derive the file name.

    Example::

        store = CredentialStore("default")
        store.save(VendorKeyCredential(raw="pk_abcdefgh.sk_..."))
        assert store.load().kind == "vendor_key"
    """

    def __init__(self, profile_name: str) -> None:
        self._profile_name = profile_name
        self._path = _credentials_dir() / f"{profile_name}.json"

    @property
    def profile_name(self) -> str:
        return self._profile_name

    @property
    def path(self) -> Path:
        """The filesystem path to this profile's credential file."""
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    # --- Credential ---

    def load(self) -> Optional[Credential]:
        """Return the stored credential, or ``None``."""
        return self._read().credential

    def save(self, credential: Credential) -> None:
        """Replace the active credential, keeping the failure state."""
        current = self._read()
        self._write(StoredProfile(credential=credential, failures=current.failures))

    def clear(self) -> None:
        """Forget the credential but keep the failure history."""
        current = self._read()
        if current.credential is None:
            return
        self._write(StoredProfile(failures=current.failures))

    # --- Failure state ---

    def load_failures(self) -> AuthFailureState:
        return self._read().failures

    def save_failures(self, state: AuthFailureState) -> None:
        current = self._read()
        self._write(StoredProfile(credential=current.credential, failures=state))

    def remove(self) -> None:
        """Delete the profile file entirely (credential and failure state)."""
        if self._path.is_file():
            self._path.unlink()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _read(self) -> StoredProfile:
        if not self._path.is_file():
            return StoredProfile()
        try:
            data: Any = json.loads(self._path.read_text(encoding="utf-8"))
            return StoredProfile.model_validate(data)
        except (json.JSONDecodeError, ValidationError, OSError) as exc:
            logger.warning("Ignoring unreadable credential file %s: %s", self._path, exc)
            return StoredProfile()

    def _write(self, stored: StoredProfile) -> None:
        text = json.dumps(stored.model_dump(mode="json"), indent=2) + "\n"
        atomic_write(self._path, text, mode=_FILE_MODE)
