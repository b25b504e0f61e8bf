"""System credential store access for endpoint API keys.

Secrets live in the platform store reached through ``keyring`` (macOS
Keychain, Windows Credential Manager, Secret Service on Linux) under the
service ``boson.desktop`` and the account ``endpoint:{endpoint_id}``.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Protocol

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from ..constants import KEYRING_SERVICE
from ..logging import log_event, sanitize_error_message


class CredentialStore(Protocol):
    """Secret lookup contract used by the chat client and registry."""

    def get(self, endpoint_id: str) -> Optional[str]:
        ...

    def set(self, endpoint_id: str, secret: str) -> None:
        ...

    def delete(self, endpoint_id: str) -> None:
        ...


def account_name(endpoint_id: str) -> str:
    return f"endpoint:{endpoint_id}"


def _credential_store_name() -> str:
    """Return a human-readable name for the platform's credential store."""
    if sys.platform == "darwin":
        return "macOS Keychain"
    elif sys.platform == "win32":
        return "Windows Credential Manager"
    else:
        return "system credential store"


class KeyringCredentialStore:
    """``CredentialStore`` backed by the system keyring."""

    def __init__(self, service: str = KEYRING_SERVICE):
        self.service = service

    def get(self, endpoint_id: str) -> Optional[str]:
        """Return the trimmed secret for *endpoint_id*, or None when unset.

        Backend failures are logged and reported as "no secret" so endpoints
        that accept anonymous requests keep working.
        """
        account = account_name(endpoint_id)
        try:
            secret = keyring.get_password(self.service, account)
        except KeyringError as e:
            log_event(
                "credential_lookup_failed",
                level=logging.WARNING,
                endpoint_id=endpoint_id,
                store=_credential_store_name(),
                error_type=type(e).__name__,
                error=sanitize_error_message(str(e)),
            )
            return None
        if not isinstance(secret, str) or not secret.strip():
            return None
        return secret.strip()

    def set(self, endpoint_id: str, secret: str) -> None:
        """Store *secret* for *endpoint_id*.

        Raises:
            ValueError: If the endpoint id or secret is empty, or storing fails
        """
        if not endpoint_id or not isinstance(secret, str) or not secret.strip():
            raise ValueError("endpoint_id and secret required")
        try:
            keyring.set_password(self.service, account_name(endpoint_id), secret.strip())
        except KeyringError as e:
            raise ValueError(
                f"Failed to store key in {_credential_store_name()}: "
                f"{sanitize_error_message(str(e))}"
            )

    def delete(self, endpoint_id: str) -> None:
        """Remove the secret for *endpoint_id*; missing secrets are ignored."""
        try:
            keyring.delete_password(self.service, account_name(endpoint_id))
        except PasswordDeleteError:
            return
        except KeyringError as e:
            raise ValueError(
                f"Failed to delete key from {_credential_store_name()}: "
                f"{sanitize_error_message(str(e))}"
            )
