"""Credential lookup for endpoint secrets."""

from .keychain import CredentialStore, KeyringCredentialStore, account_name

__all__ = ["CredentialStore", "KeyringCredentialStore", "account_name"]
