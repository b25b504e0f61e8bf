"""Identifier generation for threads, messages, and profiles."""

import uuid


def new_id() -> str:
    """Return a random RFC 4122 UUID string (e.g., ``"0f8fad5b-d9cb-469f-..."``)."""
    return str(uuid.uuid4())
