"""Durable thread/message persistence."""

from .store import ThreadStore, empty_thread_document

__all__ = ["ThreadStore", "empty_thread_document"]
