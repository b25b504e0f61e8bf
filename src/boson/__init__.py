"""Boson - a chat client for OpenAI-compatible completion endpoints."""

__version__ = "0.1.0"
