"""Application-level constants for Boson.

This module keeps only cross-cutting app/file/path constants.
"""

# ============================================================================
# Application identity
# ============================================================================

APP_NAME = "boson"

# Credential store service name (accounts are ``endpoint:{id}``)
KEYRING_SERVICE = "boson.desktop"

# ============================================================================
# File names
# ============================================================================

SETTINGS_FILENAME = "boson-settings.json"
THREADS_FILENAME = "boson-threads.json"
LOG_FILE_EXTENSION = ".log"

# ============================================================================
# Default directories and paths
# ============================================================================

# User data directory (created in home directory)
USER_DATA_DIR = f"~/.{APP_NAME}"

DATETIME_FORMAT_FILENAME = "%Y-%m-%d_%H-%M-%S"

# ============================================================================
# Threads and titles
# ============================================================================

DEFAULT_THREAD_TITLE = "New thread"
DEFAULT_PROJECT_ID = "default"

# Stored titles are clipped to this length
THREAD_TITLE_MAX_CHARS = 100

# Inferred titles are clipped tighter than stored ones
INFERRED_TITLE_MAX_CHARS = 80

# Only this much of the first user message is sent for title inference
TITLE_SOURCE_MAX_CHARS = 500

# ============================================================================
# Registry limits
# ============================================================================

MAX_ENDPOINTS = 100
MAX_MODELS = 500
