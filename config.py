"""
Configuration module for the Replicate prediction client.

This module centralizes all configuration constants and default values
used throughout the client.

IMPORTANT: This module should ONLY import from the standard library and typing.
Do not import from project modules to avoid circular dependencies.
All project modules can safely import from this config.
"""

# =============================================================================
# API Configuration
# =============================================================================

DEFAULT_BASE_URL = "https://api.replicate.com/v1"
PREDICTIONS_PATH = "/predictions"
MODELS_PATH = "/models"
FILES_PATH = "/files"

# (connect, read) in seconds. Synchronous-wait requests can hold the
# response open for up to 60s on the server side.
DEFAULT_TIMEOUT = (10.0, 90.0)

# =============================================================================
# Polling Configuration
# =============================================================================

DEFAULT_MAX_POLL_ATTEMPTS = 60
DEFAULT_POLL_INTERVAL = 5.0

# =============================================================================
# Header Names
# =============================================================================

HEADER_AUTHORIZATION = "Authorization"
HEADER_PREFER = "Prefer"
HEADER_CANCEL_AFTER = "Cancel-After"
HEADER_CACHE_CONTROL = "Cache-Control"
HEADER_ACCEPT = "Accept"

PREFER_WAIT = "wait"
PREFER_WAIT_PREFIX = "wait="

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_EVENT_STREAM = "text/event-stream"
CONTENT_TYPE_OCTET_STREAM = "application/octet-stream"

# =============================================================================
# Streaming Event Types
# =============================================================================

EVENT_OUTPUT = "output"
EVENT_ERROR = "error"
EVENT_DONE = "done"

# =============================================================================
# Environment Variables
# =============================================================================

ENV_API_TOKEN = "REPLICATE_API_TOKEN"
ENV_BASE_URL = "REPLICATE_BASE_URL"
ENV_MAX_POLL_ATTEMPTS = "REPLICATE_MAX_POLL_ATTEMPTS"
ENV_POLL_INTERVAL = "REPLICATE_POLL_INTERVAL"

__all__ = [
    # API Configuration
    'DEFAULT_BASE_URL',
    'PREDICTIONS_PATH',
    'MODELS_PATH',
    'FILES_PATH',
    'DEFAULT_TIMEOUT',

    # Polling Configuration
    'DEFAULT_MAX_POLL_ATTEMPTS',
    'DEFAULT_POLL_INTERVAL',

    # Header Names
    'HEADER_AUTHORIZATION',
    'HEADER_PREFER',
    'HEADER_CANCEL_AFTER',
    'HEADER_CACHE_CONTROL',
    'HEADER_ACCEPT',
    'PREFER_WAIT',
    'PREFER_WAIT_PREFIX',
    'CONTENT_TYPE_JSON',
    'CONTENT_TYPE_EVENT_STREAM',
    'CONTENT_TYPE_OCTET_STREAM',

    # Streaming Event Types
    'EVENT_OUTPUT',
    'EVENT_ERROR',
    'EVENT_DONE',

    # Environment Variables
    'ENV_API_TOKEN',
    'ENV_BASE_URL',
    'ENV_MAX_POLL_ATTEMPTS',
    'ENV_POLL_INTERVAL',
]
