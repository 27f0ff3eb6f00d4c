"""
Configuration for sqlsim.
Every setting can be overridden through an environment variable of the same
name prefixed with SQLSIM_ (e.g. SQLSIM_API_PORT=8080).
"""

import os


def _env(name, default):
    raw = os.environ.get(f"SQLSIM_{name}")
    if raw is None:
        return default
    if isinstance(default, bool):
        return raw.strip().lower() in ('1', 'true', 'yes', 'on')
    if isinstance(default, int):
        return int(raw)
    return raw


# ============================================================================
# Engine Configuration
# ============================================================================

# Name of the database every new session starts with
DEFAULT_DATABASE = _env('DEFAULT_DATABASE', 'playground')

# Maximum number of cascade waves a single DELETE/UPDATE may trigger
CASCADE_DEPTH_LIMIT = _env('CASCADE_DEPTH_LIMIT', 64)

# Longest SQL text accepted by the HTTP API (characters)
MAX_QUERY_LENGTH = _env('MAX_QUERY_LENGTH', 100_000)

# ============================================================================
# API Server Configuration
# ============================================================================

API_HOST = _env('API_HOST', '127.0.0.1')

API_PORT = _env('API_PORT', 5000)

DEBUG = _env('DEBUG', False)

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL = _env('LOG_LEVEL', 'INFO')

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'
