"""
Code Builder Configuration

Handles environment configuration for the file store and the code generator.
"""

import os
from pathlib import Path


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Server configuration
HOST = os.getenv("CODEBUILDER_HOST", "127.0.0.1")
PORT = int(os.getenv("CODEBUILDER_PORT", "8888"))

# Key-value backend: "memory", "json" or "redis"
STORE_BACKEND = os.getenv("CODEBUILDER_STORE", "memory").lower()

# JSON backend file - defaults to ~/.codebuilder/store.json
DEFAULT_STORE_PATH = Path.home() / ".codebuilder" / "store.json"
STORE_PATH = Path(os.getenv("CODEBUILDER_STORE_PATH", str(DEFAULT_STORE_PATH)))

# Redis backend
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Index write policy: "last-write-wins" or "optimistic"
CONSISTENCY_MODE = os.getenv("CODEBUILDER_CONSISTENCY", "last-write-wins").lower()

# Reject upserts that name an id the index does not know about
STRICT_UPDATES = _env_flag("CODEBUILDER_STRICT_UPDATES")

# Identifier scheme for new files: "uuid" or "time"
ID_SCHEME = os.getenv("CODEBUILDER_ID_SCHEME", "uuid").lower()

# Seed an index.js file when the index has never been written
SEED_DEFAULT_FILE = _env_flag("CODEBUILDER_SEED_DEFAULT_FILE")

# Generation provider
# Both must be set, otherwise the generator returns stub code
GLM_API_KEY = os.getenv("GLM_API_KEY", "")
GLM_API_BASE = os.getenv("GLM_API_BASE", "")
GLM_TIMEOUT = float(os.getenv("GLM_TIMEOUT", "30"))
