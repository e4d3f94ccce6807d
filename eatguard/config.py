"""
Configuration module for eatguard.

Centralizes configuration with environment variable support, validation,
and a TTL cache for the issuer registry file used by the service.
"""

import os
import json
import threading
import time
from typing import Dict, Any, Optional
from pathlib import Path

from .access_token import DEFAULT_DOMAIN_NAME, DEFAULT_DOMAIN_VERSION

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("EATGUARD_ENV", "dev")  # dev|stage|prod

# Token domain
DOMAIN_NAME = os.getenv("EATGUARD_DOMAIN_NAME", DEFAULT_DOMAIN_NAME)
DOMAIN_VERSION = os.getenv("EATGUARD_DOMAIN_VERSION", DEFAULT_DOMAIN_VERSION)
CHAIN_ID = int(os.getenv("EATGUARD_CHAIN_ID", "1"))

# Issuer registry file: {"verifyingContract", "rootAuthority", "intermediateAuthority", "activeIssuers"}
REGISTRY_PATH = os.getenv("EATGUARD_REGISTRY_PATH", "config/registry.json")

# Logging
LOG_LEVEL = os.getenv("EATGUARD_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("EATGUARD_LOG_JSON", "true").lower() in ("1", "true", "yes")

# Cache TTL (seconds)
CONFIG_CACHE_TTL = int(os.getenv("CONFIG_CACHE_TTL", "60"))


# ============================================================
# Cached Configuration Loaders
# ============================================================

class CachedConfig:
    """
    Thread-safe cached configuration loader.
    Reloads configuration files periodically based on TTL.
    """

    def __init__(self, ttl_seconds: int = 60):
        self._cache: Dict[str, Any] = {}
        self._timestamps: Dict[str, float] = {}
        self._lock = threading.RLock()
        self._ttl = ttl_seconds

    def _is_stale(self, key: str) -> bool:
        if key not in self._timestamps:
            return True
        return (time.time() - self._timestamps[key]) > self._ttl

    def get_json(self, path: str) -> Dict[str, Any]:
        """
        Load JSON file with caching.
        Returns cached version if within TTL, otherwise reloads.
        """
        with self._lock:
            if path in self._cache and not self._is_stale(path):
                return self._cache[path]

            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)

            self._cache[path] = data
            self._timestamps[path] = time.time()
            return data


# Global cached config instance
_config_cache = CachedConfig(ttl_seconds=CONFIG_CACHE_TTL)


def load_json_cached(path: str) -> Dict[str, Any]:
    """Load JSON file with caching."""
    return _config_cache.get_json(path)


def load_registry_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the issuer registry file with caching."""
    return load_json_cached(path or REGISTRY_PATH)


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Validate that required configuration is present and sane.
    Returns dict of check name -> passed.
    """
    return {
        "registry": Path(REGISTRY_PATH).exists(),
        "chain_id": CHAIN_ID > 0,
        "log_level": LOG_LEVEL.upper() in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
    }

