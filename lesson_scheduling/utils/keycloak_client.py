import logging

import requests

from lesson_scheduling.core.config import settings

logger = logging.getLogger(__name__)

# Realm signing keys; refreshed when a token names a kid we have not seen
_jwks_cache: dict | None = None


def get_jwks(force_refresh: bool = False) -> dict:
    global _jwks_cache
    if _jwks_cache is None or force_refresh:
        response = requests.get(settings.KEYCLOAK_JWKS_URL, timeout=5)
        response.raise_for_status()
        _jwks_cache = response.json()
        logger.info("Loaded %d signing keys from %s", len(_jwks_cache.get("keys", [])), settings.KEYCLOAK_JWKS_URL)
    return _jwks_cache


def find_jwk(kid: str) -> dict | None:
    """Signing key for `kid`, re-reading the realm keys once on a miss (key rotation)."""
    for refresh in (False, True):
        for key in get_jwks(force_refresh=refresh).get("keys", []):
            if key.get("kid") == kid:
                return key
    return None
