"""HMAC-SHA256 helpers and a per-secret pool of reusable MACs."""

from __future__ import annotations

import hashlib
import hmac
import threading


def _as_bytes(data: bytes | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


def hmac_sha256(message: bytes | str, key: bytes | str) -> hmac.HMAC:
    """Return an HMAC-SHA256 object keyed with ``key`` that has consumed ``message``."""
    return hmac.new(_as_bytes(key), _as_bytes(message), hashlib.sha256)


def hmac_sha256_hex(message: bytes | str, key: bytes | str) -> str:
    """Return the hex digest of HMAC-SHA256 of ``message`` under ``key``."""
    return hmac_sha256(message, key).hexdigest()


class _PooledHmac:
    """An HMAC-SHA256 that can be reset to its freshly keyed state."""

    def __init__(self, key: bytes) -> None:
        self._key = key
        self._mac = hmac.new(key, digestmod=hashlib.sha256)

    @property
    def digest_size(self) -> int:
        return self._mac.digest_size

    @property
    def block_size(self) -> int:
        return self._mac.block_size

    def update(self, data: bytes) -> None:
        self._mac.update(data)

    def write(self, data: bytes) -> int:
        self._mac.update(data)
        return len(data)

    def digest(self) -> bytes:
        return self._mac.digest()

    def hexdigest(self) -> str:
        return self._mac.hexdigest()

    def reset(self) -> None:
        self._mac = hmac.new(self._key, digestmod=hashlib.sha256)


_pools: dict[str, list[_PooledHmac]] = {}
_pools_lock = threading.Lock()


def get_hmac_sha256_hash(secret: str) -> _PooledHmac:
    """Take an HMAC-SHA256 keyed with ``secret`` from its pool, or create one."""
    with _pools_lock:
        pool = _pools.setdefault(secret, [])
        if pool:
            return pool.pop()
    return _PooledHmac(_as_bytes(secret))


def put_hmac_sha256_hash(secret: str, mac: _PooledHmac) -> None:
    """Reset ``mac`` and return it to the pool for ``secret``."""
    mac.reset()
    with _pools_lock:
        _pools.setdefault(secret, []).append(mac)