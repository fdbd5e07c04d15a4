"""Deterministic hashing helpers shared by the anonymizers and ID mappings."""

import hashlib
from typing import Any, Sequence


def deterministic_hash(value: Any, salt: str = '') -> str:
    """Full sha256 hex digest of ``value`` salted with ``salt``."""
    combined = f"{value}:{salt}"
    return hashlib.sha256(combined.encode('utf-8')).hexdigest()


def hash_int(value: Any, salt: str = '') -> int:
    return int(deterministic_hash(value, salt)[:12], 16)


def pick(pool: Sequence, value: Any, salt: str = ''):
    """Pick a pool entry for ``value``; the same input always picks the same entry."""
    return pool[hash_int(value, salt) % len(pool)]
