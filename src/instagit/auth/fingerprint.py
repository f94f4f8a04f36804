"""Stable machine identifier used for anonymous token registration."""

from __future__ import annotations

import hashlib
import platform
import uuid


def get_machine_fingerprint() -> str:
    """Hash of hostname, OS, architecture and MAC address (32 hex chars)."""
    parts = [
        platform.node(),
        platform.system(),
        platform.machine(),
        str(uuid.getnode()),
    ]
    raw = "|".join(parts)
    return hashlib.sha256(raw.encode()).hexdigest()[:32]
