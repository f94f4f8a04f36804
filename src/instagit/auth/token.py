"""API token lookup, storage and anonymous registration.

Priority:
  1. ``INSTAGIT_API_KEY`` environment variable (paid users)
  2. Stored token in ``<token_dir>/token.json``
  3. None -- the caller registers an anonymous token
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import httpx

from .fingerprint import get_machine_fingerprint

_logger = logging.getLogger(__name__)

API_KEY_ENV = "INSTAGIT_API_KEY"

ANONYMOUS_AUTH_PATH = "/v1/auth/anonymous"


class TokenStore:
    """Token persisted as ``{"token": "..."}`` in a JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def get_stored(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            _logger.warning("Ignoring unreadable token file %s: %s", self.path, e)
            return None
        if not isinstance(data, dict):
            return None
        token = data.get("token")
        return token if isinstance(token, str) and token else None

    def store(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"token": token}), encoding="utf-8")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

    def get_token(self) -> str | None:
        """Environment key first, then the stored token."""
        api_key = os.environ.get(API_KEY_ENV)
        if api_key:
            return api_key
        return self.get_stored()

    async def register_anonymous(
        self,
        api_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> str | None:
        """Register an anonymous token and store it.

        Returns None when the server refuses (e.g. the per-IP limit was
        reached) or cannot be reached.
        """
        payload = {"fingerprint": get_machine_fingerprint()}
        try:
            async with httpx.AsyncClient(
                base_url=api_url, timeout=30, transport=transport,
            ) as client:
                resp = await client.post(ANONYMOUS_AUTH_PATH, json=payload)
        except httpx.HTTPError as e:
            _logger.warning("Anonymous token registration failed: %s", e)
            return None

        if not resp.is_success:
            _logger.warning(
                "Anonymous token registration refused with status %d", resp.status_code,
            )
            return None
        try:
            token = resp.json().get("token")
        except (ValueError, AttributeError):
            _logger.warning("Anonymous token registration returned an invalid body")
            return None
        if not token:
            return None

        self.store(token)
        _logger.info("Registered anonymous token")
        return token
