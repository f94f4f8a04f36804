"""Token handling for the Instagit API."""

from instagit.auth.fingerprint import get_machine_fingerprint
from instagit.auth.token import TokenStore

__all__ = ["TokenStore", "get_machine_fingerprint"]
