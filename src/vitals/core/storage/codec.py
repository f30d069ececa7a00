"""Serialization of cache payloads, optionally Fernet-encrypted at rest.

Extracted lab values are personal health data. When an encryption key is
configured the JSON payload is wrapped in a Fernet token before it reaches
SQLite; otherwise it is stored as compact JSON.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class PayloadCodecError(Exception):
    """Raised when a payload cannot be encoded or decoded."""


class PayloadCodec:
    """Encodes dict payloads to text and back.

    Usage::

        codec = PayloadCodec(key=Fernet.generate_key().decode())
        token = codec.encode({"values": {"albumin": 4.5}})
        codec.decode(token)  # {"values": {"albumin": 4.5}}
    """

    def __init__(self, key: str = "") -> None:
        """Initialize the codec.

        Args:
            key: A Fernet key string, or empty for plain JSON storage.

        Raises:
            PayloadCodecError: If a non-empty key is invalid.
        """
        self._fernet: Fernet | None = None
        if key and key.strip():
            try:
                self._fernet = Fernet(key.strip().encode("utf-8"))
            except (ValueError, TypeError) as exc:
                raise PayloadCodecError(f"Invalid encryption key: {exc}") from exc

    @property
    def encrypted(self) -> bool:
        return self._fernet is not None

    def encode(self, payload: dict[str, Any]) -> str:
        """Serialize (and encrypt, when keyed) a JSON-compatible dict."""
        try:
            text = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise PayloadCodecError(f"Payload is not JSON-serializable: {exc}") from exc
        if self._fernet is None:
            return text
        return self._fernet.encrypt(text.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> dict[str, Any]:
        """Reverse :meth:`encode`.

        Raises:
            PayloadCodecError: On a wrong key, a tampered token, invalid JSON,
                or a top-level value that is not an object.
        """
        if not token:
            raise PayloadCodecError("Empty payload")
        text = token
        if self._fernet is not None:
            try:
                text = self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")
            except InvalidToken as exc:
                raise PayloadCodecError("Decryption failed: invalid token or wrong key") from exc
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PayloadCodecError(f"Payload is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise PayloadCodecError("Payload is not a JSON object")
        return payload

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key."""
        return Fernet.generate_key().decode("utf-8")
