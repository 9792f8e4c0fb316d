"""Deterministic hashing and keyed-signature primitives.

Everything above this module (ledger records, order content hashes, QR
descriptors, GPS fix signatures) reduces to two operations:

- **Content hash**: canonical JSON (``sort_keys=True``, compact separators)
  → SHA-256 → 64-char lowercase hex.  Identical logical input always hashes
  identically, regardless of dict insertion order.
- **Keyed signature**: HMAC-SHA256 over a comma-joined canonical string of the
  given fields, compared in constant time on verify.

The signing key is a constructor argument.  There is deliberately no
module-level key: a :class:`HashCodec` is built once at service startup from
:class:`~trackchain.config.TrackingSettings` and passed to whoever needs it.

Non-serialisable input (an arbitrary object in a payload) raises
:exc:`TypeError`.  That is a programmer error and is not caught here.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import secrets
from datetime import datetime
from enum import Enum
from typing import Any

#: Prefix that makes transaction ids recognisable in logs and URLs.
TRANSACTION_ID_PREFIX = "0x"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not canonically serialisable")


def canonical_json(fields: Any) -> str:
    """Serialise ``fields`` to the canonical JSON form used for hashing.

    Args:
        fields: Any JSON-compatible structure.  ``datetime`` values are
            rendered with ``isoformat()`` and ``Enum`` members by value.

    Returns:
        Compact JSON with sorted keys and no ASCII escaping.

    Example::

        >>> canonical_json({"b": 1, "a": [1, 2]})
        '{"a":[1,2],"b":1}'
    """
    return json.dumps(
        fields,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )


def content_hash(fields: Any) -> str:
    """Return the SHA-256 hex digest of ``canonical_json(fields)``."""
    return hashlib.sha256(canonical_json(fields).encode("utf-8")).hexdigest()


def new_transaction_id() -> str:
    """Return a random 256-bit identifier, hex-encoded with a ``0x`` prefix."""
    return TRANSACTION_ID_PREFIX + secrets.token_hex(32)


def _signing_field(value: Any) -> str:
    # float() first so 5 and 5.0 sign identically
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(float(value))
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return str(value.value)
    if value is None:
        return ""
    return str(value)


def signing_message(*fields: Any) -> bytes:
    """Build the comma-joined canonical message that :meth:`HashCodec.sign` MACs."""
    return ",".join(_signing_field(f) for f in fields).encode("utf-8")


class HashCodec:
    """Content hashing plus HMAC signing under one deployment key.

    Args:
        signing_key: Shared secret used by every GPS tracker in the
            deployment.  ``str`` keys are UTF-8 encoded.  Must be non-empty.

    Raises:
        ValueError: If ``signing_key`` is empty.
    """

    def __init__(self, signing_key: str | bytes) -> None:
        if not signing_key:
            raise ValueError("HashCodec: signing_key must be a non-empty string or bytes.")
        if isinstance(signing_key, str):
            signing_key = signing_key.encode("utf-8")
        self._key = signing_key

    def __repr__(self) -> str:
        return "HashCodec(signing_key=<redacted>)"

    content_hash = staticmethod(content_hash)
    new_transaction_id = staticmethod(new_transaction_id)

    def sign(self, *fields: Any) -> str:
        """Return the hex HMAC-SHA256 of ``fields`` under the codec key."""
        return hmac.new(self._key, signing_message(*fields), hashlib.sha256).hexdigest()

    def verify(self, *fields: Any, signature: str) -> bool:
        """Recompute the signature over ``fields`` and compare in constant time."""
        if not isinstance(signature, str) or not signature:
            return False
        # compare_digest rejects non-ASCII str operands, so compare bytes.
        return hmac.compare_digest(
            self.sign(*fields).encode("ascii"),
            signature.encode("utf-8", "surrogatepass"),
        )
