"""Opaque, tamper-evident pagination cursors.

Token layout, before URL-safe base64 without padding::

    version (1 byte)
    id length (u16) | id (UTF-8)
    has sort value (1 byte: 0 or 1)
    [sort value length (u16) | sort value (UTF-8)]
    HMAC-SHA256 tag, truncated to 16 bytes

Decoding never reveals why a token was rejected: every failure raises the same
``InvalidCursorError``, and the tag is always computed and compared in
constant time, even when the body fails to parse.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
import struct
from dataclasses import dataclass

from backend.app.core.config import settings
from backend.app.core.errors import InvalidCursorError

_VERSION = 1
_TAG_SIZE = 16
_MAX_FIELD = 0xFFFF
_MAX_TOKEN_LENGTH = 1024
_TOKEN_RE = re.compile(r"[A-Za-z0-9_-]+")


@dataclass(frozen=True)
class CursorPayload:
    id: str
    sort_value: str | None = None


def _tag(body: bytes, secret: str | None) -> bytes:
    key = (secret if secret is not None else settings.SECRET_KEY).encode("utf-8")
    return hmac.new(key, body, hashlib.sha256).digest()[:_TAG_SIZE]


def _field(value: str) -> bytes:
    raw = value.encode("utf-8")
    if len(raw) > _MAX_FIELD:
        raise ValueError("Cursor field too long")
    return struct.pack(">H", len(raw)) + raw


def encode_cursor(payload: CursorPayload, secret: str | None = None) -> str:
    """Serialize ``payload`` into an opaque URL-safe token."""
    if not isinstance(payload.id, str) or not payload.id:
        raise ValueError("Cursor id must be a non-empty string")
    if payload.sort_value is not None and not isinstance(payload.sort_value, str):
        raise ValueError("Cursor sort value must be a string or None")

    body = struct.pack(">B", _VERSION) + _field(payload.id)
    if payload.sort_value is None:
        body += struct.pack(">B", 0)
    else:
        body += struct.pack(">B", 1) + _field(payload.sort_value)

    raw = body + _tag(body, secret)
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _read_field(body: bytes, offset: int) -> tuple[str, int]:
    if offset + 2 > len(body):
        raise ValueError("truncated")
    (length,) = struct.unpack_from(">H", body, offset)
    offset += 2
    end = offset + length
    if end > len(body):
        raise ValueError("truncated")
    return body[offset:end].decode("utf-8"), end


def _parse_body(body: bytes) -> CursorPayload:
    if not body or body[0] != _VERSION:
        raise ValueError("version")
    cursor_id, offset = _read_field(body, 1)
    if offset >= len(body):
        raise ValueError("truncated")
    flag = body[offset]
    offset += 1
    sort_value: str | None = None
    if flag == 1:
        sort_value, offset = _read_field(body, offset)
    elif flag != 0:
        raise ValueError("flag")
    if offset != len(body):
        raise ValueError("trailing bytes")
    if not cursor_id:
        raise ValueError("empty id")
    return CursorPayload(id=cursor_id, sort_value=sort_value)


def _b64decode(token: str) -> bytes | None:
    if len(token) > _MAX_TOKEN_LENGTH or not _TOKEN_RE.fullmatch(token) or len(token) % 4 == 1:
        return None
    padded = token + "=" * (-len(token) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, ValueError):
        return None


def decode_cursor(token: str, secret: str | None = None) -> CursorPayload:
    """Verify and parse a token produced by :func:`encode_cursor`."""
    raw = _b64decode(token) if isinstance(token, str) else None
    if raw is None:
        raw = b""

    body, received = raw[:-_TAG_SIZE], raw[-_TAG_SIZE:]
    expected = _tag(body, secret)

    payload: CursorPayload | None
    try:
        payload = _parse_body(body)
    except (ValueError, UnicodeDecodeError, struct.error):
        payload = None

    tag_ok = hmac.compare_digest(expected, received)
    if not tag_ok or payload is None or len(raw) <= _TAG_SIZE:
        raise InvalidCursorError()
    return payload
