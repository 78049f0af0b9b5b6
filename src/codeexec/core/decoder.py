from __future__ import annotations
import base64
import binascii
from typing import Optional

from .errors import DecodeError
from .models import Encoding


def _as_text(content: bytes, label: str) -> str:
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Invalid UTF-8 in {label} content: {e}") from e


def decode_content(content: bytes, encoding: Optional[Encoding] = None) -> bytes:
    """
    Turn transport-encoded file content into canonical source bytes.

    utf8 (or no encoding) passes the bytes through untouched; validity as text
    is only checked by whoever needs a string. base64 and hex content must
    itself be UTF-8 text and decode strictly.
    """
    if encoding is None or encoding == Encoding.UTF8:
        return bytes(content)

    if encoding == Encoding.BASE64:
        text = _as_text(content, "base64")
        try:
            return base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Base64 decode error: {e}") from e

    if encoding == Encoding.HEX:
        text = _as_text(content, "hex")
        try:
            return binascii.unhexlify(text)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Hex decode error: {e}") from e

    raise DecodeError(f"Unknown encoding: {encoding}")


def encode_content(data: bytes, encoding: Optional[Encoding] = None) -> bytes:
    if encoding is None or encoding == Encoding.UTF8:
        return bytes(data)
    if encoding == Encoding.BASE64:
        return base64.b64encode(data)
    if encoding == Encoding.HEX:
        return binascii.hexlify(data)
    raise DecodeError(f"Unknown encoding: {encoding}")
