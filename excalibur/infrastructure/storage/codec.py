"""
Transfer encoding for file payloads.

The GitHub contents API carries file bodies as base64 text. Text
documents (the registry, per-asset metadata) are always turned into
UTF-8 bytes first, so multi-byte characters survive the round trip.
"""

import base64
import binascii


def encode(data: bytes) -> str:
    """Encode raw bytes as base64 text."""
    return base64.b64encode(data).decode("ascii")


def decode(text: str) -> bytes:
    """
    Decode base64 text back to bytes.

    GitHub wraps base64 content at 60 columns, so whitespace is dropped
    before strict decoding.
    """
    compact = "".join(text.split())
    try:
        return base64.b64decode(compact, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}")


def encode_text(text: str) -> str:
    return encode(text.encode("utf-8"))


def decode_text(text: str) -> str:
    return decode(text).decode("utf-8")
