"""Bit-level primitives shared by the encoder and both decode routes.

A "bit string" is a ``str`` of '0'/'1' characters. Each text unit is written as
one 8-character group, most significant bit first. Text units are UTF-16 code
units masked to their low 8 bits, so anything above U+00FF does not survive
the trip (emoji and most non-European scripts come back as their low byte).
"""

from __future__ import annotations

import base64
import binascii
import re

from .errors import MalformedPayload

_NON_BIT = re.compile(r"[^01]")
_BIT_TEXT = re.compile(rb"[01\s]*")


def code_units(text: str) -> list[int]:
    """Return the UTF-16 code units of ``text`` (surrogate pairs split in two)."""
    raw = text.encode("utf-16-le", "surrogatepass")
    return [int.from_bytes(raw[i : i + 2], "little") for i in range(0, len(raw), 2)]


def text_to_bits(text: str) -> str:
    return "".join(format(unit & 0xFF, "08b") for unit in code_units(text))


def _groups(bits: str):
    """Yield complete 8-bit groups; a shorter trailing group is dropped."""
    usable = len(bits) - len(bits) % 8
    for i in range(0, usable, 8):
        yield bits[i : i + 8]


def bits_to_bytes(bits: str) -> bytes:
    return bytes(int(group, 2) for group in _groups(bits))


def bytes_to_bits(data: bytes) -> str:
    return "".join(format(byte, "08b") for byte in data)


def bits_to_text(bits: str) -> str:
    return "".join(chr(int(group, 2)) for group in _groups(bits))


def clean_bits(text: str) -> str:
    """Strip everything that is not a '0' or '1' character."""
    return _NON_BIT.sub("", text)


def is_bit_text(buffer: bytes) -> bool:
    """True when ``buffer`` is '0'/'1' text (whitespace allowed) rather than packed bytes."""
    return bool(buffer.strip()) and _BIT_TEXT.fullmatch(buffer) is not None


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def from_base64(text: str) -> bytes:
    compact = "".join(text.split())
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedPayload(f"Invalid base64 payload: {exc}") from exc
