"""Encode conversation histories into packed bit payloads and decode them back.

Encoding: history -> JSON envelope -> bit string -> bytes (-> base64 for storage).
Decoding runs the same steps in reverse. Two decode routes exist:

- strict (:func:`decode`, :func:`decode_base64`): used for stored backups,
  every failure raises a :class:`~chatbackup.errors.DecodeError`.
- lenient (:func:`decode_lenient`): used for user-supplied files, never
  raises and falls back to a single system message holding the raw text.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable, NamedTuple

from pydantic import ValidationError

from .bitstream import (
    bits_to_bytes,
    bits_to_text,
    bytes_to_bits,
    clean_bits,
    from_base64,
    is_bit_text,
    text_to_bits,
    to_base64,
)
from .config import DEFAULT_VERSION, GENERATED_BY
from .errors import DecodeError, MalformedPayload, UnrecognizedShape
from .formatting import iso_now
from .models import BackupEnvelope, ConversationMessage, EnvelopeMetadata

logger = logging.getLogger(__name__)


class ShapeExtractor(NamedTuple):
    """Pulls the raw message list out of one known payload shape, or returns None."""

    name: str
    extract: Callable[[Any], list | None]


def _field(key: str) -> Callable[[Any], list | None]:
    def extract(data: Any) -> list | None:
        if isinstance(data, dict) and isinstance(data.get(key), list):
            return data[key]
        return None

    return extract


# Tried in order; the first match wins.
EXTRACTORS: list[ShapeExtractor] = [
    ShapeExtractor("array", lambda data: data if isinstance(data, list) else None),
    ShapeExtractor("conversationHistory", _field("conversationHistory")),
    ShapeExtractor("messages", _field("messages")),
]


def build_envelope(
    history: Iterable[ConversationMessage | dict],
    version: str = DEFAULT_VERSION,
    generated_by: str = GENERATED_BY,
) -> BackupEnvelope:
    messages = [ConversationMessage.model_validate(m) for m in history]
    return BackupEnvelope(
        version=version,
        timestamp=iso_now(),
        conversation_history=messages,
        metadata=EnvelopeMetadata(message_count=len(messages), generated_by=generated_by),
    )


def envelope_to_json(envelope: BackupEnvelope) -> str:
    return json.dumps(envelope.to_wire(), ensure_ascii=False, separators=(",", ":"))


def encode(
    history: Iterable[ConversationMessage | dict],
    version: str = DEFAULT_VERSION,
    generated_by: str = GENERATED_BY,
) -> bytes:
    """Encode a conversation history into packed envelope bytes."""
    envelope = build_envelope(history, version, generated_by)
    return bits_to_bytes(text_to_bits(envelope_to_json(envelope)))


def encode_base64(
    history: Iterable[ConversationMessage | dict],
    version: str = DEFAULT_VERSION,
    generated_by: str = GENERATED_BY,
) -> str:
    """Encode a history into the base64 form kept in the backup store."""
    return to_base64(encode(history, version, generated_by))


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, RecursionError) as exc:
        raise MalformedPayload(
            f"Decoded payload is not valid JSON: {exc}",
            details={"length": len(text)},
        ) from exc


def extract_history(data: Any) -> list[ConversationMessage]:
    """Run the shape extractors over parsed JSON and validate the message list."""
    for extractor in EXTRACTORS:
        items = extractor.extract(data)
        if items is None:
            continue
        logger.debug("Payload matched '%s' shape (%d entries)", extractor.name, len(items))
        try:
            return [ConversationMessage.model_validate(item) for item in items]
        except ValidationError as exc:
            raise UnrecognizedShape(
                f"'{extractor.name}' entries are not conversation messages",
                details={"errors": exc.error_count()},
            ) from exc

    raise UnrecognizedShape(
        "Payload has no conversation list (expected an array, "
        "'conversationHistory' or 'messages')",
        details={"type": type(data).__name__},
    )


def unpack_text(data: bytes) -> str:
    """Recover the envelope text from packed bytes."""
    return bits_to_text(bytes_to_bits(data))


def decode(data: bytes) -> list[ConversationMessage]:
    """Decode packed bytes into a message list (strict route).

    ``metadata.messageCount`` is informational and is not checked against the
    decoded list.
    """
    return extract_history(_parse_json(unpack_text(data)))


def decode_base64(text: str) -> list[ConversationMessage]:
    """Decode a stored base64 payload (strict route)."""
    return decode(from_base64(text))


def decode_envelope(data: bytes) -> BackupEnvelope:
    """Decode packed bytes into the full envelope, metadata included."""
    parsed = _parse_json(unpack_text(data))
    if not isinstance(parsed, dict) or "conversationHistory" not in parsed:
        raise UnrecognizedShape(
            "Payload is not a backup envelope",
            details={"type": type(parsed).__name__},
        )
    try:
        return BackupEnvelope.model_validate(parsed)
    except ValidationError as exc:
        raise UnrecognizedShape(
            "Backup envelope is incomplete",
            details={"errors": exc.error_count()},
        ) from exc


def decode_lenient(buffer: bytes | str) -> list[ConversationMessage]:
    """Decode a user-supplied file buffer; always returns some history.

    ``buffer`` is normally '0'/'1' text. Buffers holding anything else are
    taken to be packed bytes (an exported ``.bin``) and expanded first. If the
    recovered text is not a recognizable history, it is returned verbatim as
    one system message.
    """
    if isinstance(buffer, str):
        bits = clean_bits(buffer)
    elif is_bit_text(buffer):
        bits = clean_bits(buffer.decode("ascii"))
    else:
        bits = bytes_to_bits(buffer)

    text = bits_to_text(bits)
    try:
        return extract_history(_parse_json(text))
    except DecodeError as exc:
        logger.warning("Imported payload not recognized (%s), keeping it as raw text", exc.code)
        return [ConversationMessage(role="system", text=text)]
