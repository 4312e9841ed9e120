from __future__ import annotations

import json

import pytest

from chatbackup import codec
from chatbackup.bitstream import bits_to_bytes, text_to_bits
from chatbackup.errors import MalformedPayload, UnrecognizedShape
from chatbackup.models import ConversationMessage


def _pack(obj) -> bytes:
    """Pack arbitrary JSON the same way the encoder packs an envelope."""
    return bits_to_bytes(text_to_bits(json.dumps(obj)))


def test_round_trip_preserves_messages_and_order(history) -> None:
    decoded = codec.decode(codec.encode(history, "8.5"))
    assert decoded == history
    assert [m.role for m in decoded] == ["system", "user", "ai"]
    assert decoded[2].is_reflective is True
    assert decoded[0].timestamp is None


def test_round_trip_through_base64(history) -> None:
    stored = codec.encode_base64(history, "9.6")
    assert codec.decode_base64(stored) == history


def test_encode_accepts_plain_dicts() -> None:
    data = [{"role": "user", "text": "hello", "isReflective": False}]
    decoded = codec.decode(codec.encode(data))
    assert decoded == [ConversationMessage(role="user", text="hello", is_reflective=False)]


def test_encode_does_not_mutate_history(history) -> None:
    before = [m.model_copy() for m in history]
    snapshot = list(history)
    codec.encode(history)
    assert history == before
    assert history == snapshot


def test_envelope_layout(history) -> None:
    text = codec.unpack_text(codec.encode(history, "8.5"))
    assert text.startswith('{"version":"8.5","timestamp":"')
    data = json.loads(text)
    assert list(data) == ["version", "timestamp", "conversationHistory", "metadata"]
    assert data["metadata"] == {"messageCount": 3, "generatedBy": "EMG_CORE_v8.5"}
    assert data["conversationHistory"][2]["isReflective"] is True
    assert "isReflective" not in data["conversationHistory"][0]
    assert data["timestamp"].endswith("Z")


def test_encoded_length_is_one_byte_per_unit(history) -> None:
    payload = codec.encode(history)
    assert len(payload) == len(codec.unpack_text(payload))


def test_empty_history() -> None:
    payload = codec.encode([], "1.0")
    envelope = codec.decode_envelope(payload)
    assert envelope.metadata.message_count == 0
    assert envelope.version == "1.0"
    assert codec.decode(payload) == []


def test_reencode_is_stable(history) -> None:
    first = codec.decode(codec.encode(history))
    second = codec.decode(codec.encode(first))
    assert second == first


def test_message_count_is_not_reconciled() -> None:
    payload = _pack({
        "version": "8.5",
        "timestamp": "2024-01-01T00:00:00.000Z",
        "conversationHistory": [{"role": "user", "text": "only one"}],
        "metadata": {"messageCount": 5, "generatedBy": "test"},
    })
    assert len(codec.decode(payload)) == 1
    assert codec.decode_envelope(payload).metadata.message_count == 5


def test_shape_fallback_array_and_messages_agree() -> None:
    msgs = [{"role": "user", "text": "a"}, {"role": "ai", "text": "b"}]
    from_array = codec.decode(_pack(msgs))
    from_messages = codec.decode(_pack({"messages": msgs}))
    from_history = codec.decode(_pack({"conversationHistory": msgs}))
    assert from_array == from_messages == from_history
    assert [m.text for m in from_array] == ["a", "b"]


def test_conversation_history_wins_over_messages() -> None:
    payload = _pack({
        "messages": [{"role": "user", "text": "from messages"}],
        "conversationHistory": [{"role": "user", "text": "from history"}],
    })
    assert codec.decode(payload)[0].text == "from history"


def test_chat_completion_style_entries_are_accepted() -> None:
    decoded = codec.decode(_pack([{"role": "assistant", "content": "hi"}]))
    assert decoded == [ConversationMessage(role="ai", text="hi")]


def test_strict_route_rejects_non_json() -> None:
    with pytest.raises(MalformedPayload):
        codec.decode(b"hello, not json")


def test_strict_route_rejects_unknown_shape() -> None:
    with pytest.raises(UnrecognizedShape):
        codec.decode(_pack({"foo": [1, 2]}))
    with pytest.raises(UnrecognizedShape):
        codec.decode(_pack({"messages": "not a list"}))


def test_strict_route_rejects_invalid_entries() -> None:
    with pytest.raises(UnrecognizedShape) as exc_info:
        codec.decode(_pack([{"role": "robot", "text": "beep"}]))
    assert exc_info.value.details == {"errors": 1}


def test_strict_route_rejects_bad_base64() -> None:
    with pytest.raises(MalformedPayload):
        codec.decode_base64("@@@")


def test_strict_route_rejects_truncated_payload(history) -> None:
    with pytest.raises(MalformedPayload):
        codec.decode(codec.encode(history)[:-1])


def test_decode_envelope_requires_envelope_shape() -> None:
    with pytest.raises(UnrecognizedShape):
        codec.decode_envelope(_pack([{"role": "user", "text": "bare"}]))


def test_lenient_route_decodes_bit_text(history) -> None:
    text = codec.envelope_to_json(codec.build_envelope(history))
    bits = text_to_bits(text)
    assert codec.decode_lenient(bits) == history
    assert codec.decode_lenient(bits.encode("ascii")) == history


def test_lenient_route_accepts_spaced_bit_text() -> None:
    bits = text_to_bits('[{"role":"user","text":"x"}]')
    spaced = " ".join(bits[i : i + 8] for i in range(0, len(bits), 8)) + "\n"
    assert codec.decode_lenient(spaced.encode("ascii"))[0].text == "x"


def test_lenient_route_decodes_packed_bytes(history) -> None:
    assert codec.decode_lenient(codec.encode(history)) == history


def test_lenient_route_falls_back_to_system_message() -> None:
    result = codec.decode_lenient(text_to_bits("plain notes, not JSON"))
    assert result == [ConversationMessage(role="system", text="plain notes, not JSON")]

    result = codec.decode_lenient(b"raw bytes here")
    assert result == [ConversationMessage(role="system", text="raw bytes here")]


def test_lenient_route_falls_back_on_unknown_shape() -> None:
    result = codec.decode_lenient(text_to_bits('{"foo": 1}'))
    assert result == [ConversationMessage(role="system", text='{"foo": 1}')]


def test_lenient_route_drops_partial_trailing_group(history) -> None:
    text = codec.envelope_to_json(codec.build_envelope(history))
    # Remove five bits: the last group keeps only 3 bits and is dropped
    truncated = text_to_bits(text)[:-5]
    result = codec.decode_lenient(truncated)
    assert len(result) == 1
    assert result[0].role == "system"
    assert result[0].text == text[:-1]


def test_units_above_latin1_lose_their_high_byte() -> None:
    # U+4E2D U+6587 keep only 0x2D and 0x87
    decoded = codec.decode(codec.encode([ConversationMessage(role="user", text="中文")]))
    assert decoded[0].text == "-\x87"
    assert decoded[0].text != "中文"


def test_masking_can_corrupt_the_envelope() -> None:
    # U+0122 masks to '"', which ends the JSON string early
    payload = codec.encode([ConversationMessage(role="user", text="Ģ")])
    with pytest.raises(MalformedPayload):
        codec.decode(payload)
    assert codec.decode_lenient(payload)[0].role == "system"


def test_deeply_nested_payload_is_malformed() -> None:
    with pytest.raises(MalformedPayload):
        codec.decode(b"[" * 200_000)


def test_lenient_route_survives_deeply_nested_payload() -> None:
    result = codec.decode_lenient(b"[" * 200_000)
    assert len(result) == 1
    assert result[0].role == "system"
    assert result[0].text == "[" * 200_000
