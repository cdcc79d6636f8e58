"""Unit tests for the base64 transfer codec."""

import pytest

from excalibur.infrastructure.storage import codec


class TestCodec:
    """Tests for encode/decode of file payloads."""

    def test_binary_round_trip(self):
        data = bytes(range(256))

        assert codec.decode(codec.encode(data)) == data

    def test_text_keeps_multibyte_characters(self):
        """Non-ASCII text must survive as UTF-8."""
        text = "Épée ⚔️ 剣"

        assert codec.decode_text(codec.encode_text(text)) == text

    def test_decode_accepts_line_wrapped_payload(self):
        """GitHub returns base64 wrapped at 60 columns."""
        encoded = codec.encode(b"x" * 200)
        wrapped = "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60)) + "\n"

        assert codec.decode(wrapped) == b"x" * 200

    def test_decode_rejects_garbage(self):
        with pytest.raises(ValueError, match="Invalid base64"):
            codec.decode("not*base64!")

    def test_empty_payload(self):
        assert codec.encode(b"") == ""
        assert codec.decode("") == b""
