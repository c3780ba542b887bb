"""Unit tests for attributedBody decoding."""

import plistlib

from src.messaging.decoder import MessageDecoder, extract_message_text

from tests.fakes import typedstream


class TestMessageDecoder:
    """Test the decoding strategies."""

    def setup_method(self):
        self.decoder = MessageDecoder()

    def test_typedstream_text(self):
        assert self.decoder.decode_attributed_body(typedstream("omw, 5 min")) == "omw, 5 min"

    def test_typedstream_unicode(self):
        assert self.decoder.decode_attributed_body(typedstream("café 😀")) == "café 😀"

    def test_typedstream_long_text(self):
        text = "long message " * 30
        assert self.decoder.decode_attributed_body(typedstream(text)) == text.strip()

    def test_binary_plist(self):
        data = plistlib.dumps({"root": [{"NSString": "hi there"}]}, fmt=plistlib.FMT_BINARY)
        assert self.decoder.decode_attributed_body(data) == "hi there"

    def test_embedded_strings_fallback(self):
        data = b"\x00\x01NSObject\x00\x02see you at the park\x00\x03"
        assert self.decoder.decode_attributed_body(data) == "see you at the park"

    def test_undecodable(self):
        assert self.decoder.decode_attributed_body(b"\x00\x01\x02\x03") is None
        assert self.decoder.decode_attributed_body(b"") is None
        assert self.decoder.decode_attributed_body(None) is None

    def test_decode_stats(self):
        self.decoder.decode_attributed_body(typedstream("one"))
        self.decoder.decode_attributed_body(b"\x00\x01")

        stats = self.decoder.get_decode_stats()
        assert stats["success_count"] == 1
        assert stats["failure_count"] == 1
        assert stats["success_rate_percent"] == 50.0


class TestExtractMessageText:
    """Test text column / attributedBody precedence."""

    def test_text_column_wins(self):
        assert extract_message_text("  hello ", typedstream("other")) == "hello"

    def test_falls_back_to_attributed_body(self):
        assert extract_message_text(None, typedstream("from body")) == "from body"
        assert extract_message_text("   ", typedstream("from body")) == "from body"

    def test_nothing_available(self):
        assert extract_message_text(None, None) is None
