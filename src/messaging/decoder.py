"""Message Decoder - Extract text from attributedBody blobs in chat.db

Newer macOS releases leave the message `text` column empty and store the
content only in the archived NSAttributedString.
"""

import logging
import plistlib
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

STREAMTYPED_HEADER = b"\x04\x0bstreamtyped"
NSSTRING_MARKER = b"NSString"
# Bytes that precede the length-prefixed text in typedstream archives
TEXT_PREFIX = b"\x94\x84\x01\x2b"
# Marker for a length that spills into the following two bytes
MULTIBYTE_LENGTH = 0x81

ARCHIVE_ARTIFACTS = (
    "nsstring",
    "nsattributed",
    "nsmutable",
    "nsarchive",
    "streamtyped",
    "nskeyedarchiver",
    "nsobject",
    "nsdictionary",
)


class MessageDecoder:
    """Decodes attributedBody blobs, keeping success/failure counts"""

    def __init__(self):
        self.decode_success_count = 0
        self.decode_failure_count = 0

    def decode_attributed_body(self, attributed_body: Optional[bytes]) -> Optional[str]:
        """
        Decode attributedBody binary data to message text.

        Args:
            attributed_body: Binary data from the attributedBody column

        Returns:
            Decoded text or None if no strategy succeeded
        """
        if not attributed_body:
            return None

        for strategy in (
            self._decode_typedstream,
            self._decode_binary_plist,
            self._extract_embedded_strings,
        ):
            try:
                text = strategy(attributed_body)
            except (ValueError, IndexError, plistlib.InvalidFileException) as e:
                logger.debug(f"{strategy.__name__} failed: {e}")
                continue
            if text:
                self.decode_success_count += 1
                return text

        self.decode_failure_count += 1
        logger.warning(f"Failed to decode attributedBody of length {len(attributed_body)}")
        return None

    def _decode_typedstream(self, data: bytes) -> Optional[str]:
        """Read the length-prefixed string that follows the NSString class marker"""
        if not data.startswith(STREAMTYPED_HEADER):
            return None

        marker_idx = data.find(NSSTRING_MARKER)
        if marker_idx == -1:
            return None
        search_start = marker_idx + len(NSSTRING_MARKER)

        prefix_idx = data.find(TEXT_PREFIX, search_start)
        if prefix_idx != -1:
            length_idx = prefix_idx + len(TEXT_PREFIX)
        else:
            plus_idx = data.find(b"+", search_start)
            if plus_idx == -1:
                return None
            length_idx = plus_idx + 1

        if length_idx >= len(data):
            return None

        length = data[length_idx]
        text_start = length_idx + 1
        if length == MULTIBYTE_LENGTH:
            length = int.from_bytes(data[length_idx + 1:length_idx + 3], "little")
            text_start = length_idx + 3

        if length == 0 or text_start + length > len(data):
            return None

        decoded = data[text_start:text_start + length].decode("utf-8", errors="ignore")
        text = "".join(c for c in decoded if c.isprintable() or c == "\n").strip()
        return text or None

    def _decode_binary_plist(self, data: bytes) -> Optional[str]:
        if not data.startswith(b"bplist"):
            return None
        return self._extract_text_from_plist(plistlib.loads(data))

    def _extract_text_from_plist(self, plist_data: Any) -> Optional[str]:
        """Recursively find the first non-empty string in a plist structure"""
        if isinstance(plist_data, str):
            return plist_data.strip() or None

        if isinstance(plist_data, dict):
            for key in ("NSString", "string", "text", "content"):
                value = plist_data.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
            values = plist_data.values()
        elif isinstance(plist_data, list):
            values = plist_data
        else:
            return None

        for value in values:
            text = self._extract_text_from_plist(value)
            if text:
                return text
        return None

    def _extract_embedded_strings(self, data: bytes) -> Optional[str]:
        """
        Last resort: the longest readable UTF-8 run that is not an archive
        class name
        """
        candidates = []
        current = bytearray()

        for byte in data + b"\x00":
            if byte >= 32 and byte != 127 or byte in (9, 10, 13):
                current.append(byte)
                continue

            if len(current) > 3:
                try:
                    candidates.append(current.decode("utf-8").strip())
                except UnicodeDecodeError:
                    pass
            current = bytearray()

        meaningful = [
            s for s in candidates
            if len(s) > 3
            and any(c.isalpha() for c in s)
            and not any(artifact in s.lower() for artifact in ARCHIVE_ARTIFACTS)
        ]
        return max(meaningful, key=len) if meaningful else None

    def get_decode_stats(self) -> Dict[str, Any]:
        total = self.decode_success_count + self.decode_failure_count
        success_rate = (self.decode_success_count / total * 100) if total > 0 else 0

        return {
            "success_count": self.decode_success_count,
            "failure_count": self.decode_failure_count,
            "total_attempts": total,
            "success_rate_percent": round(success_rate, 2),
        }


def extract_message_text(
    text: Optional[str], attributed_body: Optional[bytes]
) -> Optional[str]:
    """
    Best available text for a chat.db message row.

    Args:
        text: Value of the text column
        attributed_body: Value of the attributedBody column

    Returns:
        Message text, or None for rows without any (attachments, reactions)
    """
    if text and text.strip():
        return text.strip()

    if attributed_body:
        decoded = MessageDecoder().decode_attributed_body(attributed_body)
        if decoded and decoded.strip():
            return decoded.strip()

    return None
