"""Transport encoding for document content.

The contents API only accepts base64 payloads. Text is encoded as UTF-8 first
so that any Unicode string survives the round trip.
"""

import base64
import binascii

from notesync.sync.exceptions import CodecError


class ContentCodec:
    """Reversible text <-> base64 transform used for every remote write."""

    encoding = "utf-8"

    @classmethod
    def encode(cls, text: str) -> str:
        """Encode text for transport.

        Args:
            text: Native document text

        Returns:
            ASCII base64 string of the UTF-8 bytes

        Raises:
            CodecError: If text is not a string or is not encodable
        """
        if not isinstance(text, str):
            raise CodecError(f"Expected str, got {type(text).__name__}")
        try:
            raw = text.encode(cls.encoding)
        except UnicodeEncodeError as e:
            raise CodecError(f"Content is not valid Unicode: {e}") from e
        return base64.b64encode(raw).decode("ascii")

    @classmethod
    def decode(cls, transport: str | bytes) -> str:
        """Decode a transport payload back to text.

        Line-wrapped base64 (as returned by the contents API) is accepted.

        Raises:
            CodecError: If the payload is not base64 or not UTF-8
        """
        if isinstance(transport, str):
            if not transport.isascii():
                raise CodecError("Transport payload must be ASCII base64")
            transport = transport.encode("ascii")
        if not isinstance(transport, (bytes, bytearray)):
            raise CodecError(f"Expected str or bytes, got {type(transport).__name__}")

        compact = b"".join(transport.split())
        try:
            raw = base64.b64decode(compact, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CodecError(f"Invalid base64 payload: {e}") from e
        try:
            return raw.decode(cls.encoding)
        except UnicodeDecodeError as e:
            raise CodecError(f"Payload is not valid UTF-8: {e}") from e
