from __future__ import annotations


class QuoteFeedError(Exception):
    """Base error for the quote feed client."""


class TransportError(QuoteFeedError):
    """Connect, send or receive failure reported by the transport."""


class HandshakeFailedError(QuoteFeedError):
    """Server did not acknowledge the connection or rejected the handshake."""


class DecodeError(QuoteFeedError, ValueError):
    kind = "decode_error"


class MalformedEnvelopeError(DecodeError):
    kind = "malformed_envelope"


class InvalidJsonError(DecodeError):
    kind = "invalid_json"


class InvalidNumberError(DecodeError):
    kind = "invalid_number"
