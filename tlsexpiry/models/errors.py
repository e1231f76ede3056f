"""
Errors raised while fetching a peer's certificate chain.
"""
from typing import Optional


class ChainFetchError(ConnectionError):
    """Base error for a chain fetch that did not produce a chain."""

    def __init__(self, address: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.address = address
        self.cause = cause

    def with_context(self, context: str) -> "ChainFetchError":
        """Return an error of the same kind with ``context`` prefixed to the message."""
        return type(self)(self.address, f"{context} - {self}", cause=self.cause)


class AddressError(ChainFetchError):
    """The address could not be parsed, resolved or connected to in time."""


class HandshakeError(ChainFetchError):
    """TCP connected but the TLS handshake did not complete."""
