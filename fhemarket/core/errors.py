"""Typed failures raised by the confidential market client."""

from __future__ import annotations


class FheMarketError(Exception):
    """Base class for every error raised by this package."""


class WalletNotConnected(FheMarketError):
    """Raised when an operation needs a wallet and none is configured."""


class UninitializedEncryptionBackend(FheMarketError):
    """Raised when the encryption backend is used before ``initialize()``."""


class BackendInitializationError(FheMarketError):
    """Raised when creating the encryption backend fails."""


class EncryptionFailed(FheMarketError):
    """Raised when the encryption backend cannot produce handles and a proof."""


class InvalidBetInput(FheMarketError, ValueError):
    """Raised for plaintext bet parameters outside their encodable range."""


class InputAlreadySubmitted(FheMarketError):
    """Raised when an encrypted input is submitted more than once."""


class AuthorizationDenied(FheMarketError):
    """Raised when a decryption authorization is refused or out of scope."""


class DecryptionUnavailable(FheMarketError):
    """Raised when the relay cannot be reached or omits a requested handle."""


class MalformedPlaintext(FheMarketError):
    """Raised when a decrypted value cannot be coerced to its semantic type."""


class EventFetchError(FheMarketError):
    """Raised when the ledger event registry cannot be read."""


class ClaimNotAvailable(FheMarketError):
    """Raised when a claim is attempted before aggregate totals are revealed."""


class LedgerTransactionError(FheMarketError):
    """Raised when a ledger transaction is mined with a failed status."""

    def __init__(self, message: str, *, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


__all__ = [
    "AuthorizationDenied",
    "BackendInitializationError",
    "ClaimNotAvailable",
    "DecryptionUnavailable",
    "EncryptionFailed",
    "EventFetchError",
    "FheMarketError",
    "InputAlreadySubmitted",
    "InvalidBetInput",
    "LedgerTransactionError",
    "MalformedPlaintext",
    "UninitializedEncryptionBackend",
    "WalletNotConnected",
]
