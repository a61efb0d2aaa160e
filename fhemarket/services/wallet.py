"""Wallet signer seam used for transactions and decryption authorizations."""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount

from fhemarket.core.config import Settings, get_settings
from fhemarket.core.errors import WalletNotConnected

from .fhe.base import as_hex


class WalletSigner(Protocol):
    """Anything able to produce EIP-712 signatures for an address."""

    address: str

    async def sign_typed_data(self, typed_data: Mapping[str, Any]) -> str:
        """Return a 0x-prefixed signature, or raise if the user rejects."""


class LocalAccountSigner:
    """Signer backed by a private key held in process memory."""

    def __init__(self, private_key: str) -> None:
        self.account: LocalAccount = Account.from_key(private_key)
        self.address: str = self.account.address

    async def sign_typed_data(self, typed_data: Mapping[str, Any]) -> str:
        signable = encode_typed_data(full_message=dict(typed_data))
        signed = self.account.sign_message(signable)
        return as_hex(bytes(signed.signature))

    def sign_transaction(self, transaction: Mapping[str, Any]) -> bytes:
        signed = self.account.sign_transaction(dict(transaction))
        return bytes(signed.raw_transaction)

    def __repr__(self) -> str:
        return f"LocalAccountSigner(address={self.address})"


def signer_from_settings(settings: Settings | None = None) -> LocalAccountSigner:
    resolved = settings or get_settings()
    if not resolved.private_key:
        raise WalletNotConnected("PRIVATE_KEY is not configured; no wallet is connected")
    return LocalAccountSigner(resolved.private_key)


__all__ = ["LocalAccountSigner", "WalletSigner", "signer_from_settings"]
