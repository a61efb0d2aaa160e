"""In-process backend mirroring the access-control rules of a real network.

Ciphertexts are opaque handles pointing at a local plaintext table, input
proofs are HMACs over (contract, user, ordered handles), and user decryption
checks the EIP-712 signature, the validity window, the signed contract scope
and the per-handle ACL before returning anything.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from eth_account import Account
from eth_account.messages import encode_typed_data
from loguru import logger

from fhemarket.core.config import Settings, get_settings
from fhemarket.core.errors import AuthorizationDenied, DecryptionUnavailable
from fhemarket.domain import EncryptedInput, HandleContractPair, Keypair, SemanticType

from .base import (
    BufferedEncryptedInput,
    InputField,
    as_hex,
    build_user_decrypt_typed_data,
    check_uint,
    generate_keypair,
)


@dataclass(slots=True)
class _Ciphertext:
    value: int
    semantic_type: SemanticType


class MockFheBackend:
    name = "mock"

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        proof_secret: bytes | None = None,
        clock: Any = time.time,
    ) -> None:
        self.settings = settings or get_settings()
        self._secret = proof_secret or secrets.token_bytes(32)
        self._clock = clock
        self._ciphertexts: dict[str, _Ciphertext] = {}
        self._acl: dict[str, set[tuple[str, str]]] = {}
        self.decrypt_calls = 0

    async def setup(self) -> None:
        logger.info("Mock FHE backend ready")

    def create_encrypted_input(
        self, contract_address: str, user_address: str
    ) -> BufferedEncryptedInput:
        return BufferedEncryptedInput(contract_address, user_address, self._encrypt_fields)

    async def _encrypt_fields(
        self,
        contract_address: str,
        user_address: str,
        fields: Sequence[InputField],
    ) -> EncryptedInput:
        handles = []
        for field in fields:
            handle = self.store(int(field.value), field.semantic_type)
            self.allow(handle, contract_address, user_address)
            handles.append(handle)
        proof = self._proof(contract_address, user_address, handles)
        return EncryptedInput(
            handles=tuple(handles),
            input_proof=proof,
            contract_address=contract_address,
            user_address=user_address,
        )

    def _proof(self, contract_address: str, user_address: str, handles: Sequence[str]) -> str:
        material = "|".join([contract_address.lower(), user_address.lower(), *handles])
        digest = hmac.new(self._secret, material.encode("utf-8"), hashlib.sha256).hexdigest()
        return "0x" + digest

    def verify_input(
        self,
        contract_address: str,
        user_address: str,
        handles: Sequence[str],
        proof: str,
    ) -> bool:
        expected = self._proof(contract_address, user_address, [as_hex(h) for h in handles])
        return hmac.compare_digest(expected, as_hex(proof))

    def store(self, value: int, semantic_type: SemanticType) -> str:
        """Register a ciphertext for ``value`` and return its handle."""

        if semantic_type is SemanticType.EBOOL:
            value = 1 if value else 0
        else:
            check_uint(value, semantic_type)
        handle = "0x" + secrets.token_bytes(32).hex()
        self._ciphertexts[handle] = _Ciphertext(value=value, semantic_type=semantic_type)
        return handle

    def allow(self, handle: str, contract_address: str, user_address: str) -> None:
        self._acl.setdefault(as_hex(handle), set()).add(
            (contract_address.lower(), user_address.lower())
        )

    def plaintext_of(self, handle: str) -> int | bool:
        """Ledger-side view of a ciphertext, used by settlement fakes."""

        entry = self._ciphertexts[as_hex(handle)]
        if entry.semantic_type is SemanticType.EBOOL:
            return bool(entry.value)
        return entry.value

    def generate_keypair(self) -> Keypair:
        return generate_keypair()

    def create_eip712(
        self,
        public_key: str,
        contract_addresses: Sequence[str],
        start_timestamp: int,
        duration_days: int,
    ) -> dict[str, Any]:
        return build_user_decrypt_typed_data(
            public_key,
            contract_addresses,
            start_timestamp,
            duration_days,
            chain_id=self.settings.gateway_chain_id,
            verifying_contract=self.settings.verifying_contract_address_decryption,
        )

    async def user_decrypt(
        self,
        pairs: Sequence[HandleContractPair],
        keypair: Keypair,
        signature: str,
        contract_addresses: Sequence[str],
        user_address: str,
        start_timestamp: int,
        duration_days: int,
    ) -> Mapping[str, Any]:
        self.decrypt_calls += 1
        typed_data = self.create_eip712(
            keypair.public_key, contract_addresses, start_timestamp, duration_days
        )
        try:
            recovered = Account.recover_message(
                encode_typed_data(full_message=typed_data), signature=as_hex(signature)
            )
        except Exception as exc:
            raise AuthorizationDenied(f"Invalid decryption signature: {exc}") from exc
        if recovered.lower() != user_address.lower():
            raise AuthorizationDenied("Decryption signature does not match the requesting user")

        now = int(self._clock())
        if not start_timestamp <= now < start_timestamp + duration_days * 86_400:
            raise AuthorizationDenied("Decryption authorization is outside its validity window")

        scope = {address.lower() for address in contract_addresses}
        results: dict[str, Any] = {}
        for pair in pairs:
            handle = as_hex(pair.handle)
            contract = pair.contract_address.lower()
            if contract not in scope:
                raise AuthorizationDenied(
                    f"Contract {pair.contract_address} is not covered by the signed authorization"
                )
            if (contract, user_address.lower()) not in self._acl.get(handle, set()):
                raise AuthorizationDenied(f"User is not allowed to decrypt handle {handle}")
            entry = self._ciphertexts.get(handle)
            if entry is None:
                raise DecryptionUnavailable(f"Unknown ciphertext handle {handle}")
            results[handle] = entry.value
        return results

    async def aclose(self) -> None:
        return None


__all__ = ["MockFheBackend"]
