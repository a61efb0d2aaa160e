"""HTTP backend talking to the encryption sidecar and the decryption relay."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import httpx
from loguru import logger

from fhemarket.core.config import Settings, get_settings
from fhemarket.core.errors import (
    AuthorizationDenied,
    BackendInitializationError,
    DecryptionUnavailable,
    EncryptionFailed,
)
from fhemarket.domain import EncryptedInput, HandleContractPair, Keypair

from .base import (
    BufferedEncryptedInput,
    InputField,
    as_hex,
    build_user_decrypt_typed_data,
    generate_keypair,
    strip_0x,
)

_DENIED_STATUSES = {401, 403}


class RelayerBackend:
    """Backend for a deployed network.

    Plaintext fields only ever travel to the encryption sidecar configured by
    ``encryptor_url``; the relay receives handles, the public key, and the
    signed authorization.
    """

    name = "relayer"

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        encryptor_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        timeout = self.settings.relayer_timeout_seconds
        self.client = httpx.AsyncClient(
            base_url=self.settings.relayer_base_url,
            timeout=timeout,
            transport=transport,
        )
        self.encryptor = httpx.AsyncClient(
            base_url=self.settings.encryptor_base_url,
            timeout=timeout,
            transport=encryptor_transport,
        )
        self.key_material: Mapping[str, Any] | None = None

    async def setup(self) -> None:
        """Check that the relay serves this network's FHE key material.

        Ciphertexts are built by the encryption sidecar, which loads the keys
        itself, so the payload is only kept on ``key_material`` for inspection.
        A relay that cannot publish it fails initialization early.
        """

        path = self.settings.relayer_keyurl_path
        logger.info("Fetching FHE key material from {}{}", self.settings.relayer_base_url, path)
        try:
            response = await self.client.get(path)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise BackendInitializationError(
                f"Failed to fetch FHE key material from relay: {exc}"
            ) from exc
        if not isinstance(payload, Mapping):
            raise BackendInitializationError("Relay returned malformed key material")
        self.key_material = payload

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
        payload = {
            "contractAddress": contract_address,
            "userAddress": user_address,
            "contractsChainId": str(self.settings.chain_id),
            "values": [
                {"type": field.semantic_type.value, "value": field.value} for field in fields
            ],
        }
        try:
            response = await self.encryptor.post(self.settings.encryptor_encrypt_path, json=payload)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise EncryptionFailed(f"Encryption sidecar request failed: {exc}") from exc

        handles = data.get("handles") if isinstance(data, Mapping) else None
        proof = data.get("inputProof") if isinstance(data, Mapping) else None
        if not isinstance(handles, list) or proof is None:
            raise EncryptionFailed("Encryption sidecar response is missing handles or inputProof")
        return EncryptedInput(
            handles=tuple(as_hex(handle) for handle in handles),
            input_proof=as_hex(proof),
            contract_address=contract_address,
            user_address=user_address,
        )

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
        payload = {
            "handleContractPairs": [
                {"handle": pair.handle, "contractAddress": pair.contract_address}
                for pair in pairs
            ],
            "requestValidity": {
                "startTimestamp": str(start_timestamp),
                "durationDays": str(duration_days),
            },
            "contractsChainId": str(self.settings.chain_id),
            "contractAddresses": list(contract_addresses),
            "userAddress": user_address,
            "signature": strip_0x(signature),
            "publicKey": strip_0x(keypair.public_key),
            "extraData": "0x00",
        }
        path = self.settings.relayer_user_decrypt_path
        logger.info("Relay user-decrypt for {} handles signer={}", len(pairs), user_address)
        try:
            response = await self.client.post(path, json=payload)
        except httpx.HTTPError as exc:
            raise DecryptionUnavailable(f"Decryption relay unreachable: {exc}") from exc

        if response.status_code in _DENIED_STATUSES:
            raise AuthorizationDenied(
                f"Relay refused the decryption authorization (HTTP {response.status_code})"
            )
        if response.is_error:
            raise DecryptionUnavailable(f"Decryption relay returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise DecryptionUnavailable("Decryption relay returned a non-JSON body") from exc

        results = data.get("response", data) if isinstance(data, Mapping) else None
        if not isinstance(results, Mapping):
            raise DecryptionUnavailable("Decryption relay returned a malformed result mapping")
        return {as_hex(handle): value for handle, value in results.items()}

    async def aclose(self) -> None:
        await self.client.aclose()
        await self.encryptor.aclose()

    async def __aenter__(self) -> "RelayerBackend":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


__all__ = ["RelayerBackend"]
