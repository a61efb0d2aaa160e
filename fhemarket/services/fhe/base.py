"""Backend contract for FHE encryption and user decryption."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from fhemarket.core.errors import EncryptionFailed, InputAlreadySubmitted, InvalidBetInput
from fhemarket.domain import EncryptedInput, HandleContractPair, Keypair, SemanticType

USER_DECRYPT_PRIMARY_TYPE = "UserDecryptRequestVerification"

_EIP712_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]
_USER_DECRYPT_FIELDS = [
    {"name": "publicKey", "type": "bytes"},
    {"name": "contractAddresses", "type": "address[]"},
    {"name": "startTimestamp", "type": "uint256"},
    {"name": "durationDays", "type": "uint256"},
    {"name": "extraData", "type": "bytes"},
]

_UINT_BITS = {SemanticType.EUINT32: 32, SemanticType.EUINT64: 64}


def as_hex(value: Any) -> str:
    """Return ``value`` as a lowercase 0x-prefixed hex string."""

    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex()
    if isinstance(value, int) and not isinstance(value, bool):
        return "0x" + value.to_bytes(32, "big").hex()
    if isinstance(value, str):
        text = value.strip().lower()
        return text if text.startswith("0x") else "0x" + text
    raise TypeError(f"Cannot convert {type(value).__name__} to a hex handle")


def strip_0x(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


@dataclass(slots=True, frozen=True)
class InputField:
    semantic_type: SemanticType
    value: int | bool


EncryptFields = Callable[[str, str, Sequence[InputField]], Awaitable[EncryptedInput]]


class BufferedEncryptedInput:
    """Collects plaintext fields in order, then encrypts them in one call.

    The resulting proof covers exactly this field order and the
    (contract, user) pair the buffer was opened for.
    """

    def __init__(
        self,
        contract_address: str,
        user_address: str,
        encrypt_fields: EncryptFields,
    ) -> None:
        self.contract_address = contract_address
        self.user_address = user_address
        self._encrypt_fields = encrypt_fields
        self._fields: list[InputField] = []
        self._sealed = False

    @property
    def fields(self) -> tuple[InputField, ...]:
        return tuple(self._fields)

    def add_bool(self, value: bool) -> "BufferedEncryptedInput":
        if not isinstance(value, bool):
            raise InvalidBetInput(f"Expected a boolean, got {type(value).__name__}")
        self._fields.append(InputField(SemanticType.EBOOL, value))
        return self

    def add32(self, value: int) -> "BufferedEncryptedInput":
        self._fields.append(InputField(SemanticType.EUINT32, check_uint(value, SemanticType.EUINT32)))
        return self

    def add64(self, value: int) -> "BufferedEncryptedInput":
        self._fields.append(InputField(SemanticType.EUINT64, check_uint(value, SemanticType.EUINT64)))
        return self

    async def encrypt(self) -> EncryptedInput:
        if self._sealed:
            raise InputAlreadySubmitted("Encrypted input buffer was already encrypted")
        if not self._fields:
            raise EncryptionFailed("Cannot encrypt an empty input")
        self._sealed = True
        encrypted = await self._encrypt_fields(
            self.contract_address, self.user_address, tuple(self._fields)
        )
        if len(encrypted.handles) != len(self._fields):
            raise EncryptionFailed(
                f"Backend returned {len(encrypted.handles)} handles for {len(self._fields)} fields"
            )
        return encrypted


def check_uint(value: Any, semantic_type: SemanticType) -> int:
    bits = _UINT_BITS[semantic_type]
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidBetInput(f"{semantic_type.value} value must be an integer")
    upper = (1 << bits) - 1
    if not 0 <= value <= upper:
        raise InvalidBetInput(f"{semantic_type.value} value must be within [0, {upper}]")
    return value


def generate_keypair() -> Keypair:
    """Create a fresh single-use X25519 keypair for one decryption session."""

    private = X25519PrivateKey.generate()
    private_bytes = private.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_bytes = private.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return Keypair(public_key="0x" + public_bytes.hex(), private_key=bytearray(private_bytes))


def build_user_decrypt_typed_data(
    public_key: str,
    contract_addresses: Sequence[str],
    start_timestamp: int,
    duration_days: int,
    *,
    chain_id: int,
    verifying_contract: str,
) -> dict[str, Any]:
    """Return the EIP-712 payload a wallet signs to authorize user decryption."""

    return {
        "types": {
            "EIP712Domain": list(_EIP712_DOMAIN_FIELDS),
            USER_DECRYPT_PRIMARY_TYPE: list(_USER_DECRYPT_FIELDS),
        },
        "primaryType": USER_DECRYPT_PRIMARY_TYPE,
        "domain": {
            "name": "Decryption",
            "version": "1",
            "chainId": chain_id,
            "verifyingContract": verifying_contract,
        },
        "message": {
            "publicKey": as_hex(public_key),
            "contractAddresses": list(contract_addresses),
            "startTimestamp": int(start_timestamp),
            "durationDays": int(duration_days),
            "extraData": "0x00",
        },
    }


class FheBackend(Protocol):
    """Interface implemented by encryption/decryption backends."""

    name: str

    async def setup(self) -> None:
        """Perform one-time expensive initialization."""

    def create_encrypted_input(
        self, contract_address: str, user_address: str
    ) -> BufferedEncryptedInput:
        """Open an encryption context scoped to (contract, user)."""

    def generate_keypair(self) -> Keypair:
        """Return a fresh ephemeral keypair."""

    def create_eip712(
        self,
        public_key: str,
        contract_addresses: Sequence[str],
        start_timestamp: int,
        duration_days: int,
    ) -> dict[str, Any]:
        """Return the typed-data authorization payload."""

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
        """Return a mapping of handle to raw plaintext for the requested pairs."""

    async def aclose(self) -> None:
        """Release network resources."""


__all__ = [
    "BufferedEncryptedInput",
    "FheBackend",
    "InputField",
    "USER_DECRYPT_PRIMARY_TYPE",
    "as_hex",
    "build_user_decrypt_typed_data",
    "check_uint",
    "generate_keypair",
    "strip_0x",
]
