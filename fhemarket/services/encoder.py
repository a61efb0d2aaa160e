"""Turn plaintext bet parameters into ciphertext handles and an input proof."""

from __future__ import annotations

from loguru import logger

from fhemarket.core.errors import InvalidBetInput
from fhemarket.domain import EncryptedInput, SemanticType

from .fhe.base import FheBackend, check_uint
from .fhe.registry import get_instance


def _validate(shares: int, direction: bool) -> None:
    check_uint(shares, SemanticType.EUINT32)
    if not isinstance(direction, bool):
        raise InvalidBetInput("Bet direction must be a boolean (True for YES, False for NO)")


async def build_encrypted_bet(
    contract_address: str,
    user_address: str,
    shares: int,
    direction: bool,
    *,
    backend: FheBackend | None = None,
) -> EncryptedInput:
    """Encrypt ``[shares, direction]`` for submission by ``user_address``.

    The returned input is single-use and must be submitted in one ledger call
    together with its proof. Input validation happens before the backend is
    touched; an uninitialized shared backend raises
    :class:`UninitializedEncryptionBackend`.
    """

    _validate(shares, direction)
    active = backend or get_instance()
    builder = active.create_encrypted_input(contract_address, user_address)
    builder.add32(shares)
    builder.add_bool(direction)
    encrypted = await builder.encrypt()
    logger.debug(
        "Encrypted bet for contract={} user={} handles={}",
        contract_address,
        user_address,
        len(encrypted.handles),
    )
    return encrypted


__all__ = ["build_encrypted_bet"]
