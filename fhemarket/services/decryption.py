"""User-decryption sessions: keypair, signed authorization, relay round trip.

A session moves through ``NotAuthorized -> KeypairReady -> MessageBuilt ->
Authorized -> Completed | Failed``. One wallet signature authorizes every
(handle, contract) pair whose contract is in the signed scope, so batching is
the default path and :meth:`DecryptionSessionManager.decrypt_one` is a thin
wrapper over it. The ephemeral private key is wiped when the session closes.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Sequence, TypeVar

from loguru import logger

from fhemarket.core.config import Settings, get_settings
from fhemarket.core.errors import (
    AuthorizationDenied,
    DecryptionUnavailable,
    MalformedPlaintext,
    WalletNotConnected,
)
from fhemarket.domain import DecryptionSession, HandleContractPair, SemanticType, SessionState

from .fhe.base import FheBackend, as_hex
from .fhe.registry import get_instance
from .wallet import WalletSigner

T = TypeVar("T")

_UINT_LIMITS = {
    SemanticType.EUINT32: (1 << 32) - 1,
    SemanticType.EUINT64: (1 << 64) - 1,
}
_TRUE_STRINGS = {"true", "1", "0x1", "0x01"}
_FALSE_STRINGS = {"false", "0", "0x0", "0x00"}


@dataclass(slots=True, frozen=True)
class DecryptRequest:
    handle: str
    contract_address: str
    semantic_type: SemanticType = SemanticType.EUINT64

    @property
    def pair(self) -> HandleContractPair:
        return HandleContractPair(as_hex(self.handle), self.contract_address)


def coerce_plaintext(raw: Any, semantic_type: SemanticType) -> bool | int:
    """Coerce a relay plaintext to ``semantic_type`` or raise MalformedPlaintext."""

    if semantic_type is SemanticType.EBOOL:
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, int) and raw in (0, 1):
            return bool(raw)
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        raise MalformedPlaintext(f"Cannot interpret {raw!r} as ebool")

    upper = _UINT_LIMITS[semantic_type]
    value: int
    if isinstance(raw, bool):
        raise MalformedPlaintext(f"Expected an integer for {semantic_type.value}, got a boolean")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        text = raw.strip()
        try:
            value = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError as exc:
            raise MalformedPlaintext(f"Cannot interpret {raw!r} as {semantic_type.value}") from exc
    else:
        raise MalformedPlaintext(f"Cannot interpret {raw!r} as {semantic_type.value}")
    if not 0 <= value <= upper:
        raise MalformedPlaintext(f"{value} is outside the {semantic_type.value} range")
    return value


def _unique(addresses: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered: list[str] = []
    for address in addresses:
        key = address.lower()
        if key not in seen:
            seen.add(key)
            ordered.append(address)
    return tuple(ordered)


class DecryptionSessionManager:
    def __init__(
        self,
        backend: FheBackend | None = None,
        *,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self.settings = settings or get_settings()
        self._clock = clock

    @property
    def backend(self) -> FheBackend:
        return self._backend or get_instance()

    async def authorize(
        self,
        contract_addresses: Sequence[str],
        signer: WalletSigner | None,
    ) -> DecryptionSession:
        """Build and sign an authorization covering ``contract_addresses``."""

        if signer is None:
            raise WalletNotConnected("A wallet signer is required to authorize decryption")
        scope = _unique(contract_addresses)
        if not scope:
            raise ValueError("At least one contract address is required")

        backend = self.backend
        session = DecryptionSession(
            contract_addresses=scope,
            signer_address=signer.address,
            start_timestamp=int(self._clock()),
            duration_days=self.settings.decryption_duration_days,
        )
        session.keypair = backend.generate_keypair()
        session.state = SessionState.KEYPAIR_READY
        try:
            session.typed_data = backend.create_eip712(
                session.keypair.public_key,
                list(scope),
                session.start_timestamp,
                session.duration_days,
            )
            session.state = SessionState.MESSAGE_BUILT
            session.signature = await signer.sign_typed_data(session.typed_data)
        except Exception as exc:
            signing = session.state is SessionState.MESSAGE_BUILT
            session.state = SessionState.FAILED
            session.errors.append(str(exc))
            session.close()
            if not signing:
                raise
            raise AuthorizationDenied(f"Wallet rejected the decryption authorization: {exc}") from exc

        session.state = SessionState.AUTHORIZED
        logger.debug(
            "Decryption session authorized signer={} contracts={} window={}d",
            session.signer_address,
            len(scope),
            session.duration_days,
        )
        return session

    @asynccontextmanager
    async def open_session(
        self,
        contract_addresses: Sequence[str],
        signer: WalletSigner | None,
    ) -> AsyncIterator[DecryptionSession]:
        session = await self.authorize(contract_addresses, signer)
        try:
            yield session
        finally:
            session.close()

    async def decrypt(
        self,
        session: DecryptionSession,
        pairs: Sequence[HandleContractPair],
    ) -> dict[str, Any]:
        """Reveal ``pairs`` through the relay using an authorized session."""

        if session.keypair is None or session.signature is None:
            raise AuthorizationDenied("Decryption session is closed or was never authorized")
        if session.state not in (SessionState.AUTHORIZED, SessionState.COMPLETED):
            raise AuthorizationDenied(f"Decryption session is in state {session.state.value}")
        if not session.is_valid_at(int(self._clock())):
            raise AuthorizationDenied("Decryption authorization has expired")

        normalized = [HandleContractPair(as_hex(pair.handle), pair.contract_address) for pair in pairs]
        for pair in normalized:
            if not session.covers(pair.contract_address):
                raise AuthorizationDenied(
                    f"Contract {pair.contract_address} is outside the signed decryption scope"
                )
        if not normalized:
            return {}

        try:
            raw = await self.backend.user_decrypt(
                normalized,
                session.keypair,
                session.signature,
                list(session.contract_addresses),
                session.signer_address,
                session.start_timestamp,
                session.duration_days,
            )
        except (AuthorizationDenied, DecryptionUnavailable) as exc:
            session.state = SessionState.FAILED
            session.errors.append(str(exc))
            raise

        results = {as_hex(handle): value for handle, value in raw.items()}
        missing = [pair.handle for pair in normalized if pair.handle not in results]
        if missing:
            session.state = SessionState.FAILED
            raise DecryptionUnavailable(f"Relay omitted {len(missing)} requested handle(s): {missing[0]}")

        session.state = SessionState.COMPLETED
        return {pair.handle: results[pair.handle] for pair in normalized}

    async def decrypt_many(
        self,
        requests: Sequence[DecryptRequest],
        signer: WalletSigner | None,
    ) -> dict[str, bool | int]:
        """Reveal many handles with a single wallet signature."""

        if not requests:
            return {}
        types: dict[str, SemanticType] = {}
        for request in requests:
            handle = request.pair.handle
            if types.setdefault(handle, request.semantic_type) is not request.semantic_type:
                raise ValueError(
                    f"Handle {handle} requested as both {types[handle].value} "
                    f"and {request.semantic_type.value}"
                )
        scope = _unique(request.contract_address for request in requests)
        async with self.open_session(scope, signer) as session:
            raw = await self.decrypt(session, [request.pair for request in requests])
        return {
            request.pair.handle: coerce_plaintext(raw[request.pair.handle], request.semantic_type)
            for request in requests
        }

    async def decrypt_one(
        self,
        handle: str,
        contract_address: str,
        signer: WalletSigner | None,
        semantic_type: SemanticType,
    ) -> bool | int:
        request = DecryptRequest(handle, contract_address, semantic_type)
        values = await self.decrypt_many([request], signer)
        return values[request.pair.handle]


async def retry_unavailable(
    operation: Callable[[], Awaitable[T]],
    backoff: Sequence[float] | None = None,
    *,
    settings: Settings | None = None,
) -> T:
    """Re-run ``operation`` after each delay in ``backoff`` while the relay is unavailable.

    ``backoff`` defaults to ``relayer_retry_backoff_seconds``. Authorization
    failures are never retried. The core never calls this on its own; callers
    opt in explicitly.
    """

    if backoff is None:
        backoff = (settings or get_settings()).relayer_retry_backoff_schedule
    delays = list(backoff)
    while True:
        try:
            return await operation()
        except DecryptionUnavailable as exc:
            if not delays:
                raise
            delay = delays.pop(0)
            logger.warning("Decryption relay unavailable ({}); retrying in {}s", exc, delay)
            await asyncio.sleep(delay)


__all__ = [
    "DecryptRequest",
    "DecryptionSessionManager",
    "coerce_plaintext",
    "retry_unavailable",
]
