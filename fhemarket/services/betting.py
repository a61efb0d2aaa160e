"""Bet placement and reveal of the caller's own encrypted bets."""

from __future__ import annotations

from typing import Protocol, Sequence

from loguru import logger

from fhemarket.core.errors import InvalidBetInput, WalletNotConnected
from fhemarket.domain import ZERO_HANDLE, Bet, PredictionEvent, SemanticType, UserBet

from .decryption import DecryptionSessionManager, DecryptRequest
from .encoder import build_encrypted_bet
from .fhe.base import FheBackend, as_hex
from .wallet import WalletSigner


class BetGateway(Protocol):
    contract_address: str

    async def read_bet(self, event_id: int, address: str) -> Bet: ...

    async def write_place_bet(
        self,
        event_id: int,
        shares_handle: str,
        direction_handle: str,
        proof: str,
        value: int,
    ) -> str: ...


class BetService:
    """Encrypts bets for submission and reveals the caller's own bets."""

    def __init__(
        self,
        gateway: BetGateway,
        signer: WalletSigner | None,
        *,
        backend: FheBackend | None = None,
        decryptor: DecryptionSessionManager | None = None,
    ) -> None:
        self.gateway = gateway
        self.signer = signer
        self.backend = backend
        self.decryptor = decryptor or DecryptionSessionManager(backend)

    def _require_signer(self) -> WalletSigner:
        if self.signer is None:
            raise WalletNotConnected("Connect a wallet before placing a bet")
        return self.signer

    async def place_bet(
        self,
        event: PredictionEvent,
        shares: int,
        direction: bool,
        payment: int | None = None,
    ) -> str:
        """Encrypt ``[shares, direction]`` and submit it with its proof in one call.

        ``payment`` defaults to ``shares`` times the price of the chosen side.
        """

        signer = self._require_signer()
        if payment is None:
            payment = shares * event.price_for(direction) if isinstance(shares, int) else 0
        if isinstance(payment, bool) or not isinstance(payment, int) or payment < 0:
            raise InvalidBetInput(f"Payment must be a non-negative amount of wei, got {payment!r}")

        encrypted = await build_encrypted_bet(
            self.gateway.contract_address,
            signer.address,
            shares,
            direction,
            backend=self.backend,
        )
        encrypted.mark_submitted()
        tx_hash = await self.gateway.write_place_bet(
            event.id,
            encrypted.shares_handle,
            encrypted.direction_handle,
            encrypted.input_proof,
            payment,
        )
        logger.info("Bet placed on event {} value={} tx={}", event.id, payment, tx_hash)
        return tx_hash

    async def reveal_bet(self, event_id: int) -> tuple[int, bool] | None:
        """Decrypt the caller's shares and direction for ``event_id``."""

        signer = self._require_signer()
        bet = await self.gateway.read_bet(event_id, signer.address)
        if not bet.placed or ZERO_HANDLE in (bet.shares_handle, bet.direction_handle):
            return None
        contract = self.gateway.contract_address
        values = await self.decryptor.decrypt_many(
            [
                DecryptRequest(bet.shares_handle, contract, SemanticType.EUINT32),
                DecryptRequest(bet.direction_handle, contract, SemanticType.EBOOL),
            ],
            signer,
        )
        return int(values[as_hex(bet.shares_handle)]), bool(values[as_hex(bet.direction_handle)])

    async def reveal_bets(self, user_bets: Sequence[UserBet]) -> list[UserBet]:
        """Fill in ``shares`` and ``direction`` for every bet with one signature."""

        signer = self._require_signer()
        contract = self.gateway.contract_address
        requests: list[DecryptRequest] = []
        revealable: list[UserBet] = []
        for user_bet in user_bets:
            bet = user_bet.bet
            handles = (bet.shares_handle, bet.direction_handle)
            if not bet.placed or ZERO_HANDLE in handles:
                continue
            if any(handle in user_bet.event.aggregate_handles for handle in handles):
                logger.warning("Skipping event {}: bet handle matches an aggregate total", bet.event_id)
                continue
            requests.append(DecryptRequest(bet.shares_handle, contract, SemanticType.EUINT32))
            requests.append(DecryptRequest(bet.direction_handle, contract, SemanticType.EBOOL))
            revealable.append(user_bet)

        if not requests:
            return list(user_bets)
        values = await self.decryptor.decrypt_many(requests, signer)
        for user_bet in revealable:
            user_bet.shares = int(values[as_hex(user_bet.bet.shares_handle)])
            user_bet.direction = bool(values[as_hex(user_bet.bet.direction_handle)])
        return list(user_bets)


__all__ = ["BetGateway", "BetService"]
