"""Reward lifecycle reconciliation and decrypted ledger outcome codes.

Rewards move ``Unclaimed -> Claimed -> Withdrawn``. A claim is only offered
once the event is resolved and its aggregate totals have been revealed; until
then the ledger would record ``EventNotResolved`` instead of crediting
anything.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Protocol

from loguru import logger

from fhemarket.core.errors import ClaimNotAvailable
from fhemarket.domain import (
    Bet,
    ErrorCode,
    LastErrorRecord,
    LedgerOutcome,
    PredictionEvent,
    Reward,
    RewardAction,
    SemanticType,
)

from .decryption import DecryptionSessionManager
from .wallet import WalletSigner


class RewardGateway(Protocol):
    contract_address: str

    async def read_reward_info(self, event_id: int, address: str) -> Reward: ...

    async def read_pending_reward(self, event_id: int, address: str) -> int: ...

    async def read_has_claimed(self, event_id: int, address: str) -> bool: ...

    async def read_last_error_code(self, address: str) -> LastErrorRecord: ...

    async def write_claim_reward(self, event_id: int) -> str: ...

    async def write_withdraw_reward(self, event_id: int) -> str: ...


def available_action(
    event: PredictionEvent,
    reward: Reward,
    bet: Bet | None = None,
) -> RewardAction:
    """Pick the single reward action the user can take right now."""

    if reward.withdrawn:
        return RewardAction.NONE
    if reward.claimed:
        return RewardAction.WITHDRAW if reward.pending_amount > 0 else RewardAction.NONE
    if bet is not None and not bet.placed:
        return RewardAction.NONE
    if not event.resolved:
        return RewardAction.AWAITING_RESOLUTION
    if not event.decryption_done:
        return RewardAction.AWAITING_DECRYPTION
    return RewardAction.CLAIM


class RewardLedgerReconciler:
    def __init__(
        self,
        gateway: RewardGateway,
        user_address: str,
        decryptor: DecryptionSessionManager | None = None,
    ) -> None:
        self.gateway = gateway
        self.user_address = user_address
        self.decryptor = decryptor

    async def get_reward_info(self, event_id: int) -> Reward:
        return await self.gateway.read_reward_info(event_id, self.user_address)

    async def pending_reward(self, event_id: int) -> int:
        return await self.gateway.read_pending_reward(event_id, self.user_address)

    async def has_claimed(self, event_id: int) -> bool:
        return await self.gateway.read_has_claimed(event_id, self.user_address)

    async def action_for(self, event: PredictionEvent) -> RewardAction:
        reward = await self.get_reward_info(event.id)
        return available_action(event, reward)

    async def claim(self, event: PredictionEvent) -> str:
        """Ask the ledger to credit this user's winnings for ``event``.

        The ledger never reverts on a losing or duplicate claim; it records an
        encrypted outcome code instead, readable through :meth:`last_outcome`.
        """

        if not event.resolved:
            raise ClaimNotAvailable(f"Event {event.id} has not been resolved yet")
        if not event.decryption_done:
            raise ClaimNotAvailable(f"Aggregate totals for event {event.id} are not revealed yet")
        tx_hash = await self.gateway.write_claim_reward(event.id)
        logger.info("Claim submitted for event {} tx={}", event.id, tx_hash)
        return tx_hash

    async def withdraw(self, event_id: int) -> str:
        tx_hash = await self.gateway.write_withdraw_reward(event_id)
        logger.info("Withdrawal submitted for event {} tx={}", event_id, tx_hash)
        return tx_hash

    async def rewards_for_events(self, event_ids: Iterable[int]) -> list[Reward]:
        """Rewards with a positive pending amount, in the order of ``event_ids``."""

        ids = list(event_ids)
        results = await asyncio.gather(
            *(self.get_reward_info(event_id) for event_id in ids),
            return_exceptions=True,
        )
        rewards: list[Reward] = []
        for event_id, result in zip(ids, results):
            if isinstance(result, BaseException):
                logger.warning("Failed to read reward for event {}: {}", event_id, result)
                continue
            if result.pending_amount > 0:
                rewards.append(result)
        return rewards

    async def last_outcome(self, signer: WalletSigner | None) -> LedgerOutcome:
        """Decrypt the outcome code the ledger recorded for this user's last call."""

        record = await self.gateway.read_last_error_code(self.user_address)
        if record.empty:
            return LedgerOutcome(code=0, error=ErrorCode.NO_ERROR)
        if self.decryptor is None:
            self.decryptor = DecryptionSessionManager()
        code = await self.decryptor.decrypt_one(
            record.handle,
            self.gateway.contract_address,
            signer,
            SemanticType.EUINT32,
        )
        return LedgerOutcome(code=int(code), error=ErrorCode.from_code(int(code)))


__all__ = ["RewardGateway", "RewardLedgerReconciler", "available_action"]
