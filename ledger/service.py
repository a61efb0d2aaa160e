from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from fhemarket.core.config import Settings, get_settings
from fhemarket.domain import PredictionEvent, UserBet

from .client import ContractGateway

T = TypeVar("T")


@dataclass(slots=True)
class EventFetchResult:
    """Snapshot of the event registry.

    ``failed_ids`` maps indices that could not be read to the error message;
    ``error`` is set when the event count itself could not be read, in which
    case ``events`` holds the last successful snapshot.
    """

    events: list[PredictionEvent] = field(default_factory=list)
    failed_ids: dict[int, str] = field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed_ids


class EventRegistryReader:
    """Read-only enumeration of prediction events and the caller's bets."""

    def __init__(self, gateway: ContractGateway, *, settings: Settings | None = None) -> None:
        self.gateway = gateway
        self.settings = settings or get_settings()
        self._semaphore = asyncio.Semaphore(max(1, self.settings.event_fetch_concurrency))
        self._snapshot: dict[int, PredictionEvent] = {}
        self._failed: dict[int, str] = {}

    async def _bounded(self, factory: Callable[[], Awaitable[T]]) -> T:
        async with self._semaphore:
            return await factory()

    async def fetch_event(self, event_id: int) -> PredictionEvent:
        return await self.gateway.read_event(event_id)

    async def _fetch_indices(self, indices: list[int]) -> dict[int, PredictionEvent]:
        results = await asyncio.gather(
            *(self._bounded(lambda index=index: self.fetch_event(index)) for index in indices),
            return_exceptions=True,
        )
        fetched: dict[int, PredictionEvent] = {}
        for index, result in zip(indices, results):
            if isinstance(result, BaseException):
                logger.warning("Failed to fetch event {}: {}", index, result)
                self._failed[index] = str(result) or type(result).__name__
                continue
            self._failed.pop(index, None)
            fetched[index] = result
        return fetched

    def _result(self, *, error: str | None = None) -> EventFetchResult:
        events = sorted(self._snapshot.values(), key=lambda event: event.id)
        return EventFetchResult(events=events, failed_ids=dict(self._failed), error=error)

    async def fetch_all(self) -> EventFetchResult:
        """Read every event the registry holds, keeping whatever succeeds."""

        try:
            count = await self.gateway.read_event_count()
        except Exception as exc:
            logger.exception("Failed to read event count")
            return self._result(error=f"Failed to read event count: {exc}")

        self._failed = {}
        fetched = await self._fetch_indices(list(range(count)))
        self._snapshot = fetched
        logger.info(
            "Fetched {} of {} events ({} failed)", len(fetched), count, len(self._failed)
        )
        return self._result()

    async def retry_failed(self) -> EventFetchResult:
        """Refetch only the indices that failed during the last fetch."""

        if not self._failed:
            return self._result()
        fetched = await self._fetch_indices(sorted(self._failed))
        self._snapshot.update(fetched)
        return self._result()

    async def _user_bet(self, index: int, address: str) -> UserBet | None:
        event, bet = await asyncio.gather(
            self.gateway.read_event(index),
            self.gateway.read_bet(index, address),
        )
        if not bet.placed:
            return None
        reward = await self.gateway.read_reward_info(index, address)
        return UserBet(event=event, bet=bet, claimed=reward.claimed, withdrawn=reward.withdrawn)

    async def fetch_user_bets(
        self,
        address: str,
        *,
        include_logs: bool = False,
        from_block: int | None = None,
    ) -> list[UserBet]:
        """Return the bets ``address`` has placed, newest event first."""

        count = await self.gateway.read_event_count()
        results: list[Any] = await asyncio.gather(
            *(
                self._bounded(lambda index=index: self._user_bet(index, address))
                for index in range(count)
            ),
            return_exceptions=True,
        )
        bets: list[UserBet] = []
        for index, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.warning("Failed to read bet for event {}: {}", index, result)
                continue
            if result is not None:
                bets.append(result)

        if include_logs and bets:
            placed = await self.gateway.read_bet_placed_logs(address, from_block=from_block)
            for user_bet in bets:
                meta = placed.get(user_bet.event_id)
                if meta is not None:
                    user_bet.tx_hash, user_bet.block_number = meta

        bets.sort(key=lambda user_bet: user_bet.event_id, reverse=True)
        return bets


__all__ = ["EventFetchResult", "EventRegistryReader"]
