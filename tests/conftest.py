from __future__ import annotations

import secrets
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from fhemarket.core.config import Settings
from fhemarket.core.errors import LedgerTransactionError
from fhemarket.domain import (
    ZERO_HANDLE,
    Bet,
    ErrorCode,
    LastErrorRecord,
    PredictionEvent,
    Reward,
    SemanticType,
)
from fhemarket.services.decryption import DecryptionSessionManager
from fhemarket.services.fhe import MockFheBackend, registry
from fhemarket.services.wallet import LocalAccountSigner

CONTRACT = "0x42B0C00B90cCdbB6Ccb1392a5Db313DdA7EF7CFc"
OTHER_CONTRACT = "0x687820221192C5B662b25367F70076A37bc79b6c"
OWNER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ALICE_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
BOB_KEY = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"
T0 = 1_700_000_000


def make_event(event_id: int, **overrides) -> PredictionEvent:
    values = dict(
        id=event_id,
        description=f"event {event_id}",
        start_time=T0,
        end_time=T0 + 3600,
        price_yes=10**16,
        price_no=10**16,
        resolved=False,
        outcome=False,
        total_eth_pool=0,
        total_yes_handle="0x" + "01" * 32,
        total_no_handle="0x" + "02" * 32,
        decrypted_yes=0,
        decrypted_no=0,
        decryption_done=False,
    )
    values.update(overrides)
    return PredictionEvent(**values)


class Clock:
    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return float(self.now)

    def advance(self, seconds: int) -> None:
        self.now += seconds


@dataclass
class _BetEntry:
    bet: Bet
    shares: int
    direction: bool


@dataclass
class FakeLedger:
    """In-memory stand-in for the PredictionMarket contract.

    Mirrors the ledger's confidentiality rules: failures never revert, they
    record an encrypted outcome code readable only by the caller.
    """

    backend: MockFheBackend
    clock: Clock
    owner: LocalAccountSigner
    contract_address: str = CONTRACT
    auto_reveal: bool = True
    signer: LocalAccountSigner | None = None
    events: list[PredictionEvent] = field(default_factory=list)
    bets: dict[tuple[int, str], _BetEntry] = field(default_factory=dict)
    rewards: dict[tuple[int, str], Reward] = field(default_factory=dict)
    last_errors: dict[str, LastErrorRecord] = field(default_factory=dict)
    tallies: dict[int, list[int]] = field(default_factory=dict)
    logs: dict[tuple[int, str], tuple[str, int]] = field(default_factory=dict)
    block: int = 100

    def _caller(self) -> str:
        if self.signer is None:
            raise AssertionError("FakeLedger write without a signer")
        return self.signer.address

    def _tx(self) -> str:
        self.block += 1
        return "0x" + secrets.token_hex(32)

    def _record(self, user: str, code: ErrorCode) -> None:
        handle = self.backend.store(int(code), SemanticType.EUINT32)
        self.backend.allow(handle, self.contract_address, user)
        self.last_errors[user.lower()] = LastErrorRecord(handle=handle, timestamp=self.clock.now)

    async def read_event_count(self) -> int:
        return len(self.events)

    async def read_event(self, event_id: int) -> PredictionEvent:
        return replace(self.events[event_id])

    async def read_bet(self, event_id: int, address: str) -> Bet:
        entry = self.bets.get((event_id, address.lower()))
        if entry is None:
            return Bet(event_id, address, ZERO_HANDLE, ZERO_HANDLE, False, 0)
        return replace(entry.bet)

    async def read_reward_info(self, event_id: int, address: str) -> Reward:
        reward = self.rewards.get((event_id, address.lower()))
        if reward is None:
            return Reward(event_id, 0, 0, False, False)
        return replace(reward)

    async def read_pending_reward(self, event_id: int, address: str) -> int:
        return (await self.read_reward_info(event_id, address)).pending_amount

    async def read_has_claimed(self, event_id: int, address: str) -> bool:
        return (await self.read_reward_info(event_id, address)).claimed

    async def read_last_error_code(self, address: str) -> LastErrorRecord:
        return self.last_errors.get(address.lower(), LastErrorRecord(ZERO_HANDLE, 0))

    async def read_bet_placed_logs(self, address: str, *, from_block: int | None = None):
        return {
            event_id: meta
            for (event_id, user), meta in self.logs.items()
            if user == address.lower() and meta[1] >= (from_block or 0)
        }

    async def write_create_event(self, description, start_time, end_time, price_yes, price_no) -> str:
        if self._caller() != self.owner.address:
            raise LedgerTransactionError("createEvent transaction reverted")
        event_id = len(self.events)
        self.events.append(
            PredictionEvent(
                id=event_id,
                description=description,
                start_time=start_time,
                end_time=end_time,
                price_yes=price_yes,
                price_no=price_no,
                resolved=False,
                outcome=False,
                total_eth_pool=0,
                total_yes_handle=self.backend.store(0, SemanticType.EUINT64),
                total_no_handle=self.backend.store(0, SemanticType.EUINT64),
                decrypted_yes=0,
                decrypted_no=0,
                decryption_done=False,
            )
        )
        self.tallies[event_id] = [0, 0]
        return self._tx()

    async def write_place_bet(self, event_id, shares_handle, direction_handle, proof, value) -> str:
        user = self._caller()
        if not self.backend.verify_input(
            self.contract_address, user, [shares_handle, direction_handle], proof
        ):
            raise LedgerTransactionError("placeBet transaction reverted")
        tx_hash = self._tx()
        event = self.events[event_id]
        now = self.clock.now
        key = (event_id, user.lower())
        shares = int(self.backend.plaintext_of(shares_handle))
        direction = bool(self.backend.plaintext_of(direction_handle))

        if event.resolved or not event.start_time <= now <= event.end_time:
            self._record(user, ErrorCode.BETTING_NOT_ACTIVE)
        elif key in self.bets:
            self._record(user, ErrorCode.ALREADY_BET)
        elif value < shares * event.price_for(direction):
            self._record(user, ErrorCode.INSUFFICIENT_PAYMENT)
        else:
            bet = Bet(event_id, user, shares_handle, direction_handle, True, value)
            self.bets[key] = _BetEntry(bet, shares, direction)
            event.total_eth_pool += value
            self.tallies[event_id][0 if direction else 1] += shares
            yes, no = self.tallies[event_id]
            event.total_yes_handle = self.backend.store(yes, SemanticType.EUINT64)
            event.total_no_handle = self.backend.store(no, SemanticType.EUINT64)
            self.logs[key] = (tx_hash, self.block)
            self._record(user, ErrorCode.NO_ERROR)
        return tx_hash

    async def write_resolve_event(self, event_id: int, outcome: bool) -> str:
        if self._caller() != self.owner.address:
            raise LedgerTransactionError("resolveEvent transaction reverted")
        event = self.events[event_id]
        event.resolved = True
        event.outcome = outcome
        if self.auto_reveal:
            self.reveal_totals(event_id)
        return self._tx()

    def reveal_totals(self, event_id: int) -> None:
        event = self.events[event_id]
        event.decrypted_yes, event.decrypted_no = self.tallies[event_id]
        event.decryption_done = True

    async def write_claim_reward(self, event_id: int) -> str:
        user = self._caller()
        key = (event_id, user.lower())
        event = self.events[event_id]
        entry = self.bets.get(key)
        existing = self.rewards.get(key)
        if not event.resolved:
            self._record(user, ErrorCode.EVENT_NOT_RESOLVED)
        elif entry is None or entry.direction != event.outcome or (existing and existing.claimed):
            self._record(user, ErrorCode.NO_WINNINGS)
        else:
            winning = event.decrypted_yes if event.outcome else event.decrypted_no
            amount = event.total_eth_pool * entry.shares // winning
            self.rewards[key] = Reward(event_id, amount, amount, True, False)
            self._record(user, ErrorCode.NO_ERROR)
        return self._tx()

    async def write_withdraw_reward(self, event_id: int) -> str:
        key = (event_id, self._caller().lower())
        reward = self.rewards.get(key)
        if reward is None or not reward.claimed or reward.pending_amount == 0:
            raise LedgerTransactionError("withdrawReward transaction reverted")
        reward.pending_amount = 0
        reward.withdrawn = True
        return self._tx()


@pytest.fixture(autouse=True)
def reset_backend_registry():
    registry.reset()
    yield
    registry.reset()


@pytest.fixture
def test_settings(monkeypatch) -> Settings:
    settings = Settings(
        _env_file=None,
        fhe_backend="mock",
        contract_address=CONTRACT,
        private_key=ALICE_KEY,
        decryption_duration_days=1,
        event_fetch_concurrency=2,
    )
    monkeypatch.setattr("fhemarket.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("fhemarket.core.config.settings", settings)
    return settings


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def backend(test_settings, clock) -> MockFheBackend:
    return MockFheBackend(test_settings, proof_secret=b"test-proof-secret", clock=clock)


@pytest.fixture
def decryptor(backend, test_settings, clock) -> DecryptionSessionManager:
    return DecryptionSessionManager(backend, settings=test_settings, clock=clock)


@pytest.fixture
def owner() -> LocalAccountSigner:
    return LocalAccountSigner(OWNER_KEY)


@pytest.fixture
def alice() -> LocalAccountSigner:
    return LocalAccountSigner(ALICE_KEY)


@pytest.fixture
def bob() -> LocalAccountSigner:
    return LocalAccountSigner(BOB_KEY)


@pytest.fixture
def ledger(backend, clock, owner) -> FakeLedger:
    return FakeLedger(backend=backend, clock=clock, owner=owner)


@pytest.fixture
async def open_event(ledger, owner, clock) -> PredictionEvent:
    """An event accepting bets at 0.01 ETH per share on either side."""

    ledger.signer = owner
    await ledger.write_create_event("Will it rain?", clock.now, clock.now + 3600, 10**16, 10**16)
    ledger.signer = None
    clock.advance(10)
    return await ledger.read_event(0)
