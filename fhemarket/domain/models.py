"""Typed domain representations shared by the ledger gateway, services, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum

from fhemarket.core.errors import InputAlreadySubmitted


ZERO_HANDLE = "0x" + "00" * 32


class EventStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    ENDED = "ended"
    RESOLVED = "resolved"


class SemanticType(str, Enum):
    """Plaintext type a ciphertext handle decrypts to."""

    EBOOL = "ebool"
    EUINT32 = "euint32"
    EUINT64 = "euint64"


ERROR_MESSAGES: dict[int, str] = {
    0: "No error",
    1: "Betting is not active for this event",
    2: "Insufficient payment for the bet",
    3: "You have already placed a bet on this event",
    4: "Event has not been resolved yet",
    5: "No winnings available to claim",
}


class ErrorCode(IntEnum):
    """Outcome codes the ledger records as ciphertext instead of reverting."""

    NO_ERROR = 0
    BETTING_NOT_ACTIVE = 1
    INSUFFICIENT_PAYMENT = 2
    ALREADY_BET = 3
    EVENT_NOT_RESOLVED = 4
    NO_WINNINGS = 5

    @property
    def message(self) -> str:
        return ERROR_MESSAGES[int(self)]

    @classmethod
    def from_code(cls, code: int) -> "ErrorCode | None":
        try:
            return cls(code)
        except ValueError:
            return None


class SessionState(str, Enum):
    NOT_AUTHORIZED = "not_authorized"
    KEYPAIR_READY = "keypair_ready"
    MESSAGE_BUILT = "message_built"
    AUTHORIZED = "authorized"
    COMPLETED = "completed"
    FAILED = "failed"


class RewardAction(str, Enum):
    NONE = "none"
    AWAITING_RESOLUTION = "awaiting_resolution"
    AWAITING_DECRYPTION = "awaiting_decryption"
    CLAIM = "claim"
    WITHDRAW = "withdraw"


@dataclass(slots=True)
class PredictionEvent:
    """Public ledger record of a prediction event.

    ``total_yes_handle`` and ``total_no_handle`` are aggregate ciphertexts that
    only the aggregate-decryption collaborator may reveal; ``decrypted_yes`` and
    ``decrypted_no`` are meaningful once ``decryption_done`` is set.
    """

    id: int
    description: str
    start_time: int
    end_time: int
    price_yes: int
    price_no: int
    resolved: bool
    outcome: bool
    total_eth_pool: int
    total_yes_handle: str
    total_no_handle: str
    decrypted_yes: int
    decrypted_no: int
    decryption_done: bool

    @property
    def aggregate_handles(self) -> frozenset[str]:
        return frozenset({self.total_yes_handle, self.total_no_handle})

    def price_for(self, direction: bool) -> int:
        return self.price_yes if direction else self.price_no


@dataclass(slots=True)
class Bet:
    event_id: int
    bettor: str
    shares_handle: str
    direction_handle: str
    placed: bool
    actual_eth_amount: int


@dataclass(slots=True)
class Reward:
    event_id: int
    pending_amount: int
    original_amount: int
    claimed: bool
    withdrawn: bool


@dataclass(slots=True)
class UserBet:
    """A placed bet joined with its event and reward state.

    ``claimed`` comes from the reward record, never from ``bet.placed``.
    """

    event: PredictionEvent
    bet: Bet
    claimed: bool
    withdrawn: bool = False
    tx_hash: str | None = None
    block_number: int | None = None
    shares: int | None = None
    direction: bool | None = None

    @property
    def event_id(self) -> int:
        return self.event.id

    @property
    def revealed(self) -> bool:
        return self.shares is not None and self.direction is not None


@dataclass(slots=True, frozen=True)
class HandleContractPair:
    handle: str
    contract_address: str


@dataclass(slots=True)
class EncryptedInput:
    """Ciphertext handles plus one proof bound to (contract, user) and field order."""

    handles: tuple[str, ...]
    input_proof: str
    contract_address: str
    user_address: str
    submitted: bool = False

    @property
    def shares_handle(self) -> str:
        return self.handles[0]

    @property
    def direction_handle(self) -> str:
        return self.handles[1]

    def mark_submitted(self) -> None:
        if self.submitted:
            raise InputAlreadySubmitted(
                "Encrypted input was already submitted; encrypt the bet again"
            )
        self.submitted = True


@dataclass(slots=True)
class Keypair:
    public_key: str
    private_key: bytearray

    def wipe(self) -> None:
        for index in range(len(self.private_key)):
            self.private_key[index] = 0
        self.private_key = bytearray()

    @property
    def wiped(self) -> bool:
        return not self.private_key


@dataclass(slots=True)
class DecryptionSession:
    """Signed user-decryption authorization with a fixed scope and window."""

    contract_addresses: tuple[str, ...]
    signer_address: str
    start_timestamp: int
    duration_days: int
    keypair: Keypair | None = None
    typed_data: dict | None = None
    signature: str | None = None
    state: SessionState = SessionState.NOT_AUTHORIZED
    errors: list[str] = field(default_factory=list)

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * 86_400

    def is_valid_at(self, timestamp: int) -> bool:
        return self.start_timestamp <= timestamp < self.expires_at

    def covers(self, contract_address: str) -> bool:
        target = contract_address.lower()
        return any(address.lower() == target for address in self.contract_addresses)

    def close(self) -> None:
        if self.keypair is not None:
            self.keypair.wipe()
            self.keypair = None


@dataclass(slots=True)
class LastErrorRecord:
    """Encrypted outcome code the ledger stored for a user's latest call."""

    handle: str
    timestamp: int

    @property
    def empty(self) -> bool:
        return self.handle == ZERO_HANDLE


@dataclass(slots=True)
class LedgerOutcome:
    code: int
    error: ErrorCode | None

    @property
    def message(self) -> str:
        if self.error is None:
            return "Unknown error"
        return self.error.message

    @property
    def ok(self) -> bool:
        return self.error is ErrorCode.NO_ERROR
