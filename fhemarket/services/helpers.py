"""Pure helpers for event status, ether amounts, odds and input policy."""

from __future__ import annotations

import time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from fhemarket.domain import ErrorCode, EventStatus, PredictionEvent

WEI_PER_ETHER = 10**18
MIN_SHARES = 1
MAX_SHARES = 1000
MIN_BET_ETH = Decimal("0.0001")
MAX_BET_ETH = Decimal("10")
MIN_EVENT_DURATION_SECONDS = 5 * 60


def event_status(start_time: int, end_time: int, resolved: bool, now: int | None = None) -> EventStatus:
    if resolved:
        return EventStatus.RESOLVED
    current = int(time.time()) if now is None else now
    if current < start_time:
        return EventStatus.UPCOMING
    if current <= end_time:
        return EventStatus.ACTIVE
    return EventStatus.ENDED


def status_of(event: PredictionEvent, now: int | None = None) -> EventStatus:
    return event_status(event.start_time, event.end_time, event.resolved, now)


def is_event_active(event: PredictionEvent, now: int | None = None) -> bool:
    return status_of(event, now) is EventStatus.ACTIVE


def format_ether(wei: int, *, places: int = 4) -> str:
    value = Decimal(wei) / WEI_PER_ETHER
    quantum = Decimal(1).scaleb(-places)
    return f"{value.quantize(quantum, rounding=ROUND_HALF_UP):f}"


def parse_ether(amount: str | int | Decimal) -> int:
    """Convert an ether amount to wei without going through floats."""

    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid ether amount: {amount!r}") from exc
    if not value.is_finite() or value < 0:
        raise ValueError(f"Invalid ether amount: {amount!r}")
    wei = value * WEI_PER_ETHER
    if wei != wei.to_integral_value():
        raise ValueError(f"Ether amount {amount!r} has more than 18 decimals")
    return int(wei)


def calculate_odds(yes_shares: int, no_shares: int) -> tuple[int, int]:
    """Return rounded (yes, no) percentages from revealed share totals."""

    total = yes_shares + no_shares
    if total == 0:
        return 50, 50
    yes = (Decimal(yes_shares) * 100 / total).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    no = (Decimal(no_shares) * 100 / total).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(yes), int(no)


def calculate_potential_winnings(user_shares: int, total_winning_shares: int, total_pool: int) -> int:
    if total_winning_shares == 0:
        return 0
    return total_pool * user_shares // total_winning_shares


def validate_shares(shares: int) -> str | None:
    if isinstance(shares, bool) or not isinstance(shares, int):
        return "Shares must be a whole number"
    if shares < MIN_SHARES:
        return f"Minimum {MIN_SHARES} share required"
    if shares > MAX_SHARES:
        return f"Maximum {MAX_SHARES} shares allowed"
    return None


def validate_bet_amount(amount: str | Decimal) -> str | None:
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        return "Invalid bet amount"
    if not value.is_finite():
        return "Invalid bet amount"
    if value < MIN_BET_ETH:
        return f"Minimum bet is {MIN_BET_ETH} ETH"
    if value > MAX_BET_ETH:
        return f"Maximum bet is {MAX_BET_ETH} ETH"
    return None


def validate_event_dates(start_time: int, end_time: int, now: int | None = None) -> str | None:
    current = int(time.time()) if now is None else now
    if start_time <= current:
        return "Start time must be in the future"
    if end_time <= start_time:
        return "End time must be after start time"
    if end_time - start_time < MIN_EVENT_DURATION_SECONDS:
        return "Event must last at least 5 minutes"
    return None


def shorten_address(address: str, chars: int = 4) -> str:
    if not address or len(address) <= 2 + chars * 2:
        return address
    return f"{address[:2 + chars]}...{address[-chars:]}"


def error_message(code: int) -> str:
    error = ErrorCode.from_code(code)
    return error.message if error is not None else "Unknown error"


__all__ = [
    "calculate_odds",
    "calculate_potential_winnings",
    "error_message",
    "event_status",
    "format_ether",
    "is_event_active",
    "parse_ether",
    "shorten_address",
    "status_of",
    "validate_bet_amount",
    "validate_event_dates",
    "validate_shares",
]
