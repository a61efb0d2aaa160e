from __future__ import annotations

from typing import Any, Mapping, Sequence

from fhemarket.domain import Bet, LastErrorRecord, PredictionEvent, Reward
from fhemarket.services.fhe.base import as_hex

_EVENT_FIELDS = (
    "id",
    "description",
    "startTime",
    "endTime",
    "priceYes",
    "priceNo",
    "resolved",
    "outcome",
    "totalEth",
    "totalYes",
    "totalNo",
    "decryptedYes",
    "decryptedNo",
    "decryptionDone",
)
_BET_FIELDS = ("shares", "isYes", "placed", "actualEthAmount")
_REWARD_FIELDS = ("amount", "originalAmount", "claimed", "withdrawn")


def _unwrap(raw: Any) -> Any:
    """web3 returns single-struct outputs either bare or wrapped in a 1-tuple."""

    if (
        isinstance(raw, Sequence)
        and not isinstance(raw, (str, bytes))
        and len(raw) == 1
        and isinstance(raw[0], (Sequence, Mapping))
        and not isinstance(raw[0], (str, bytes))
    ):
        return raw[0]
    return raw


def _field(raw: Any, names: Sequence[str], name: str) -> Any:
    if isinstance(raw, Mapping):
        return raw[name]
    if hasattr(raw, name):
        return getattr(raw, name)
    return raw[names.index(name)]


def _parse_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, "big")
    if isinstance(value, str):
        text = value.strip()
        return int(text, 16) if text.lower().startswith("0x") else int(text)
    return int(value)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1"}
    return bool(value)


def normalize_event(raw: Any) -> PredictionEvent:
    raw = _unwrap(raw)

    def get(name: str) -> Any:
        return _field(raw, _EVENT_FIELDS, name)

    return PredictionEvent(
        id=_parse_int(get("id")),
        description=str(get("description") or ""),
        start_time=_parse_int(get("startTime")),
        end_time=_parse_int(get("endTime")),
        price_yes=_parse_int(get("priceYes")),
        price_no=_parse_int(get("priceNo")),
        resolved=_parse_bool(get("resolved")),
        outcome=_parse_bool(get("outcome")),
        total_eth_pool=_parse_int(get("totalEth")),
        total_yes_handle=as_hex(get("totalYes")),
        total_no_handle=as_hex(get("totalNo")),
        decrypted_yes=_parse_int(get("decryptedYes")),
        decrypted_no=_parse_int(get("decryptedNo")),
        decryption_done=_parse_bool(get("decryptionDone")),
    )


def normalize_bet(raw: Any, *, event_id: int, bettor: str) -> Bet:
    raw = _unwrap(raw)

    def get(name: str) -> Any:
        return _field(raw, _BET_FIELDS, name)

    return Bet(
        event_id=event_id,
        bettor=bettor,
        shares_handle=as_hex(get("shares")),
        direction_handle=as_hex(get("isYes")),
        placed=_parse_bool(get("placed")),
        actual_eth_amount=_parse_int(get("actualEthAmount")),
    )


def normalize_reward(raw: Any, *, event_id: int) -> Reward:
    def get(name: str) -> Any:
        return _field(raw, _REWARD_FIELDS, name)

    return Reward(
        event_id=event_id,
        pending_amount=_parse_int(get("amount")),
        original_amount=_parse_int(get("originalAmount")),
        claimed=_parse_bool(get("claimed")),
        withdrawn=_parse_bool(get("withdrawn")),
    )


def normalize_last_error(raw: Any) -> LastErrorRecord:
    names = ("error", "timestamp")
    return LastErrorRecord(
        handle=as_hex(_field(raw, names, "error")),
        timestamp=_parse_int(_field(raw, names, "timestamp")),
    )


__all__ = [
    "normalize_bet",
    "normalize_event",
    "normalize_last_error",
    "normalize_reward",
]
