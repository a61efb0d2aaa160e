"""ABI surface of the PredictionMarket contract consumed by the client."""

from __future__ import annotations

from typing import Any


def _uint(name: str) -> dict[str, str]:
    return {"internalType": "uint256", "name": name, "type": "uint256"}


def _address(name: str) -> dict[str, str]:
    return {"internalType": "address", "name": name, "type": "address"}


def _bool(name: str) -> dict[str, str]:
    return {"internalType": "bool", "name": name, "type": "bool"}


def _fn(
    name: str,
    inputs: list[dict[str, Any]],
    outputs: list[dict[str, Any]] | None = None,
    *,
    mutability: str = "view",
) -> dict[str, Any]:
    return {
        "inputs": inputs,
        "name": name,
        "outputs": outputs or [],
        "stateMutability": mutability,
        "type": "function",
    }


def _event(name: str, inputs: list[tuple[dict[str, str], bool]]) -> dict[str, Any]:
    return {
        "anonymous": False,
        "inputs": [dict(field, indexed=indexed) for field, indexed in inputs],
        "name": name,
        "type": "event",
    }


_EVENT_STRUCT = {
    "components": [
        _uint("id"),
        {"internalType": "string", "name": "description", "type": "string"},
        _uint("startTime"),
        _uint("endTime"),
        _uint("priceYes"),
        _uint("priceNo"),
        _bool("resolved"),
        _bool("outcome"),
        _uint("totalEth"),
        {"internalType": "euint64", "name": "totalYes", "type": "bytes32"},
        {"internalType": "euint64", "name": "totalNo", "type": "bytes32"},
        _uint("decryptedYes"),
        _uint("decryptedNo"),
        _bool("decryptionDone"),
    ],
    "internalType": "struct PredictionMarket.Event",
    "name": "",
    "type": "tuple",
}

_BET_STRUCT = {
    "components": [
        {"internalType": "euint32", "name": "shares", "type": "bytes32"},
        {"internalType": "ebool", "name": "isYes", "type": "bytes32"},
        _bool("placed"),
        _uint("actualEthAmount"),
    ],
    "internalType": "struct PredictionMarket.Bet",
    "name": "",
    "type": "tuple",
}

PREDICTION_MARKET_ABI: list[dict[str, Any]] = [
    _fn(
        "createEvent",
        [
            {"internalType": "string", "name": "desc", "type": "string"},
            _uint("start"),
            _uint("end"),
            _uint("yesPrice"),
            _uint("noPrice"),
        ],
        mutability="nonpayable",
    ),
    _fn(
        "placeBet",
        [
            _uint("eventId"),
            {"internalType": "externalEuint32", "name": "shares", "type": "bytes32"},
            {"internalType": "externalEbool", "name": "isYes", "type": "bytes32"},
            {"internalType": "bytes", "name": "proof", "type": "bytes"},
        ],
        mutability="payable",
    ),
    _fn("resolveEvent", [_uint("eventId"), _bool("outcome")], mutability="nonpayable"),
    _fn("claimReward", [_uint("eventId")], mutability="nonpayable"),
    _fn("withdrawReward", [_uint("eventId")], mutability="nonpayable"),
    _fn("getPendingReward", [_uint("eventId"), _address("user")], [_uint("")]),
    _fn("hasClaimedReward", [_uint("eventId"), _address("user")], [_bool("")]),
    _fn(
        "getRewardInfo",
        [_uint("eventId"), _address("user")],
        [_uint("amount"), _uint("originalAmount"), _bool("claimed"), _bool("withdrawn")],
    ),
    _fn("getPredicEvent", [_uint("eventId")], [_EVENT_STRUCT]),
    _fn("getBet", [_uint("eventId"), _address("user")], [_BET_STRUCT]),
    _fn("getEventCount", [], [_uint("")]),
    _fn("owner", [], [_address("")]),
    _fn(
        "getLastError",
        [_address("user")],
        [
            {"internalType": "euint32", "name": "error", "type": "bytes32"},
            _uint("timestamp"),
        ],
    ),
    _event(
        "EventCreated",
        [(_uint("eventId"), True), ({"internalType": "string", "name": "description", "type": "string"}, False)],
    ),
    _event("BetPlaced", [(_uint("eventId"), True), (_address("user"), True)]),
    _event("EventResolved", [(_uint("eventId"), True), (_bool("outcome"), False)]),
    _event(
        "RewardCalculated",
        [(_address("user"), True), (_uint("eventId"), True), (_uint("amount"), False)],
    ),
    _event("RewardWithdrawn", [(_address("user"), True), (_uint("amount"), False)]),
]


__all__ = ["PREDICTION_MARKET_ABI"]
