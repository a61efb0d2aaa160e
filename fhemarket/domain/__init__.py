"""Domain models for confidential prediction-market records."""

from .models import (
    ERROR_MESSAGES,
    ZERO_HANDLE,
    Bet,
    DecryptionSession,
    EncryptedInput,
    ErrorCode,
    EventStatus,
    HandleContractPair,
    Keypair,
    LastErrorRecord,
    LedgerOutcome,
    PredictionEvent,
    Reward,
    RewardAction,
    SemanticType,
    SessionState,
    UserBet,
)

__all__ = [
    "ERROR_MESSAGES",
    "ZERO_HANDLE",
    "Bet",
    "DecryptionSession",
    "EncryptedInput",
    "ErrorCode",
    "EventStatus",
    "HandleContractPair",
    "Keypair",
    "LastErrorRecord",
    "LedgerOutcome",
    "PredictionEvent",
    "Reward",
    "RewardAction",
    "SemanticType",
    "SessionState",
    "UserBet",
]
