"""Encryption backends and the shared backend registry."""

from .base import (
    USER_DECRYPT_PRIMARY_TYPE,
    BufferedEncryptedInput,
    FheBackend,
    as_hex,
    build_user_decrypt_typed_data,
)
from .mock import MockFheBackend
from .registry import (
    available_backends,
    get_instance,
    initialize,
    is_initialized,
    register_backend,
    reset,
    shutdown,
)
from .relayer import RelayerBackend

__all__ = [
    "USER_DECRYPT_PRIMARY_TYPE",
    "BufferedEncryptedInput",
    "FheBackend",
    "MockFheBackend",
    "RelayerBackend",
    "as_hex",
    "available_backends",
    "build_user_decrypt_typed_data",
    "get_instance",
    "initialize",
    "is_initialized",
    "register_backend",
    "reset",
    "shutdown",
]
