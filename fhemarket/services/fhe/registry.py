"""Process-wide encryption backend, created once and shared.

``initialize()`` is single-flight: concurrent callers await the same in-flight
creation task and receive the same instance. A failed creation clears the
in-flight task so a later call can try again. A creation that finishes after
``shutdown()`` or ``reset()`` closes its backend instead of publishing it.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict

from loguru import logger

from fhemarket.core.config import Settings, get_settings
from fhemarket.core.errors import BackendInitializationError, UninitializedEncryptionBackend

from .base import FheBackend

BackendFactory = Callable[[Settings], FheBackend]


class UnknownBackendError(LookupError):
    """Raised when settings request an unregistered backend."""


_FACTORIES: Dict[str, BackendFactory] = {}
_instance: FheBackend | None = None
_pending: asyncio.Future | None = None


def register_backend(name: str, factory: BackendFactory) -> None:
    """Register or replace a backend factory."""

    _FACTORIES[name.lower()] = factory


def available_backends() -> tuple[str, ...]:
    return tuple(sorted(_FACTORIES))


def _resolve_factory(name: str) -> BackendFactory:
    try:
        return _FACTORIES[name.lower()]
    except KeyError as exc:
        raise UnknownBackendError(f"FHE backend '{name}' is not registered") from exc


async def _create(build: Callable[[], FheBackend | Awaitable[FheBackend]]) -> FheBackend:
    global _instance
    try:
        backend = build()
        if asyncio.iscoroutine(backend):
            backend = await backend
        await backend.setup()
    except BackendInitializationError:
        logger.exception("FHE backend initialization failed")
        raise
    except Exception as exc:
        logger.exception("FHE backend initialization failed")
        raise BackendInitializationError(f"Failed to initialize FHE backend: {exc}") from exc
    if _pending is not asyncio.current_task():
        await backend.aclose()
        raise BackendInitializationError("FHE backend was shut down during initialization")
    _instance = backend
    logger.info("FHE backend '{}' initialized", backend.name)
    return backend


async def initialize(
    factory: Callable[[], FheBackend | Awaitable[FheBackend]] | None = None,
    *,
    settings: Settings | None = None,
) -> FheBackend:
    """Return the shared backend, creating it on first use."""

    global _pending
    if _instance is not None:
        return _instance

    if _pending is None:
        if factory is None:
            resolved = settings or get_settings()
            named = _resolve_factory(resolved.fhe_backend)
            factory = lambda: named(resolved)  # noqa: E731
        _pending = asyncio.ensure_future(_create(factory))

    pending = _pending
    try:
        return await asyncio.shield(pending)
    except BaseException:
        if _pending is pending and pending.done():
            _pending = None
        raise


def get_instance() -> FheBackend:
    if _instance is None:
        raise UninitializedEncryptionBackend(
            "FHE backend not initialized. Call initialize() first."
        )
    return _instance


def is_initialized() -> bool:
    return _instance is not None


async def shutdown() -> None:
    """Close and forget the shared backend."""

    global _instance, _pending
    instance, _instance, _pending = _instance, None, None
    if instance is not None:
        await instance.aclose()


def reset() -> None:
    """Forget the shared backend without closing it."""

    global _instance, _pending
    _instance = None
    _pending = None


from .mock import MockFheBackend  # noqa: E402
from .relayer import RelayerBackend  # noqa: E402

register_backend("relayer", RelayerBackend)
register_backend("mock", MockFheBackend)


__all__ = [
    "UnknownBackendError",
    "available_backends",
    "get_instance",
    "initialize",
    "is_initialized",
    "register_backend",
    "reset",
    "shutdown",
]
