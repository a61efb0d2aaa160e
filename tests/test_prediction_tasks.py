from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from fhemarket.core.errors import DecryptionUnavailable
from fhemarket.services.betting import BetService
from scripts.prediction_tasks import parse_args, run


def test_place_bet_arguments():
    args = parse_args(["place-bet", "--event-id", "2", "--shares", "5", "--direction", "yes"])

    assert args.command == "place-bet"
    assert (args.event_id, args.shares, args.direction, args.payment) == (2, 5, True, None)


def test_resolve_event_accepts_no():
    args = parse_args(["resolve-event", "--event-id", "0", "--outcome", "NO"])

    assert args.outcome is False


def test_invalid_direction_exits():
    with pytest.raises(SystemExit):
        parse_args(["place-bet", "--event-id", "1", "--shares", "1", "--direction", "maybe"])


def test_create_event_defaults():
    args = parse_args(["create-event", "--desc", "Rain?", "--price-yes", "10", "--price-no", "20"])

    assert (args.start_in, args.duration) == (30, 120)


def test_command_is_required():
    with pytest.raises(SystemExit):
        parse_args([])


async def test_list_events_reads_registry(test_settings, ledger, open_event):
    with patch("scripts.prediction_tasks.ContractGateway", return_value=ledger):
        code = await run(parse_args(["list-events"]), settings=test_settings)

    assert code == 0


async def test_create_event_rejects_short_duration(test_settings, ledger, owner):
    ledger.signer = owner
    with patch("scripts.prediction_tasks.ContractGateway", return_value=ledger):
        code = await run(
            parse_args(["create-event", "--desc", "x", "--price-yes", "1", "--price-no", "1", "--duration", "60"]),
            settings=test_settings,
        )

    assert code == 1
    assert ledger.events == []


async def test_ledger_errors_become_exit_code(test_settings, ledger, alice):
    ledger.signer = alice
    with patch("scripts.prediction_tasks.ContractGateway", return_value=ledger):
        code = await run(parse_args(["withdraw-reward", "--event-id", "0"]), settings=test_settings)

    assert code == 1


async def test_get_user_bet_retries_while_relay_is_down(
    test_settings, ledger, backend, decryptor, open_event, alice
):
    ledger.signer = alice
    await BetService(ledger, alice, backend=backend, decryptor=decryptor).place_bet(open_event, 2, True)
    test_settings.relayer_retry_backoff_seconds = (0.001, 0.001)

    with patch("scripts.prediction_tasks.ContractGateway", return_value=ledger), patch(
        "scripts.prediction_tasks.BetService"
    ) as service_cls:
        reveal = service_cls.return_value.reveal_bet = AsyncMock(
            side_effect=[DecryptionUnavailable("relay down"), (2, True)]
        )
        code = await run(parse_args(["get-user-bet", "--event-id", "0"]), settings=test_settings)

    assert code == 0
    assert reveal.await_count == 2
