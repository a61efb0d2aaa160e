from __future__ import annotations

from ledger.normalize import normalize_bet, normalize_event, normalize_last_error, normalize_reward


def _raw_event():
    return (
        3,
        "Will ETH close above 4k?",
        1_700_000_000,
        1_700_086_400,
        10**16,
        2 * 10**16,
        True,
        True,
        5 * 10**16,
        b"\x0a" * 32,
        b"\x0b" * 32,
        3,
        2,
        True,
    )


def test_normalize_event_from_tuple():
    event = normalize_event(_raw_event())

    assert event.id == 3
    assert event.description == "Will ETH close above 4k?"
    assert (event.start_time, event.end_time) == (1_700_000_000, 1_700_086_400)
    assert (event.price_yes, event.price_no) == (10**16, 2 * 10**16)
    assert event.resolved and event.outcome
    assert event.total_eth_pool == 5 * 10**16
    assert event.total_yes_handle == "0x" + "0a" * 32
    assert event.total_no_handle == "0x" + "0b" * 32
    assert (event.decrypted_yes, event.decrypted_no) == (3, 2)
    assert event.decryption_done
    assert event.price_for(True) == 10**16
    assert event.price_for(False) == 2 * 10**16


def test_normalize_event_unwraps_single_struct():
    assert normalize_event((_raw_event(),)).id == 3


def test_normalize_event_from_mapping_with_string_numbers():
    names = (
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
    raw = dict(zip(names, _raw_event()))
    raw.update(id="0x3", totalEth="50000000000000000", resolved="false")

    event = normalize_event(raw)

    assert event.id == 3
    assert event.total_eth_pool == 5 * 10**16
    assert event.resolved is False


def test_normalize_bet_and_reward():
    bet = normalize_bet((b"\x01" * 32, b"\x02" * 32, True, 10**16), event_id=1, bettor="0xabc")
    reward = normalize_reward((0, 7, True, True), event_id=1)

    assert bet.shares_handle == "0x" + "01" * 32
    assert bet.direction_handle == "0x" + "02" * 32
    assert bet.placed and bet.actual_eth_amount == 10**16
    assert (reward.pending_amount, reward.original_amount) == (0, 7)
    assert reward.claimed and reward.withdrawn


def test_normalize_last_error():
    record = normalize_last_error((b"\x05" * 32, 1_700_000_123))

    assert record.handle == "0x" + "05" * 32
    assert record.timestamp == 1_700_000_123
    assert not record.empty
