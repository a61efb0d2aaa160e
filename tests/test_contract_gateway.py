from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from fhemarket.core.errors import LedgerTransactionError, WalletNotConnected
from fhemarket.domain import ZERO_HANDLE
from ledger.client import ContractGateway

from conftest import CONTRACT

USER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
TX = bytes.fromhex("ab" * 32)


def _call(result) -> MagicMock:
    call = MagicMock()
    call.call = AsyncMock(return_value=result)
    return call


@pytest.fixture
def contract() -> MagicMock:
    return MagicMock()


@pytest.fixture
def w3() -> MagicMock:
    web3 = MagicMock()
    web3.eth.get_transaction_count = AsyncMock(return_value=7)
    web3.eth.send_raw_transaction = AsyncMock(return_value=TX)
    web3.eth.wait_for_transaction_receipt = AsyncMock(return_value={"status": 1, "blockNumber": 12})
    return web3


@pytest.fixture
def signer() -> MagicMock:
    wallet = MagicMock()
    wallet.address = USER
    wallet.sign_transaction.return_value = b"signed"
    return wallet


def _gateway(test_settings, w3, contract, signer=None) -> ContractGateway:
    return ContractGateway(settings=test_settings, w3=w3, contract=contract, signer=signer)


async def test_reads_normalize_ledger_tuples(test_settings, w3, contract):
    contract.functions.getEventCount.return_value = _call(2)
    contract.functions.getBet.return_value = _call((b"\x01" * 32, b"\x02" * 32, True, 10**16))
    contract.functions.getRewardInfo.return_value = _call((5, 5, True, False))
    contract.functions.getLastError.return_value = _call((b"\x00" * 32, 0))
    gateway = _gateway(test_settings, w3, contract)

    assert await gateway.read_event_count() == 2
    bet = await gateway.read_bet(1, USER.lower())
    assert bet.placed and bet.shares_handle == "0x" + "01" * 32
    assert bet.bettor == USER
    contract.functions.getBet.assert_called_once_with(1, USER)
    reward = await gateway.read_reward_info(1, USER)
    assert (reward.pending_amount, reward.claimed) == (5, True)
    record = await gateway.read_last_error_code(USER)
    assert record.handle == ZERO_HANDLE and record.empty


async def test_is_owner_compares_case_insensitively(test_settings, w3, contract):
    contract.functions.owner.return_value = _call(USER)
    gateway = _gateway(test_settings, w3, contract)

    assert await gateway.is_owner(USER.lower())
    assert not await gateway.is_owner(CONTRACT)


async def test_place_bet_signs_and_waits_for_receipt(test_settings, w3, contract, signer):
    build = contract.functions.placeBet.return_value
    build.build_transaction = AsyncMock(return_value={"to": CONTRACT, "data": "0x"})
    gateway = _gateway(test_settings, w3, contract, signer)

    tx_hash = await gateway.write_place_bet(3, "0x" + "11" * 32, "0x" + "22" * 32, "0xbeef", 3 * 10**16)

    assert tx_hash == "0x" + "ab" * 32
    contract.functions.placeBet.assert_called_once_with(
        3, bytes.fromhex("11" * 32), bytes.fromhex("22" * 32), bytes.fromhex("beef")
    )
    params = build.build_transaction.await_args.args[0]
    assert params["value"] == 3 * 10**16
    assert params["nonce"] == 7
    w3.eth.get_transaction_count.assert_awaited_once_with(signer.address, "pending")
    assert params["chainId"] == test_settings.chain_id
    assert "gas" not in params
    signer.sign_transaction.assert_called_once_with({"to": CONTRACT, "data": "0x"})
    w3.eth.send_raw_transaction.assert_awaited_once_with(b"signed")


async def test_reverted_receipt_raises(test_settings, w3, contract, signer):
    contract.functions.claimReward.return_value.build_transaction = AsyncMock(return_value={})
    w3.eth.wait_for_transaction_receipt = AsyncMock(return_value={"status": 0, "blockNumber": 12})
    gateway = _gateway(test_settings, w3, contract, signer)

    with pytest.raises(LedgerTransactionError) as excinfo:
        await gateway.write_claim_reward(0)

    assert excinfo.value.tx_hash == "0x" + "ab" * 32


async def test_write_without_signer_raises(test_settings, w3, contract):
    gateway = _gateway(test_settings, w3, contract)

    with pytest.raises(WalletNotConnected):
        await gateway.write_withdraw_reward(0)
    w3.eth.send_raw_transaction.assert_not_called()


async def test_bet_placed_logs_are_keyed_by_event(test_settings, w3, contract):
    contract.events.BetPlaced.get_logs = AsyncMock(
        return_value=[
            {"args": {"eventId": 4, "user": USER}, "transactionHash": TX, "blockNumber": 99},
        ]
    )
    gateway = _gateway(test_settings, w3, contract)

    logs = await gateway.read_bet_placed_logs(USER, from_block=10)

    assert logs == {4: ("0x" + "ab" * 32, 99)}
    contract.events.BetPlaced.get_logs.assert_awaited_once_with(
        argument_filters={"user": USER}, from_block=10
    )
