from __future__ import annotations

from typing import Any

from loguru import logger
from web3 import AsyncWeb3

from fhemarket.core.config import Settings, get_settings
from fhemarket.core.errors import LedgerTransactionError, WalletNotConnected
from fhemarket.domain import Bet, LastErrorRecord, PredictionEvent, Reward
from fhemarket.services.fhe.base import as_hex, strip_0x
from fhemarket.services.wallet import LocalAccountSigner

from .abi import PREDICTION_MARKET_ABI
from .normalize import normalize_bet, normalize_event, normalize_last_error, normalize_reward


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return bytes.fromhex(strip_0x(value))


class ContractGateway:
    """Thin async dispatcher of reads and writes to the PredictionMarket contract."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        signer: LocalAccountSigner | None = None,
        w3: AsyncWeb3 | None = None,
        contract: Any | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(str(self.settings.rpc_url)))
        self.contract_address = AsyncWeb3.to_checksum_address(self.settings.contract_address)
        self.contract = contract or self.w3.eth.contract(
            address=self.contract_address, abi=PREDICTION_MARKET_ABI
        )
        self.signer = signer

    # Reads

    async def read_event_count(self) -> int:
        return int(await self.contract.functions.getEventCount().call())

    async def read_event(self, event_id: int) -> PredictionEvent:
        raw = await self.contract.functions.getPredicEvent(event_id).call()
        return normalize_event(raw)

    async def read_bet(self, event_id: int, address: str) -> Bet:
        user = AsyncWeb3.to_checksum_address(address)
        raw = await self.contract.functions.getBet(event_id, user).call()
        return normalize_bet(raw, event_id=event_id, bettor=user)

    async def read_reward_info(self, event_id: int, address: str) -> Reward:
        user = AsyncWeb3.to_checksum_address(address)
        raw = await self.contract.functions.getRewardInfo(event_id, user).call()
        return normalize_reward(raw, event_id=event_id)

    async def read_pending_reward(self, event_id: int, address: str) -> int:
        user = AsyncWeb3.to_checksum_address(address)
        return int(await self.contract.functions.getPendingReward(event_id, user).call())

    async def read_has_claimed(self, event_id: int, address: str) -> bool:
        user = AsyncWeb3.to_checksum_address(address)
        return bool(await self.contract.functions.hasClaimedReward(event_id, user).call())

    async def read_owner(self) -> str:
        return AsyncWeb3.to_checksum_address(await self.contract.functions.owner().call())

    async def is_owner(self, address: str) -> bool:
        owner = await self.read_owner()
        return owner.lower() == address.lower()

    async def read_last_error_code(self, address: str) -> LastErrorRecord:
        user = AsyncWeb3.to_checksum_address(address)
        raw = await self.contract.functions.getLastError(user).call()
        return normalize_last_error(raw)

    async def read_bet_placed_logs(
        self, address: str, *, from_block: int | None = None
    ) -> dict[int, tuple[str, int]]:
        """Return ``{event_id: (tx_hash, block_number)}`` for the user's BetPlaced logs."""

        user = AsyncWeb3.to_checksum_address(address)
        start = self.settings.bet_logs_from_block if from_block is None else from_block
        logs = await self.contract.events.BetPlaced.get_logs(
            argument_filters={"user": user},
            from_block=start,
        )
        placed: dict[int, tuple[str, int]] = {}
        for entry in logs:
            event_id = int(entry["args"]["eventId"])
            placed[event_id] = (as_hex(entry["transactionHash"]), int(entry["blockNumber"]))
        return placed

    # Writes

    def _require_signer(self) -> LocalAccountSigner:
        if self.signer is None:
            raise WalletNotConnected("Wallet not connected")
        return self.signer

    async def _transact(self, label: str, call: Any, *, value: int = 0) -> str:
        signer = self._require_signer()
        params: dict[str, Any] = {
            "from": signer.address,
            "value": value,
            "chainId": self.settings.chain_id,
            "nonce": await self.w3.eth.get_transaction_count(signer.address, "pending"),
        }
        if self.settings.tx_gas_limit:
            params["gas"] = self.settings.tx_gas_limit
        transaction = await call.build_transaction(params)
        raw = signer.sign_transaction(transaction)
        tx_hash = as_hex(await self.w3.eth.send_raw_transaction(raw))
        logger.info("{} submitted tx={}", label, tx_hash)

        receipt = await self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self.settings.tx_receipt_timeout_seconds
        )
        if receipt["status"] != 1:
            logger.error("{} reverted tx={}", label, tx_hash)
            raise LedgerTransactionError(f"{label} transaction reverted", tx_hash=tx_hash)
        logger.info("{} confirmed tx={} block={}", label, tx_hash, receipt["blockNumber"])
        return tx_hash

    async def write_create_event(
        self,
        description: str,
        start_time: int,
        end_time: int,
        price_yes: int,
        price_no: int,
    ) -> str:
        call = self.contract.functions.createEvent(
            description, start_time, end_time, price_yes, price_no
        )
        return await self._transact("createEvent", call)

    async def write_place_bet(
        self,
        event_id: int,
        shares_handle: str,
        direction_handle: str,
        proof: str,
        value: int,
    ) -> str:
        call = self.contract.functions.placeBet(
            event_id,
            _to_bytes(shares_handle),
            _to_bytes(direction_handle),
            _to_bytes(proof),
        )
        return await self._transact("placeBet", call, value=value)

    async def write_resolve_event(self, event_id: int, outcome: bool) -> str:
        call = self.contract.functions.resolveEvent(event_id, outcome)
        return await self._transact("resolveEvent", call)

    async def write_claim_reward(self, event_id: int) -> str:
        call = self.contract.functions.claimReward(event_id)
        return await self._transact("claimReward", call)

    async def write_withdraw_reward(self, event_id: int) -> str:
        call = self.contract.functions.withdrawReward(event_id)
        return await self._transact("withdrawReward", call)


__all__ = ["ContractGateway"]
