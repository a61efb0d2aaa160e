import argparse
import asyncio
import time
from datetime import datetime, timezone

from loguru import logger

from fhemarket.core.config import Settings, get_settings
from fhemarket.core.errors import FheMarketError
from fhemarket.services.betting import BetService
from fhemarket.services.decryption import DecryptionSessionManager, retry_unavailable
from fhemarket.services.fhe import registry
from fhemarket.services.helpers import (
    format_ether,
    status_of,
    validate_event_dates,
)
from fhemarket.services.rewards import RewardLedgerReconciler
from fhemarket.services.wallet import LocalAccountSigner, signer_from_settings
from ledger.client import ContractGateway
from ledger.service import EventRegistryReader


def _side(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"yes", "y", "true"}:
        return True
    if lowered in {"no", "n", "false"}:
        return False
    raise argparse.ArgumentTypeError("direction must be 'yes' or 'no'")


def _iso(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Confidential prediction market tasks")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-event", help="Create a prediction event (owner only)")
    create.add_argument("--desc", required=True, help="Event description")
    create.add_argument("--price-yes", type=int, required=True, help="Price for YES shares in wei")
    create.add_argument("--price-no", type=int, required=True, help="Price for NO shares in wei")
    create.add_argument(
        "--start-in", type=int, default=30, help="Seconds from now until betting opens"
    )
    create.add_argument(
        "--duration", type=int, default=120, help="Seconds betting stays open"
    )

    bet = sub.add_parser("place-bet", help="Encrypt and place a bet")
    bet.add_argument("--event-id", type=int, required=True)
    bet.add_argument("--shares", type=int, required=True, help="Number of shares to buy")
    bet.add_argument("--direction", type=_side, required=True, help="'yes' or 'no'")
    bet.add_argument(
        "--payment", type=int, default=None, help="Payment in wei (defaults to shares x price)"
    )

    resolve = sub.add_parser("resolve-event", help="Resolve an event (owner only)")
    resolve.add_argument("--event-id", type=int, required=True)
    resolve.add_argument("--outcome", type=_side, required=True, help="'yes' or 'no'")

    claim = sub.add_parser("claim-reward", help="Claim winnings for a resolved event")
    claim.add_argument("--event-id", type=int, required=True)
    claim.add_argument(
        "--check-outcome",
        action="store_true",
        help="Decrypt the ledger outcome code after the claim is mined",
    )

    withdraw = sub.add_parser("withdraw-reward", help="Withdraw a claimed reward")
    withdraw.add_argument("--event-id", type=int, required=True)

    get_event = sub.add_parser("get-event", help="Show one event")
    get_event.add_argument("--event-id", type=int, required=True)

    user_bet = sub.add_parser("get-user-bet", help="Show and decrypt the configured wallet's bet")
    user_bet.add_argument("--event-id", type=int, required=True)

    sub.add_parser("list-events", help="List every event")
    sub.add_parser("last-error", help="Decrypt the outcome of the wallet's last ledger call")
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _signer(settings: Settings) -> LocalAccountSigner | None:
    return signer_from_settings(settings) if settings.private_key else None


async def _create_event(args: argparse.Namespace, gateway: ContractGateway) -> int:
    start = int(time.time()) + args.start_in
    end = start + args.duration
    problem = validate_event_dates(start, end)
    if problem:
        logger.error("Invalid event dates: {}", problem)
        return 1
    logger.info("Creating event '{}' start={} end={}", args.desc, _iso(start), _iso(end))
    tx_hash = await gateway.write_create_event(args.desc, start, end, args.price_yes, args.price_no)
    count = await gateway.read_event_count()
    logger.info("Event {} created tx={}", count - 1, tx_hash)
    return 0


async def _place_bet(args: argparse.Namespace, gateway: ContractGateway, settings: Settings) -> int:
    await registry.initialize(settings=settings)
    event = await gateway.read_event(args.event_id)
    service = BetService(gateway, gateway.signer)
    tx_hash = await service.place_bet(event, args.shares, args.direction, args.payment)
    logger.info("Bet placed tx={}", tx_hash)
    return 0


async def _claim(args: argparse.Namespace, gateway: ContractGateway, settings: Settings) -> int:
    signer = gateway.signer
    if signer is None:
        logger.error("PRIVATE_KEY is required to claim")
        return 1
    event = await gateway.read_event(args.event_id)
    reconciler = RewardLedgerReconciler(gateway, signer.address, DecryptionSessionManager(settings=settings))
    await reconciler.claim(event)
    reward = await reconciler.get_reward_info(event.id)
    logger.info(
        "Reward for event {}: pending={} ETH claimed={}",
        event.id,
        format_ether(reward.pending_amount),
        reward.claimed,
    )
    if args.check_outcome:
        await registry.initialize(settings=settings)
        outcome = await retry_unavailable(lambda: reconciler.last_outcome(signer), settings=settings)
        logger.info("Ledger outcome: {} ({})", outcome.message, outcome.code)
    return 0


def _log_event(event) -> None:
    logger.info("Event {}: {}", event.id, event.description)
    logger.info("  Start: {}  End: {}", _iso(event.start_time), _iso(event.end_time))
    logger.info("  Status: {}", status_of(event).value)
    if event.resolved:
        logger.info("  Outcome: {}", "YES" if event.outcome else "NO")
    logger.info(
        "  Prices: YES {} ETH / NO {} ETH", format_ether(event.price_yes), format_ether(event.price_no)
    )
    logger.info("  Pool: {} ETH", format_ether(event.total_eth_pool))
    if event.decryption_done:
        logger.info("  Revealed shares: YES {} / NO {}", event.decrypted_yes, event.decrypted_no)


async def _get_user_bet(args: argparse.Namespace, gateway: ContractGateway, settings: Settings) -> int:
    signer = gateway.signer
    if signer is None:
        logger.error("PRIVATE_KEY is required to read your own bet")
        return 1
    bet = await gateway.read_bet(args.event_id, signer.address)
    logger.info("Has placed bet: {}", bet.placed)
    if not bet.placed:
        return 0
    await registry.initialize(settings=settings)
    try:
        service = BetService(gateway, signer)
        revealed = await retry_unavailable(lambda: service.reveal_bet(args.event_id), settings=settings)
    except FheMarketError as exc:
        logger.warning("Could not decrypt bet: {}", exc)
        logger.info("Encrypted shares handle: {}", bet.shares_handle)
        logger.info("Encrypted direction handle: {}", bet.direction_handle)
        return 0
    if revealed is not None:
        shares, direction = revealed
        logger.info("Shares: {}", shares)
        logger.info("Direction: {}", "YES" if direction else "NO")
    return 0


async def _list_events(gateway: ContractGateway, settings: Settings) -> int:
    result = await EventRegistryReader(gateway, settings=settings).fetch_all()
    if result.error:
        logger.error(result.error)
        return 1
    logger.info("Total events: {}", len(result.events) + len(result.failed_ids))
    for event in result.events:
        _log_event(event)
    for event_id, message in sorted(result.failed_ids.items()):
        logger.warning("Error fetching event {}: {}", event_id, message)
    return 0


async def _last_error(gateway: ContractGateway, settings: Settings) -> int:
    signer = gateway.signer
    if signer is None:
        logger.error("PRIVATE_KEY is required to decrypt your last outcome")
        return 1
    await registry.initialize(settings=settings)
    reconciler = RewardLedgerReconciler(gateway, signer.address, DecryptionSessionManager(settings=settings))
    outcome = await retry_unavailable(lambda: reconciler.last_outcome(signer), settings=settings)
    logger.info("Last outcome: {} ({})", outcome.message, outcome.code)
    return 0


async def run(args: argparse.Namespace, *, settings: Settings | None = None) -> int:
    resolved = settings or get_settings()
    gateway = ContractGateway(settings=resolved, signer=_signer(resolved))
    try:
        if args.command == "create-event":
            return await _create_event(args, gateway)
        if args.command == "place-bet":
            return await _place_bet(args, gateway, resolved)
        if args.command == "resolve-event":
            tx_hash = await gateway.write_resolve_event(args.event_id, args.outcome)
            logger.info("Event {} resolved tx={}", args.event_id, tx_hash)
            return 0
        if args.command == "claim-reward":
            return await _claim(args, gateway, resolved)
        if args.command == "withdraw-reward":
            tx_hash = await gateway.write_withdraw_reward(args.event_id)
            logger.info("Reward for event {} withdrawn tx={}", args.event_id, tx_hash)
            return 0
        if args.command == "get-event":
            _log_event(await gateway.read_event(args.event_id))
            return 0
        if args.command == "get-user-bet":
            return await _get_user_bet(args, gateway, resolved)
        if args.command == "list-events":
            return await _list_events(gateway, resolved)
        if args.command == "last-error":
            return await _last_error(gateway, resolved)
        raise ValueError(f"Unknown command {args.command}")
    except FheMarketError as exc:
        logger.error("{} failed: {}", args.command, exc)
        return 1
    finally:
        await registry.shutdown()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
