"""CLI entry point for the liquidation auction keeper."""

import argparse
import asyncio
import logging

from dotenv import load_dotenv

from keeper.config.loader import get_config_value, load_config, set_config_value
from keeper.config.schema import KeeperConfig
from keeper.daemon import KeeperDaemon, daemon_status, read_state, stop_daemon
from keeper.models.common import market_symbol, short_id, wad_to_float
from keeper.pipeline.tick_pipeline import build_components
from keeper.reporting.health_checker import HealthChecker

DEFAULT_CONFIG = "ops/configs/keeper.yaml"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="keeper",
        description="Liquidation auction keeper",
    )
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG, help="Config YAML path"
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--log-file", default=None, help="Also log to this file")

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Run the keeper daemon")
    sub.add_parser("stop", help="Stop a running keeper")
    sub.add_parser("status", help="Show keeper daemon status")
    sub.add_parser("health", help="Run health checks")
    sub.add_parser("auctions", help="List active auctions with profitability")

    history_p = sub.add_parser("history", help="List past LiquidationStarted events")
    history_p.add_argument("--from-block", type=int, required=True)
    history_p.add_argument("--to-block", type=int, default=None)

    sub.add_parser("gas", help="Show current gas prices")

    config_p = sub.add_parser("config", help="Config operations")
    config_sub = config_p.add_subparsers(dest="config_command")
    config_sub.add_parser("show", help="Display current config")
    set_p = config_sub.add_parser("set", help="Set a config value")
    set_p.add_argument("keyvalue", help="key=value to set")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    _setup_logging(args.log_level, args.log_file)
    load_dotenv()
    config = load_config(args.config)

    if args.command == "run":
        return _cmd_run(config)
    elif args.command == "stop":
        return stop_daemon()
    elif args.command == "status":
        return daemon_status()
    elif args.command == "health":
        return asyncio.run(_cmd_health(config))
    elif args.command == "auctions":
        return asyncio.run(_cmd_auctions(config))
    elif args.command == "history":
        return asyncio.run(_cmd_history(config, args.from_block, args.to_block))
    elif args.command == "gas":
        return asyncio.run(_cmd_gas(config))
    elif args.command == "config":
        return _cmd_config(config, args)
    else:
        parser.print_help()
        return 1


def _setup_logging(level: str, log_file: str | None) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    if log_file:
        handler = logging.FileHandler(log_file)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)


def _cmd_run(config: KeeperConfig) -> int:
    daemon = KeeperDaemon(config)
    asyncio.run(daemon.run())
    return 0


async def _cmd_health(config: KeeperConfig) -> int:
    components = build_components(config)
    signer = components.signer
    checker = HealthChecker(config, components.rpc, signer.address if signer else None)
    try:
        status = await checker.check(read_state())
    finally:
        await components.rpc.aclose()

    print(f"RPC: {'OK' if status.rpc_reachable else 'FAIL'} ({config.rpc.url})")
    if status.chain_id is not None:
        match = "OK" if status.chain_id_matches else f"MISMATCH (expected {config.rpc.chain_id})"
        print(f"Chain id: {status.chain_id} {match}")
        print(f"Latest block: {status.latest_block}")
    print(f"Liquidation engine: {'configured' if status.liquidation_engine_configured else 'MISSING'}")
    print(f"Mode: {status.mode}")
    if status.keeper_address:
        balance = "?" if status.keeper_balance_eth is None else f"{status.keeper_balance_eth:.6f} ETH"
        print(f"Keeper: {status.keeper_address} ({balance})")
    if status.last_tick_age_seconds is not None:
        print(f"Last tick: {status.last_tick_age_seconds:.0f}s ago")
    else:
        print("Last tick: never")
    return 0 if status.rpc_reachable and status.chain_id_matches else 1


async def _cmd_auctions(config: KeeperConfig) -> int:
    components = build_components(config)
    keeper_address = components.signer.address if components.signer else None
    try:
        auctions = await components.discovery.list_active()
        print(f"Active auctions: {len(auctions)}")
        for a in auctions:
            symbol = market_symbol(a.market_id, config.markets)
            line = (
                f"  {short_id(a.auction_id, 18)} {symbol} "
                f"remaining={wad_to_float(a.remaining_size):+.4f} "
                f"start=${wad_to_float(a.start_price):.2f} end=${wad_to_float(a.end_price):.2f}"
            )
            if components.evaluator is not None:
                result = await components.evaluator.evaluate(
                    a.auction_id, a.remaining_size, keeper_address
                )
                verdict = "PROFITABLE" if result.is_profitable else "skip"
                line += f" net=${result.net_profit_usd:.2f} {verdict}"
            print(line)
    finally:
        await components.rpc.aclose()
    return 0


async def _cmd_history(config: KeeperConfig, from_block: int, to_block: int | None) -> int:
    components = build_components(config)
    try:
        events = await components.discovery.get_historical_liquidations(from_block, to_block)
    finally:
        await components.rpc.aclose()
    print(f"Liquidations since block {from_block}: {len(events)}")
    for e in events:
        print(
            f"  #{e.block_number} {short_id(e.auction_id, 18)} trader={e.trader} "
            f"size={wad_to_float(e.size):+.4f} start=${wad_to_float(e.start_price):.2f}"
        )
    return 0


async def _cmd_gas(config: KeeperConfig) -> int:
    components = build_components(config)
    try:
        gwei, wei = await components.gas_estimator.current_gas_price()
        max_fee, priority = await components.rpc.estimate_fee_params()
    finally:
        await components.rpc.aclose()
    print(f"Gas price: {gwei:.4f} gwei ({wei} wei)")
    print(f"Max fee per gas: {'n/a' if max_fee is None else f'{max_fee / 1e9:.4f} gwei'}")
    print(f"Priority fee: {'n/a' if priority is None else f'{priority / 1e9:.4f} gwei'}")
    return 0


def _cmd_config(config: KeeperConfig, args) -> int:
    if args.config_command == "show":
        print(config.model_dump_json(indent=2))
        return 0
    elif args.config_command == "set":
        kv = args.keyvalue
        if "=" not in kv:
            print("Error: use key=value format")
            return 1
        key, value = kv.split("=", 1)
        try:
            new_config = set_config_value(config, key.strip(), value.strip())
            print(f"Set {key} = {get_config_value(new_config, key.strip())}")
            return 0
        except Exception as e:
            print(f"Error: {e}")
            return 1
    else:
        print("Use: config show | config set key=value")
        return 1
