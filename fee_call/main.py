#!/usr/bin/env python3
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from eth_account import Account
from web3 import Web3

from .core.client.rpc_client import RpcClient
from .core.interface import Interface
from .helpers.fee_contract import (
    DEFAULT_FEE_PERCENTAGE,
    SET_FEE_PERCENTAGE_ABI,
    deploy_and_call,
)
from .utils.anvil_manager import AnvilManager
from .utils.common import format_timestamp, to_0x_hex
from .utils.config_manager import ConfigManager
from .utils.exceptions import ConfigurationError, FeeCallError, NodeConnectionError
from .utils.logging import setup_logging

LOG = logging.getLogger(__name__)

RESULT_FILENAME = "fee_call_result.json"


def parse_cli_value(raw: str) -> Any:
    """Interpret a CLI argument as a JSON literal, falling back to the raw string"""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fee-call",
        description="Encode setFeePercentage call data and run it against a development chain"
    )
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level")
    parser.add_argument("--log-file", default=None,
                        help="Path to log file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    encode_parser = subparsers.add_parser("encode", help="Print ABI-encoded call data")
    encode_parser.add_argument("--abi", action="append", default=None,
                               help="Human-readable function declaration (repeatable); "
                                    "defaults to setFeePercentage(uint256)")
    encode_parser.add_argument("--function", default=None,
                               help="Function name, signature or selector to encode")
    encode_parser.add_argument("args", nargs="*", default=None,
                               help="Arguments as JSON literals (default: 500)")

    decode_parser = subparsers.add_parser("decode", help="Decode call data")
    decode_parser.add_argument("data", help="0x-prefixed call data")
    decode_parser.add_argument("--abi", action="append", default=None,
                               help="Human-readable function declaration (repeatable)")

    run_parser = subparsers.add_parser("deploy-and-call",
                                       help="Deploy FeeContract and call setFeePercentage")
    run_parser.add_argument("--config", default=None,
                            help="Path to network configuration file (.json/.yaml)")
    run_parser.add_argument("--rpc-url", default=None, help="JSON-RPC endpoint")
    run_parser.add_argument("--private-key", default=None, help="Deployer private key")
    run_parser.add_argument("--fee", type=int, default=None,
                            help="Fee percentage scaled by 100 (default: 500 = 5.00%%)")
    run_parser.add_argument("--start-anvil", action="store_true",
                            help="Start a local anvil node for the run")
    run_parser.add_argument("--anvil-port", type=int, default=None,
                            help="Port for --start-anvil")
    run_parser.add_argument("--output-dir", default="output",
                            help="Output directory for the result file")

    return parser


def run_encode(args: argparse.Namespace) -> int:
    try:
        iface = Interface(args.abi or SET_FEE_PERCENTAGE_ABI)

        if args.function:
            fragment = iface.get_function(args.function)
        elif len(iface.functions) == 1:
            fragment = iface.functions[0]
        else:
            raise ConfigurationError("--function is required when several functions are declared")

        if args.args:
            values = [parse_cli_value(v) for v in args.args]
        elif args.abi is None:
            values = [DEFAULT_FEE_PERCENTAGE]
        else:
            values = []

        call_data = iface.encode_function_data(fragment, values)
    except FeeCallError as e:
        LOG.error(f"Encoding failed: {e}")
        return 1

    LOG.debug(f"{fragment.signature} selector {iface.get_selector(fragment)}")
    print(to_0x_hex(call_data))
    return 0


def run_decode(args: argparse.Namespace) -> int:
    try:
        iface = Interface(args.abi or SET_FEE_PERCENTAGE_ABI)
        fragment, values = iface.parse_transaction(args.data)
    except FeeCallError as e:
        LOG.error(f"Decoding failed: {e}")
        return 1

    print(fragment.format())
    for index, (param, value) in enumerate(zip(fragment.inputs, values)):
        print(f"  {param.name or index} ({param.type}): {value}")
    return 0


def save_result(output_dir: Path, payload: Dict[str, Any]) -> Optional[Path]:
    results_file = output_dir / RESULT_FILENAME
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        with open(results_file, 'w') as f:
            json.dump(payload, f, indent=2)
    except OSError as e:
        LOG.error(f"Failed to save result: {e}")
        return None
    LOG.info(f"Result saved to: {results_file}")
    return results_file


async def run_deploy_and_call(args: argparse.Namespace) -> int:
    """Deploy, call and read back; every failure ends up in the single handler below"""
    output_dir = Path(args.output_dir)
    anvil = AnvilManager()

    try:
        config = ConfigManager().load_network_config(
            args.config,
            overrides={
                "rpc_url": args.rpc_url,
                "deployer_private_key": args.private_key,
                "fee_percentage": args.fee,
                "anvil_port": args.anvil_port,
            }
        )
        LOG.debug(f"Configuration: {config.to_dict()}")

        if args.start_anvil:
            anvil.start(
                port=config.anvil_port,
                block_time=config.anvil_block_time,
                chain_id=config.chain_id
            )
            config.rpc_url = anvil.rpc_url

        async with RpcClient(config.rpc_url) as rpc:
            health = await rpc.health_check()
            if health["status"] != "healthy":
                raise NodeConnectionError(
                    f"Node at {config.rpc_url} is not reachable: {health['error']}",
                    url=config.rpc_url
                )
            LOG.info(
                f"Connected to {config.rpc_url} "
                f"(chain {health['chain_id']}, block {health['block_number']})"
            )
            if config.chain_id and health["chain_id"] != config.chain_id:
                raise ConfigurationError(
                    f"Chain id mismatch: configured {config.chain_id}, "
                    f"node reports {health['chain_id']}",
                    field="chain_id"
                )

            web3 = Web3(Web3.HTTPProvider(config.rpc_url))
            account = Account.from_key(config.deployer_private_key)
            LOG.info(f"Deployer: {account.address}")

            result = await deploy_and_call(
                web3,
                account,
                fee_percentage=config.fee_percentage,
                contract_name=config.contract_name,
                contracts_dir=Path(config.contracts_dir) if config.contracts_dir else None,
                gas_limit=config.gas_limit,
                receipt_timeout=config.receipt_timeout,
                confirmations=config.confirmations
            )

            code = await rpc.get_code(result.contract_address)
            LOG.info(f"Contract code size: {(len(code) - 2) // 2} bytes")

        save_result(output_dir, result.to_dict())
        return 0 if result.success else 1

    except Exception as e:
        LOG.error(f"Error: {e}", exc_info=args.log_level == "DEBUG")
        save_result(output_dir, {
            "success": False,
            "error": e.to_dict() if isinstance(e, FeeCallError) else str(e),
            "finished_at": format_timestamp()
        })
        return 1

    finally:
        anvil.stop()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    if args.command == "encode":
        return run_encode(args)
    if args.command == "decode":
        return run_decode(args)
    return asyncio.run(run_deploy_and_call(args))


if __name__ == "__main__":
    sys.exit(main())
