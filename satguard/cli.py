"""Command-line interface for satguard.

``satguard send ADDRESS OUTGOING`` sends a satpoint, an inscription, or a plain
amount from the node's wallet while keeping inscription- and rune-bearing
outputs out of ordinary spends.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Sequence

from .chain import OrdChainData, OrdServerClient, OrdServerError
from .config import ConfigurationError, SatguardConfig, load_config, set_default_config_path
from .errors import SendError
from .fees import FeeRate
from .model import Amount, OutPoint, parse_outgoing
from .rpc_client import BitcoinRPCClient, RPCError, RPCTransportError
from .send import SendRequest, Sender
from .tx_builder import NodeFundedTransactionBuilder

logger = logging.getLogger(__name__)


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def _argument(parse, label: str):
    def convert(raw: str) -> Any:
        try:
            return parse(raw)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f"invalid {label}: {exc}") from exc

    return convert


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="satguard: inscription- and rune-aware sends")
    parser.add_argument("--config", default=None, help="Path to a satguard YAML config file")
    parser.add_argument("--chain", default=None, help="mainnet, testnet, signet, or regtest")
    parser.add_argument("--rpc-url", default=None, help="Node RPC endpoint, e.g. http://127.0.0.1:8332")
    parser.add_argument("--rpc-user", default=None, help="Node RPC user")
    parser.add_argument("--rpc-password", default=None, help="Node RPC password")
    parser.add_argument("--wallet", default=None, help="Node wallet name")
    parser.add_argument("--ord-url", default=None, help="Base URL of the ord server JSON API")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    send_parser = subparsers.add_parser(
        "send", help="send a satpoint, inscription, or amount to an address"
    )
    send_parser.add_argument("address", help="Destination address")
    send_parser.add_argument(
        "outgoing",
        type=_argument(parse_outgoing, "send target"),
        help="Satpoint (txid:vout:offset), inscription id (<txid>i<n>), or amount (e.g. '1000 sat')",
    )
    send_parser.add_argument(
        "--utxo",
        action="append",
        default=[],
        type=_argument(OutPoint.parse, "outpoint"),
        help="Consider spending outpoint <UTXO>, even if it is unconfirmed or contains inscriptions",
    )
    send_parser.add_argument(
        "--coin-control",
        action="store_true",
        help="Only spend outpoints given with --utxo when sending inscriptions or satpoints",
    )
    send_parser.add_argument(
        "--fee-rate",
        required=True,
        type=_argument(FeeRate.parse, "fee rate"),
        help="Use fee rate of <FEE_RATE> sats/vB",
    )
    send_parser.add_argument(
        "--postage",
        default=None,
        type=_argument(Amount.parse, "amount"),
        help="Target amount of postage to include with sent inscriptions. Default `10000 sat`",
    )
    send_parser.add_argument(
        "--force-input",
        action="append",
        default=[],
        type=_argument(OutPoint.parse, "outpoint"),
        help="Require this utxo to be spent. Useful for forcing CPFP.",
    )
    send_parser.add_argument(
        "--ignore-outdated-index",
        action="store_true",
        help="Send even if the ord index lags the node (requires --coin-control)",
    )
    return parser


def _config_from_args(args: argparse.Namespace) -> SatguardConfig:
    if args.config:
        set_default_config_path(args.config)
    overrides = {
        "chain": args.chain,
        "endpoint": args.rpc_url,
        "user": args.rpc_user,
        "password": args.rpc_password,
        "wallet": args.wallet,
        "ord_url": args.ord_url,
    }
    return load_config(overrides={k: v for k, v in overrides.items() if v is not None})


def build_sender(config: SatguardConfig) -> Sender:
    rpc = BitcoinRPCClient(config.rpc)
    chain = OrdChainData(rpc, OrdServerClient(config.ord_url))
    return Sender(chain, rpc, NodeFundedTransactionBuilder(rpc), network=config.chain)


def cmd_send(args: argparse.Namespace) -> None:
    config = _config_from_args(args)
    request = SendRequest(
        address=args.address,
        outgoing=args.outgoing,
        fee_rate=args.fee_rate,
        utxos=list(args.utxo),
        coin_control=args.coin_control,
        postage=args.postage,
        force_inputs=list(args.force_input),
        ignore_outdated_index=args.ignore_outdated_index,
    )
    output = build_sender(config).send(request)
    print(json.dumps(output.to_dict(), indent=2))


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    try:
        if args.command == "send":
            cmd_send(args)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (
        CLIError,
        ConfigurationError,
        SendError,
        RPCError,
        RPCTransportError,
        OrdServerError,
    ) as exc:
        stage = getattr(exc, "stage", None)
        prefix = f"error ({stage}): " if stage else "error: "
        parser.exit(1, f"{prefix}{exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
