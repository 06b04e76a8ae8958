from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

from .client import upload
from .constants import DEFAULT_MAX_RETRIES, DEFAULT_PORT, DEFAULT_TIMEOUT_S
from .errors import TftpError
from .net import Impairment
from .packet import TransmissionMode


def cmd_send(args: argparse.Namespace) -> int:
    impair = Impairment(args.loss_rate, args.delay_ms)
    name = args.name or os.path.basename(args.file)
    try:
        stats = asyncio.run(
            upload(
                args.host,
                args.file,
                name,
                TransmissionMode(args.mode),
                port=args.port,
                timeout=args.timeout,
                max_retries=args.max_retries,
                impairment=impair,
            )
        )
    except TftpError as e:
        print(f"tftpput: {e}", file=sys.stderr)
        return 1

    payload = {"role": "sender", "file": args.file, "name": name, **stats.as_dict()}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tftpput", description="Upload files to a TFTP server (RFC 1350).")
    p.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    send = sub.add_parser("send", help="send a file to a TFTP server")
    send.add_argument("--host", required=True)
    send.add_argument("--port", type=int, default=DEFAULT_PORT)
    send.add_argument("--file", required=True)
    send.add_argument("--name", default=None, help="remote file name (defaults to the local basename)")
    send.add_argument("--mode", choices=[m.value for m in TransmissionMode], default=TransmissionMode.OCTET.value)
    send.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_S, help="seconds to wait for each ACK")
    send.add_argument("--max-retries", type=int, default=DEFAULT_MAX_RETRIES)
    send.add_argument("--loss-rate", type=float, default=0.0, help="simulate packet loss")
    send.add_argument("--delay-ms", type=int, default=0, help="simulate outbound send delay")
    send.add_argument("--json", action="store_true")
    send.set_defaults(func=cmd_send)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
