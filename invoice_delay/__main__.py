"""Command-line entry point: python -m invoice_delay [run|summary]"""

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from typing import List, Optional

from invoice_delay.config import Settings, load_settings
from invoice_delay.domain.exceptions import ConfigurationError, SourceFetchError
from invoice_delay.domain.models import RunStatus
from invoice_delay.infrastructure.observability.logging import setup_logging
from invoice_delay.infrastructure.observability.metrics import write_metrics
from invoice_delay.processing.jobs import build_session, run_once

logger = logging.getLogger("invoice_delay")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invoice-delay",
        description="Delay unpaid invoice due dates once daily gross volume reaches the limit.",
    )
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="check the volume gate and process invoices (default)")
    run.add_argument(
        "--require-transfer-window",
        action="store_true",
        help="do nothing before the configured transfer hour",
    )
    sub.add_parser("summary", help="print today's volume and unpaid invoice count")
    return parser


def _install_signal_handlers(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _request_stop(signame: str) -> None:
        logger.info(f"Received {signame}, finishing the current invoice and shutting down")
        cancel_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on Windows event loops
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, _request_stop, sig.name)


async def _run(settings: Settings, require_transfer_window: bool) -> int:
    cancel_event = asyncio.Event()
    _install_signal_handlers(cancel_event)

    session = build_session(settings, cancel_event=cancel_event)
    outcome = await run_once(session, require_transfer_window=require_transfer_window)

    if outcome.status is RunStatus.PROCESSED:
        logger.info("Invoice processing completed successfully!", extra=outcome.to_dict())
    elif outcome.status is RunStatus.NOT_NEEDED:
        logger.info(f"No processing needed: {outcome.reason}")
    print(json.dumps(outcome.to_dict()))
    return EXIT_FAILED if outcome.status is RunStatus.FAILED else EXIT_OK


async def _summary(settings: Settings) -> int:
    session = build_session(settings)
    try:
        summary = await session.summarize()
    except SourceFetchError as e:
        logger.error("Failed to get processing summary", extra={"error": str(e)})
        return EXIT_FAILED

    print(json.dumps(summary.to_dict()))
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
    except ConfigurationError as e:
        setup_logging()
        logger.error("Application failed", extra={"error": str(e)})
        print(json.dumps({"status": RunStatus.FAILED.value, "error": str(e)}))
        return EXIT_CONFIG

    setup_logging(settings.log_level, settings.logs_dir, settings.timezone, settings.service_name)
    logger.info("Starting invoice delay job")
    logger.info(
        f"Configuration: {settings.gross_volume_limit} {settings.account_currency} limit, "
        f"{settings.timezone} timezone"
    )

    if args.command == "summary":
        code = asyncio.run(_summary(settings))
    else:
        code = asyncio.run(_run(settings, getattr(args, "require_transfer_window", False)))

    if settings.metrics_textfile:
        write_metrics(settings.metrics_textfile)
    return code


if __name__ == "__main__":
    sys.exit(main())
