"""Entry point for the mailbox package.

Usage::

    python -m umbrella_mailbox fetch Gmail --count 20
    python -m umbrella_mailbox fetch Outlook --start 40 --count 20 --folder Sent
    python -m umbrella_mailbox fetch Gmail --folder-id Label_42
    python -m umbrella_mailbox serve
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from .config import MailboxConfig, load_config
from .errors import ConfigurationError
from .logging import setup_logging
from .models import EmailFolder, EmailService, FolderType, RetrievalRequest
from .orchestrator import RetrievalOrchestrator


def _service(value: str) -> EmailService:
    for service in EmailService:
        if service.value.lower() == value.lower():
            return service
    raise argparse.ArgumentTypeError(f"unknown service: {value}")


def _folder_type(value: str) -> FolderType:
    for folder_type in FolderType:
        if folder_type.value.lower() == value.lower():
            return folder_type
    raise argparse.ArgumentTypeError(f"unknown folder type: {value}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m umbrella_mailbox")
    commands = parser.add_subparsers(dest="command", required=True)

    fetch = commands.add_parser("fetch", help="Retrieve one batch and print it as JSON")
    fetch.add_argument("service", type=_service)
    fetch.add_argument("--start", type=int, default=0)
    fetch.add_argument("--count", type=int, default=None)
    fetch.add_argument("--folder", type=_folder_type, default=None)
    fetch.add_argument("--folder-id", dest="folder_id", default=None)

    commands.add_parser("serve", help="Run the HTTP API")
    return parser


def _build_request(args: argparse.Namespace, config: MailboxConfig) -> RetrievalRequest:
    folder = None
    if args.folder_id:
        folder = EmailFolder(
            name=args.folder_id,
            folder_type=args.folder or FolderType.CUSTOM,
            service=args.service,
            provider_handle=args.folder_id,
        )
    elif args.folder is not None:
        folder = EmailFolder.well_known(args.folder, args.service)
    return RetrievalRequest(
        start_index=args.start,
        count=args.count if args.count is not None else config.retrieval.retrieval_count,
        folder=folder,
    )


async def _fetch(orchestrator: RetrievalOrchestrator, args: argparse.Namespace, config: MailboxConfig) -> bool:
    try:
        result = await orchestrator.fetch_batch(args.service, _build_request(args, config))
    finally:
        await orchestrator.aclose()
    print(json.dumps(result.to_wire(), indent=2))
    return result.success


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)

    try:
        config = load_config()
        setup_logging(json=config.log_json, level=config.log_level)
        orchestrator = RetrievalOrchestrator.from_config(config)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.command == "fetch":
        try:
            ok = asyncio.run(_fetch(orchestrator, args, config))
        except (ConfigurationError, ValueError) as exc:
            print(f"Invalid request: {exc}", file=sys.stderr)
            sys.exit(1)
        sys.exit(0 if ok else 1)

    elif args.command == "serve":
        import uvicorn

        from .api import create_app

        uvicorn.run(
            create_app(orchestrator),
            host="0.0.0.0",
            port=config.api_port,
            log_level="warning",
        )


if __name__ == "__main__":
    main()
