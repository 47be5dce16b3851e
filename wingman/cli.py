"""Diagnostic CLI: connection checks, model listing, one-shot chat and context lookups."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Sequence

from wingman.config import PROVIDER_KINDS, load_config
from wingman.errors import AssistantError
from wingman.pipeline import AssistantPipeline
from wingman.providers.factory import create_context
from wingman.utils.logging import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wingman", description="Wingman assistant diagnostics")
    parser.add_argument("--config", default=None, help="Path to config YAML")
    parser.add_argument(
        "--provider",
        default=None,
        choices=list(PROVIDER_KINDS),
        help="Override llm.provider from the config file",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING...")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("check", help="Send a minimal prompt through the active provider")
    subparsers.add_parser("models", help="List models installed on the local server")

    chat_parser = subparsers.add_parser("chat", help="Send one chat message")
    chat_parser.add_argument("message", help="Message text")

    context_parser = subparsers.add_parser("context", help="Run a knowledge base lookup")
    context_parser.add_argument("query", help="Natural-language query")

    return parser


async def _run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    if config.app.debug and args.log_level is None:
        logging.getLogger().setLevel(logging.DEBUG)
    if args.provider:
        config.toggle_llm(args.provider)

    if args.command == "context":
        backend = create_context(config)
        if backend is None:
            print("Context retrieval is disabled (context.provider: none)", file=sys.stderr)
            return 1
        lookup = await backend.fetch_context(args.query)
        if not lookup.is_ok:
            print(f"Degraded: {lookup.degraded_reason}", file=sys.stderr)
        print(lookup.result.render(config.context.max_chars) or "(no context)")
        return 0

    pipeline = await AssistantPipeline.create(config.provider_config(), config)

    if args.command == "check":
        status = await pipeline.test_connection()
        print(json.dumps({"provider": pipeline.current_provider, "model": pipeline.current_model, **status.to_dict()}))
        return 0 if status.success else 1

    if args.command == "models":
        for name in await pipeline.list_available_models():
            print(name)
        return 0

    if args.command == "chat":
        print(await pipeline.chat(args.message))
        return 0

    return 2


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    from dotenv import load_dotenv
    load_dotenv()
    setup_logging(args.log_level)

    try:
        return asyncio.run(_run(args))
    except AssistantError as exc:
        print(f"{type(exc).__name__}: {exc}", file=sys.stderr)
        return 1
