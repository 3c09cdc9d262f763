#!/usr/bin/env python3
"""Simple CLI for running chainpilot actions locally"""

import argparse
import asyncio
import json
import sys
from typing import Optional

from chainpilot.config import settings
from chainpilot.core.errors import ParseError, StateRefreshError, ValidationFailure
from chainpilot.core.execution.account import get_account_context
from chainpilot.core.execution.chain_client import get_chain_client
from chainpilot.core.intent.parser import format_request, supported_phrasings
from chainpilot.core.orchestrator import (
    DESCRIPTORS,
    Notification,
    NotificationType,
    get_action_orchestrator,
)
from chainpilot.logging_config import setup_logging


ICONS = {
    NotificationType.INITIATED: "🚀",
    NotificationType.PROGRESS: "⏳",
}


def print_notification(notification: Notification, as_json: bool = False) -> None:
    """Pretty print one streamed notification"""
    if as_json:
        print(json.dumps(notification.to_dict(), ensure_ascii=False, default=str))
        return

    if not notification.is_final:
        print(f"{ICONS.get(notification.type, '•')} {notification.text}")
        return

    outcome = notification.outcome
    icon = "✅" if outcome and outcome.success else "❌"
    if outcome and outcome.warning:
        icon = "⚠️ "
    print(f"\n{icon} {notification.text}")


async def cli_execute(text: str, as_json: bool = False) -> bool:
    """Execute one instruction and stream its notifications"""
    orchestrator = get_action_orchestrator()
    try:
        account = get_account_context()
    except ValueError as e:
        print(f"❌ No signing account configured: {e}")
        return False

    success = False
    async for notification in orchestrator.execute_action(text, account):
        print_notification(notification, as_json)
        if notification.is_final and notification.outcome:
            success = notification.outcome.success
    return success


async def cli_portfolio(as_json: bool = False) -> bool:
    """Show the acting wallet's balances"""
    try:
        account = get_account_context()
    except ValueError as e:
        print(f"❌ No signing account configured: {e}")
        return False

    try:
        result = await get_action_orchestrator().portfolio(account.address)
    except StateRefreshError as e:
        print(f"❌ {e.message}")
        return False

    print(json.dumps(result.to_dict(), ensure_ascii=False) if as_json else result.text)
    return True


async def cli_unstake_status(request_id: int, as_json: bool = False) -> bool:
    """Look up an mETH unstake request"""
    if request_id < 0:
        print("❌ Request ids are non-negative integers")
        return False
    try:
        result = await get_action_orchestrator().unstake_status(request_id)
    except StateRefreshError as e:
        print(f"❌ {e.message}")
        return False

    print(json.dumps(result.to_dict(), ensure_ascii=False) if as_json else result.text)
    return True


def cli_parse(text: str) -> bool:
    """Parse an instruction without touching the chain"""
    parser = get_action_orchestrator().parser
    try:
        request = parser.parse(text)
    except (ParseError, ValidationFailure) as e:
        print(f"❌ {e.kind.value}: {e.message}")
        return False

    print(json.dumps(request.to_dict(), indent=2))
    print(f"\nCanonical: {format_request(request)}")
    return True


def cli_actions() -> None:
    """List supported actions and phrasings"""
    print(f"Chain: {settings.chain_name.title()} ({settings.chain_id})")
    print("=" * 50)
    for descriptor in DESCRIPTORS.values():
        print(f"{descriptor.name:<18} {descriptor.description}")
        for example in descriptor.examples:
            print(f"{'':<18}   e.g. {example}")
    print("\nAccepted phrasings:")
    for phrasing in supported_phrasings():
        print(f" - {phrasing}")


async def cli_shell(as_json: bool = False) -> None:
    """Interactive mode: one instruction per line"""
    print("🤖 chainpilot")
    print("Type 'exit' to quit, 'actions' to list what I can do, 'portfolio' for balances")
    print("-" * 40)

    while True:
        try:
            text = input("\n💬 You: ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if not text:
            continue
        if text.lower() in ("exit", "quit"):
            break
        if text.lower() == "actions":
            cli_actions()
            continue
        if text.lower() == "portfolio":
            await cli_portfolio(as_json)
            continue
        await cli_execute(text, as_json)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="chainpilot CLI")
    parser.add_argument("--json", action="store_true", help="Print notifications as JSON lines")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command")

    execute_parser = subparsers.add_parser("execute", help="Execute an instruction on chain")
    execute_parser.add_argument("text", nargs="+", help="Instruction, e.g. 'send 1 MNT to 0x...'")

    parse_parser = subparsers.add_parser("parse", help="Parse an instruction without executing it")
    parse_parser.add_argument("text", nargs="+", help="Instruction to parse")

    subparsers.add_parser("portfolio", help="Show wallet balances")

    status_parser = subparsers.add_parser("unstake-status", help="Check an mETH unstake request")
    status_parser.add_argument("request_id", type=int, help="Unstake request id")

    subparsers.add_parser("actions", help="List supported actions")
    subparsers.add_parser("shell", help="Interactive mode")

    return parser


async def run(args: argparse.Namespace) -> int:
    command = args.command.lower()
    try:
        if command == "execute":
            ok = await cli_execute(" ".join(args.text), args.json)
            return 0 if ok else 1
        if command == "parse":
            return 0 if cli_parse(" ".join(args.text)) else 1
        if command == "portfolio":
            return 0 if await cli_portfolio(args.json) else 1
        if command == "unstake-status":
            return 0 if await cli_unstake_status(args.request_id, args.json) else 1
        if command == "actions":
            cli_actions()
            return 0
        if command == "shell":
            await cli_shell(args.json)
            return 0
    finally:
        await get_chain_client().close()

    print(f"❌ Unknown command: {command}")
    return 2


def main(argv: Optional[list] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    setup_logging(args.log_level or "WARNING", stream=sys.stderr)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
