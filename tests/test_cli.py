import json

import pytest

import cli
from chainpilot.core.orchestrator import ActionState, Notification, NotificationType


@pytest.fixture
def patched_orchestrator(orchestrator, account, monkeypatch):
    monkeypatch.setattr(cli, "get_action_orchestrator", lambda: orchestrator)
    monkeypatch.setattr(cli, "get_account_context", lambda: account)
    return orchestrator


def test_build_parser():
    args = cli.build_parser().parse_args(["--json", "execute", "send", "1", "MNT"])

    assert args.command == "execute"
    assert args.json is True
    assert " ".join(args.text) == "send 1 MNT"


def test_parse_command(patched_orchestrator, capsys):
    assert cli.cli_parse("borrow 100 USDC") is True

    out = capsys.readouterr().out
    assert "Canonical: borrow 100 USDC on lendle" in out


def test_parse_command_rejects(patched_orchestrator, capsys):
    assert cli.cli_parse("borrow 100 DOGE") is False
    assert "validation_failure" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_execute_command(patched_orchestrator, fake_chain, account, recipient, capsys):
    fake_chain.set_native_balance(account.address, 10 * 10**18)

    ok = await cli.cli_execute(f"send 1 MNT to {recipient}", as_json=True)

    assert ok is True
    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert lines[-1]["type"] == "final"


def test_print_final_failure(capsys):
    cli.print_notification(
        Notification(type=NotificationType.FINAL, text="Nope", state=ActionState.FAILED)
    )

    assert "❌ Nope" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_portfolio_command(patched_orchestrator, fake_chain, account, capsys):
    fake_chain.set_native_balance(account.address, 10**18)

    assert await cli.cli_portfolio() is True

    out = capsys.readouterr().out
    assert "Your Mantle Portfolio:" in out
    assert "• MNT (Mantle): 1" in out


@pytest.mark.asyncio
async def test_unstake_status_command_reports_lookup_failure(patched_orchestrator, capsys):
    assert await cli.cli_unstake_status(5) is False

    assert "❌ I couldn't look up unstake request #5" in capsys.readouterr().out


def test_unstake_status_parser():
    args = cli.build_parser().parse_args(["unstake-status", "42"])

    assert args.command == "unstake-status"
    assert args.request_id == 42
