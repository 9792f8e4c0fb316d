"""
Unit tests for the CLI module (trackchain/cli.py).

Tests cover:
- Command parsing
- init-db command
- list / show / verify / audit against a SQLite deployment
- Exit codes for unknown orders and tampered ledgers
"""

import argparse
import json
from unittest.mock import patch

import pytest

from tests.constants import TEST_SIGNING_KEY
from trackchain import cli
from trackchain.bootstrap import build_service
from trackchain.config import config, use_test_storage
from trackchain.errors import StoreOperationContext, StoreWriteError


@pytest.fixture(autouse=True)
def _quiet_logging():
    """Keep main() from attaching handlers to pytest's captured streams."""
    with patch("trackchain.logging_setup.configure_logging"):
        yield


@pytest.fixture
def deployment(tmp_path, monkeypatch):
    """SQLite deployment in tmp_path with a fixed signing key."""
    monkeypatch.setattr(config.tracking, "signing_key", TEST_SIGNING_KEY)
    with use_test_storage(tmp_path):
        yield tmp_path


@pytest.fixture
def order_id(deployment) -> str:
    service = build_service()
    order = service.create_order("C1", "Widget", 5).order
    service.dispatch(order.order_id, "GPS-1")
    return order.order_id


# ============================================================================
# PARSER
# ============================================================================


@pytest.mark.unit
def test_parser_requires_order_id_for_show():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["show"])


@pytest.mark.unit
def test_parser_routes_audit():
    args = cli.build_parser().parse_args(["audit", "ORD-1"])
    assert args.func is cli.cmd_audit
    assert args.order_id == "ORD-1"


@pytest.mark.unit
def test_main_no_command(capsys):
    """Test main with no command shows help."""
    assert cli.main([]) == 0
    assert "usage: trackchain" in capsys.readouterr().out


# ============================================================================
# INIT-DB COMMAND TESTS
# ============================================================================


@pytest.mark.db
def test_cmd_init_db_success(deployment):
    result = cli.cmd_init_db(argparse.Namespace())

    assert result == 0
    assert (deployment / "trackchain.db").exists()


@pytest.mark.unit
def test_cmd_init_db_error(capsys):
    """Test init-db command handles store errors."""
    failure = StoreWriteError(context=StoreOperationContext("orders.init_schema"))
    with patch("trackchain.store.sqlite.SqliteOrderStore.init_schema", side_effect=failure):
        result = cli.cmd_init_db(argparse.Namespace())

    assert result == 1
    assert "orders.init_schema" in capsys.readouterr().err


@pytest.mark.db
def test_main_init_db(deployment):
    assert cli.main(["init-db"]) == 0


# ============================================================================
# READ COMMANDS
# ============================================================================


@pytest.mark.db
def test_list_shows_orders(order_id, capsys):
    assert cli.main(["list"]) == 0
    out = capsys.readouterr().out
    assert order_id in out
    assert "packed" in out


@pytest.mark.db
def test_list_empty(deployment, capsys):
    assert cli.main(["list"]) == 0
    assert "No orders." in capsys.readouterr().out


@pytest.mark.db
def test_show_prints_details_json(order_id, capsys):
    assert cli.main(["show", order_id]) == 0
    details = json.loads(capsys.readouterr().out)
    assert details["order"]["order_id"] == order_id
    assert len(details["history"]) == 2


@pytest.mark.db
def test_verify_prints_summary(order_id, capsys):
    assert cli.main(["verify", order_id]) == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["authentic"] is True
    assert summary["transaction_count"] == 2


@pytest.mark.db
def test_audit_intact(order_id, capsys):
    assert cli.main(["audit", order_id]) == 0
    assert "2 ledger records verified" in capsys.readouterr().out


@pytest.mark.db
@pytest.mark.parametrize("command", ["show", "verify", "audit"])
def test_unknown_order_exits_with_error(deployment, command, capsys):
    assert cli.main([command, "ORD-NOPE"]) == 1
    assert "not found" in capsys.readouterr().err


@pytest.mark.db
def test_audit_tampered_ledger(order_id, deployment, capsys):
    ledger_path = deployment / "ledger.jsonl"
    lines = ledger_path.read_text(encoding="utf-8").splitlines()
    envelope = json.loads(lines[1])
    envelope["payload"]["gpsTrackerId"] = "GPS-EVIL"
    lines[1] = json.dumps(envelope, ensure_ascii=False, sort_keys=True)
    ledger_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    assert cli.main(["audit", order_id]) == 2
    assert "TAMPERED" in capsys.readouterr().err


@pytest.mark.unit
def test_config_command(capsys):
    assert cli.main(["config"]) == 0
    assert "TRACKCHAIN CONFIGURATION" in capsys.readouterr().out
