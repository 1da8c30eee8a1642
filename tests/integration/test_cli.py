"""
CLI tests.

Runs the click commands against a chain in a temporary data directory.
"""

import json

import pytest
from click.testing import CliRunner

from sbap.cli.main import cli
from sbap.utils.logger import SBAPLogger


@pytest.fixture
def runner():
    yield CliRunner()
    # Handlers created inside invoke() point at the runner's closed stream
    SBAPLogger.reset()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "sbap"


def _invoke(runner, data_dir, *args):
    result = runner.invoke(cli, ["--data-dir", str(data_dir), *args])
    return result


class TestDemo:
    """Tests for the demo command."""

    def test_demo_runs(self, runner, tmp_path):
        """The demo completes and Bob wins with 7."""
        result = runner.invoke(cli, ["--data-dir", str(tmp_path), "demo"])

        assert result.exit_code == 0, result.output
        assert "Demo complete" in result.output
        assert "Bob: 1100 SELL, 993 BID" in result.output
        assert "Charlie: 1000 SELL, 1000 BID" in result.output


class TestChainCommands:
    """Tests for a persistent chain driven through the CLI."""

    def test_requires_init(self, runner, data_dir):
        """Commands on a missing chain fail cleanly."""
        result = _invoke(runner, data_dir, "list", "active")
        assert result.exit_code == 1
        assert "No chain found" in result.output

    def test_init_creates_accounts(self, runner, data_dir):
        """chain init writes the account book and deploys contracts."""
        result = _invoke(runner, data_dir, "chain", "init", "--decimals", "0", "--supply", "500")
        assert result.exit_code == 0, result.output

        book = json.loads((data_dir / "accounts.json").read_text())
        assert set(book["accounts"]) == {"alice", "bob", "charlie"}
        assert set(book["tokens"]) == {"SELL", "BID"}
        assert book["factory"].startswith("0x")

        again = _invoke(runner, data_dir, "chain", "init")
        assert again.exit_code == 1

    def test_full_auction(self, runner, data_dir):
        """Create, bid, advance time, finalize and list."""
        assert _invoke(runner, data_dir, "chain", "init", "--decimals", "0", "--supply", "500").exit_code == 0

        result = _invoke(
            runner, data_dir, "auction", "create", "--as", "alice", "--label", "cli-lot",
            "--sell", "SELL", "--bid", "BID", "--amount", "100", "--minimum-bid", "5", "--ends-in", "60",
        )
        assert result.exit_code == 0, result.output
        assert "Auction 0 'cli-lot' created" in result.output

        result = _invoke(runner, data_dir, "auction", "bid", "0", "--as", "bob", "--amount", "7")
        assert result.exit_code == 0, result.output
        assert "Bid accepted" in result.output

        result = _invoke(runner, data_dir, "auction", "bid", "0", "--as", "charlie", "--amount", "3")
        assert "below minimum" in result.output

        result = _invoke(runner, data_dir, "list", "active")
        assert "SELL-BID" in result.output
        assert "cli-lot" in result.output

        result = _invoke(runner, data_dir, "auction", "finalize", "0", "--as", "charlie")
        assert result.exit_code == 1
        assert "unauthorized" in result.output

        assert _invoke(runner, data_dir, "time", "advance", "120").exit_code == 0
        result = _invoke(runner, data_dir, "auction", "finalize", "0", "--as", "charlie")
        assert result.exit_code == 0, result.output
        assert "Sale has been finalized" in result.output

        result = _invoke(runner, data_dir, "list", "closed")
        assert "cli-lot" in result.output
        assert "won at 7" in result.output

        result = _invoke(runner, data_dir, "auction", "info", "0")
        assert "Phase: closed" in result.output
        assert "Winning bid: 7 BID" in result.output

        result = _invoke(runner, data_dir, "chain", "balances")
        assert "bob: 600 SELL, 493 BID" in result.output

    def test_unknown_auction(self, runner, data_dir):
        """A missing index is reported, not raised."""
        _invoke(runner, data_dir, "chain", "init")
        result = _invoke(runner, data_dir, "auction", "info", "7")
        assert result.exit_code == 1
        assert "not_found" in result.output
