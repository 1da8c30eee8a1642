"""
SBAP CLI - Command Line Interface for the Sealed-Bid Auction Protocol

Main entry point for all CLI commands. Everything except `demo` works on a
SQLite-backed chain under the data directory; `chain init` creates it.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict

import click

from sbap import __version__
from sbap.utils.logger import get_logger, setup_logging

ACCOUNTS_FILE = "accounts.json"

logger = get_logger("cli")


# =============================================================================
# Helpers
# =============================================================================


def _load_accounts(ctx) -> Dict[str, Any]:
    path = ctx.obj["config"].data_dir / ACCOUNTS_FILE
    if not path.exists():
        click.echo("❌ No chain found. Create one with: sbap chain init")
        ctx.exit(1)
    return json.loads(path.read_text())


def _open_chain(ctx):
    """Open the persistent chain and bind its codes."""
    from sbap.core.deployment import store_codes
    from sbap.core.host import Chain, SQLiteBackend

    config = ctx.obj["config"]
    chain = Chain(SQLiteBackend(config.db_path), config=config)
    ctx.call_on_close(chain.backend.close)
    store_codes(chain)
    return chain


def _address(accounts: Dict[str, Any], name: str) -> str:
    if name.startswith("0x"):
        return name
    try:
        return accounts["accounts"][name]["address"]
    except KeyError:
        raise click.BadParameter(f"Unknown account '{name}'") from None


def _echo_answer(answer):
    """Print the single answer dict of a handler."""
    if not answer:
        return
    (name, body), = answer.items()
    status = body.get("status")
    mark = "✓" if status in (None, "success") else "✗"
    click.echo(f"  {mark} {name}: {body.get('message', status or '')}")
    for key, value in body.items():
        if key not in ("status", "message") and value is not None:
            click.echo(f"      {key}: {value}")


def _run(ctx, fn):
    """Run a transaction, reporting contract errors instead of a traceback."""
    from sbap.core.errors import ContractError

    try:
        return fn()
    except ContractError as e:
        click.echo(f"❌ {e.kind.value}: {e}")
        ctx.exit(1)
    except ValueError as e:
        click.echo(f"❌ {e}")
        ctx.exit(1)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default=None, help="Data directory (overrides SBAP_DATA_DIR)")
@click.option("--config", "config_path", default=None, help="Path to a .env style config file")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, debug, data_dir, config_path):
    """Sealed-Bid Auction Protocol - auction factory on a local contract host"""
    from dataclasses import replace

    from sbap.core.config import load_config

    config = load_config(config_path)
    if data_dir:
        config = replace(config, data_dir=Path(data_dir).expanduser())

    level = logging.DEBUG if debug else logging.INFO
    setup_logging(level=level, log_dir=str(config.data_dir / config.log_dir), log_to_file=True)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Chain Commands
# =============================================================================


@cli.group()
def chain():
    """Local chain management"""
    pass


@chain.command("init")
@click.option("--account", "names", multiple=True, default=("alice", "bob", "charlie"), help="Account name (repeatable)")
@click.option("--token", "symbols", multiple=True, default=("SELL", "BID"), help="Token symbol (repeatable)")
@click.option("--decimals", default=6, type=int, help="Decimals of every token")
@click.option("--supply", default=1_000_000_000, type=int, help="Initial balance of every account, base units")
@click.option("--entropy", default="sbap", help="Factory viewing key entropy")
@click.pass_context
def chain_init(ctx, names, symbols, decimals, supply, entropy):
    """Create accounts, tokens and an auction factory"""
    from sbap.core.deployment import deploy_factory, deploy_token, store_codes
    from sbap.crypto import generate_keypair

    config = ctx.obj["config"]
    accounts_path = config.data_dir / ACCOUNTS_FILE
    if accounts_path.exists():
        click.echo(f"❌ Chain already initialized at {config.data_dir}")
        ctx.exit(1)
    config.ensure_dirs()

    accounts = {}
    for name in names:
        kp = generate_keypair()
        accounts[name] = {"address": kp.address, "public_key": kp.public_key_hex}

    chain = _open_chain(ctx)
    codes = store_codes(chain)

    admin = accounts[names[0]]["address"]
    holders = [(a["address"], supply) for a in accounts.values()]
    tokens = {
        symbol: deploy_token(chain, codes, admin, symbol, decimals=decimals, balances=holders)
        for symbol in symbols
    }
    factory = deploy_factory(chain, codes, admin, entropy=entropy)

    accounts_path.write_text(json.dumps({
        "accounts": accounts,
        "tokens": tokens,
        "factory": factory,
    }, indent=2))

    click.echo(f"✓ Chain initialized at {config.db_path}")
    for name, info in accounts.items():
        click.echo(f"  Account {name}: {info['address']}")
    for symbol, address in tokens.items():
        click.echo(f"  Token {symbol}: {address}")
    click.echo(f"  Factory: {factory} (admin {names[0]})")


@chain.command("balances")
@click.pass_context
def chain_balances(ctx):
    """Show token balances of every account"""
    from sbap.core.deployment import balances

    accounts = _load_accounts(ctx)
    chain = _open_chain(ctx)
    for name, info in accounts["accounts"].items():
        held = balances(chain, accounts["tokens"], info["address"])
        click.echo(f"  {name}: " + ", ".join(f"{amount} {symbol}" for symbol, amount in held.items()))


# =============================================================================
# Time Commands
# =============================================================================


@cli.group()
def time():
    """Chain clock"""
    pass


@time.command("advance")
@click.argument("seconds", type=int)
@click.pass_context
def time_advance(ctx, seconds):
    """Move the chain clock forward"""
    from sbap.core.auction.state import format_time

    _load_accounts(ctx)
    chain = _open_chain(ctx)
    now = chain.advance_time(seconds)
    click.echo(f"✓ Chain time is now {format_time(now)} ({now})")


# =============================================================================
# Auction Commands
# =============================================================================


@cli.group()
def auction():
    """Auction commands"""
    pass


@auction.command("create")
@click.option("--as", "seller", required=True, help="Seller account")
@click.option("--label", required=True, help="Auction label")
@click.option("--sell", "sell_symbol", required=True, help="Symbol of the token for sale")
@click.option("--bid", "bid_symbol", required=True, help="Symbol of the token bids are made in")
@click.option("--amount", required=True, type=int, help="Amount for sale, base units")
@click.option("--minimum-bid", default=0, type=int, help="Minimum bid, base units")
@click.option("--ends-in", default=3600, type=int, help="Seconds until the auction may be finalized by anyone")
@click.option("--description", default=None, help="Free text description")
@click.pass_context
def auction_create(ctx, seller, label, sell_symbol, bid_symbol, amount, minimum_bid, ends_in, description):
    """Create an auction through the factory"""
    from sbap.core.deployment import contract_ref
    from sbap.core.factory.msg import CreateAuction
    from sbap.core.token.msg import IncreaseAllowance

    accounts = _load_accounts(ctx)
    chain = _open_chain(ctx)
    seller_addr = _address(accounts, seller)
    factory = accounts["factory"]
    sell_token = accounts["tokens"][sell_symbol]
    bid_token = accounts["tokens"][bid_symbol]

    _run(ctx, lambda: chain.execute(seller_addr, sell_token, IncreaseAllowance(spender=factory, amount=amount)))
    msg = CreateAuction(
        label=label,
        sell_contract=contract_ref(chain, sell_token),
        bid_contract=contract_ref(chain, bid_token),
        sell_amount=amount,
        minimum_bid=minimum_bid,
        ends_at=chain.time + ends_in,
        description=description,
    )
    result = _run(ctx, lambda: chain.execute(seller_addr, factory, msg))

    if result.failures:
        click.echo(f"❌ Auction was not created: {result.failures[0].error}")
        ctx.exit(1)

    created = [(c, v) for (c, k, v) in result.attributes if k == "auction_index" and c != factory]
    address, index = created[0]
    click.echo(f"✓ Auction {index} '{label}' created at {address}")
    _echo_answer(result.answer_from(address))


def _auction_tx(ctx, index: int, sender_name: str, build):
    """Resolve auction `index`, build (target, msg) with build(chain, address) and execute it."""
    from sbap.core.deployment import auction_address

    accounts = _load_accounts(ctx)
    chain = _open_chain(ctx)
    address = _run(ctx, lambda: auction_address(chain, accounts["factory"], index))
    sender = _address(accounts, sender_name)
    target, msg = build(chain, address)
    result = _run(ctx, lambda: chain.execute(sender, target, msg))
    _echo_answer(result.answer_from(address))
    if result.failures:
        click.echo(f"  ⚠️  {len(result.failures)} message(s) failed; funds kept as outstanding")
    return result


@auction.command("consign")
@click.argument("index", type=int)
@click.option("--as", "sender", required=True, help="Seller account")
@click.option("--amount", required=True, type=int, help="Amount to consign, base units")
@click.pass_context
def auction_consign(ctx, index, sender, amount):
    """Send sale tokens to an auction"""
    from sbap.core.token.msg import Send

    def build(chain, address):
        info = chain.query(address, {"auction_info": {}})["auction_info"]
        return info["sell_token"]["contract_address"], Send(recipient=address, amount=amount)

    _auction_tx(ctx, index, sender, build)


@auction.command("bid")
@click.argument("index", type=int)
@click.option("--as", "sender", required=True, help="Bidder account")
@click.option("--amount", required=True, type=int, help="Bid, base units")
@click.pass_context
def auction_bid(ctx, index, sender, amount):
    """Place a sealed bid"""
    from sbap.core.token.msg import Send

    def build(chain, address):
        info = chain.query(address, {"auction_info": {}})["auction_info"]
        return info["bid_token"]["contract_address"], Send(recipient=address, amount=amount)

    _auction_tx(ctx, index, sender, build)


@auction.command("retract")
@click.argument("index", type=int)
@click.option("--as", "sender", required=True, help="Bidder account")
@click.pass_context
def auction_retract(ctx, index, sender):
    """Retract a bid and collect anything owed"""
    from sbap.core.auction.msg import RetractBid

    _auction_tx(ctx, index, sender, lambda chain, address: (address, RetractBid()))


@auction.command("finalize")
@click.argument("index", type=int)
@click.option("--as", "sender", required=True, help="Caller account")
@click.option("--only-if-bids", is_flag=True, help="Do not close an auction without bids")
@click.option("--extend", default=None, type=int, help="With --only-if-bids and no bids: seconds to extend by")
@click.option("--new-minimum-bid", default=None, type=int, help="With --only-if-bids and no bids: new minimum bid")
@click.pass_context
def auction_finalize(ctx, index, sender, only_if_bids, extend, new_minimum_bid):
    """Close an auction"""
    from sbap.core.auction.msg import Finalize

    def build(chain, address):
        new_ends_at = chain.time + extend if extend is not None else None
        return address, Finalize(only_if_bids=only_if_bids, new_ends_at=new_ends_at, new_minimum_bid=new_minimum_bid)

    _auction_tx(ctx, index, sender, build)


@auction.command("return-all")
@click.argument("index", type=int)
@click.option("--as", "sender", required=True, help="Caller account")
@click.pass_context
def auction_return_all(ctx, index, sender):
    """Re-send outstanding funds of a closed auction"""
    from sbap.core.auction.msg import ReturnAll

    _auction_tx(ctx, index, sender, lambda chain, address: (address, ReturnAll()))


@auction.command("minimum-bid")
@click.argument("index", type=int)
@click.option("--as", "sender", required=True, help="Seller account")
@click.option("--amount", required=True, type=int, help="New minimum bid, base units")
@click.pass_context
def auction_minimum_bid(ctx, index, sender, amount):
    """Change the minimum bid"""
    from sbap.core.auction.msg import ChangeMinimumBid

    _auction_tx(ctx, index, sender, lambda chain, address: (address, ChangeMinimumBid(minimum_bid=amount)))


@auction.command("info")
@click.argument("index", type=int)
@click.pass_context
def auction_info(ctx, index):
    """Show public auction information"""
    from sbap.core.auction.state import format_amount, format_time
    from sbap.core.deployment import auction_address

    accounts = _load_accounts(ctx)
    chain = _open_chain(ctx)
    address = _run(ctx, lambda: auction_address(chain, accounts["factory"], index))
    info = chain.query(address, {"auction_info": {}})["auction_info"]

    sell, bid = info["sell_token"], info["bid_token"]
    click.echo(f"Auction {info['index']}: {info['label']}")
    click.echo("-" * 40)
    click.echo(f"  Address: {info['auction_address']}")
    click.echo(f"  For sale: {format_amount(info['sell_amount'], sell['decimals'])} {sell['symbol']}")
    click.echo(f"  Minimum bid: {format_amount(info['minimum_bid'], bid['decimals'])} {bid['symbol']}")
    click.echo(f"  Ends: {format_time(info['ends_at'])}")
    if info.get("description"):
        click.echo(f"  Description: {info['description']}")
    click.echo(f"  Phase: {info['phase']}")
    click.echo(f"  Status: {info['status']}")
    if info.get("winning_bid") is not None:
        click.echo(f"  Winning bid: {format_amount(info['winning_bid'], bid['decimals'])} {bid['symbol']}")


# =============================================================================
# Listing Commands
# =============================================================================


@cli.group("list")
def list_():
    """Factory listings"""
    pass


@list_.command("active")
@click.pass_context
def list_active(ctx):
    """List active auctions by token pair"""
    accounts = _load_accounts(ctx)
    chain = _open_chain(ctx)
    answer = chain.query(accounts["factory"], {"list_active_auctions": {}})["list_active_auctions"]

    if not answer["active"]:
        click.echo("No active auctions.")
        return
    for group in answer["active"]:
        click.echo(f"  {group['pair']}")
        for a in group["auctions"]:
            click.echo(f"    {a['index']}. {a['label']} ({a['address'][:12]}...) ends {a['ends_at']}")


@list_.command("closed")
@click.option("--before", default=None, type=int, help="Index of the last auction of the previous page")
@click.option("--page-size", default=None, type=int, help="Maximum entries")
@click.pass_context
def list_closed(ctx, before, page_size):
    """List closed auctions, newest first"""
    accounts = _load_accounts(ctx)
    chain = _open_chain(ctx)
    query = {"before": before, "page_size": page_size}
    answer = _run(ctx, lambda: chain.query(
        accounts["factory"],
        {"list_closed_auctions": {k: v for k, v in query.items() if v is not None}},
    ))["list_closed_auctions"]

    if not answer["closed"]:
        click.echo("No closed auctions.")
        return
    for a in answer["closed"]:
        won = f"won at {a['winning_bid']}" if a.get("winning_bid") is not None else "no sale"
        click.echo(f"  {a['index']}. {a['label']} [{a['pair']}] {won}, closed {a['closed_at']}")


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
def demo():
    """Run an end-to-end auction on an in-memory chain"""
    from sbap.core.auction.msg import ChangeMinimumBid, Finalize
    from sbap.core.deployment import auction_address, balances, contract_ref, deploy_factory, deploy_token, store_codes
    from sbap.core.factory.msg import CreateAuction
    from sbap.core.host import Chain
    from sbap.core.token.msg import IncreaseAllowance, Send
    from sbap.crypto import generate_keypair

    click.echo("=" * 60)
    click.echo("  SEALED-BID AUCTION PROTOCOL - DEMO")
    click.echo("=" * 60)
    click.echo()

    click.echo("📦 Deploying tokens and factory...")
    alice, bob, charlie = (generate_keypair().address for _ in range(3))
    chain = Chain()
    codes = store_codes(chain)
    holders = [(alice, 1000), (bob, 1000), (charlie, 1000)]
    sell = deploy_token(chain, codes, alice, "SELL", decimals=0, balances=holders)
    bid = deploy_token(chain, codes, alice, "BID", decimals=0, balances=holders)
    factory = deploy_factory(chain, codes, alice)
    tokens = {"SELL": sell, "BID": bid}
    click.echo("  ✓ SELL, BID and factory deployed")
    click.echo()

    click.echo("🏷️  Alice auctions 100 SELL, minimum bid 5 BID...")
    chain.execute(alice, sell, IncreaseAllowance(spender=factory, amount=100))
    chain.execute(alice, factory, CreateAuction(
        label="demo",
        sell_contract=contract_ref(chain, sell),
        bid_contract=contract_ref(chain, bid),
        sell_amount=100,
        minimum_bid=5,
        ends_at=chain.time + 60,
    ))
    auction = auction_address(chain, factory, 0)
    click.echo(f"  ✓ Auction 0 at {auction[:12]}..., sale tokens consigned")
    click.echo()

    click.echo("💸 Bidding...")
    chain.advance_time(10)
    result = chain.execute(bob, bid, Send(recipient=auction, amount=7))
    click.echo("  Bob bids 7:")
    _echo_answer(result.answer_from(auction))
    chain.execute(alice, auction, ChangeMinimumBid(minimum_bid=10))
    click.echo("  Alice raises the minimum bid to 10")
    chain.advance_time(10)
    result = chain.execute(charlie, bid, Send(recipient=auction, amount=8))
    click.echo("  Charlie bids 8:")
    _echo_answer(result.answer_from(auction))
    click.echo()

    click.echo("⚖️  Finalizing after the closing time...")
    chain.advance_time(60)
    result = chain.execute(charlie, auction, Finalize())
    _echo_answer(result.answer_from(auction))
    click.echo()

    click.echo("📊 Final balances:")
    for name, address in (("Alice", alice), ("Bob", bob), ("Charlie", charlie)):
        held = balances(chain, tokens, address)
        click.echo(f"  {name}: {held['SELL']} SELL, {held['BID']} BID")
    closed = chain.query(factory, {"list_closed_auctions": {}})["list_closed_auctions"]["closed"]
    click.echo(f"  Closed auctions listed by the factory: {len(closed)}")
    click.echo()
    click.echo("✅ Demo complete!")


if __name__ == "__main__":
    cli()
