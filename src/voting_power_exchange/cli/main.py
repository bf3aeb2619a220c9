"""
Voting Power Exchange CLI

Operator console for an exchange deployment: inspect and raise the cap,
check nonces, evaluate the curve, compute and verify intent digests, and
read the settlement history.

All amounts are integer base units (18 decimals): 1 token = 10**18.

Usage:
    vpx init --db exchange.db
    vpx constants
    vpx cap show --db exchange.db
    vpx cap set 150000000000000000000 --manager 0x... --db exchange.db
    vpx nonce status --requester 0x... --nonce 0x... --db exchange.db
    vpx curve power 25000000000000000000
    vpx curve quote --amount 2000000000000000000000 --power 99000000000000000000
    vpx intent digest --requester 0x... --amount ... --nonce 0x... --expiration ...
    vpx intent verify ... --signature 0x...
    vpx history --requester 0x... --db exchange.db
"""

import json
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from voting_power_exchange.exchange import curve
from voting_power_exchange.exchange.models import ExchangeIntent, quote_exchange
from voting_power_exchange.exchange.signing import (
    EXCHANGE_TYPE,
    EXCHANGE_TYPEHASH,
    AuthorizationVerifier,
    ExchangeDomain,
)
from voting_power_exchange.kernel.errors import VPXError
from voting_power_exchange.kernel.logging import configure_logging
from voting_power_exchange.kernel.settings import ExchangeSettings
from voting_power_exchange.ledger.interfaces import MANAGER_ROLE
from voting_power_exchange.ledger.memory import (
    InMemoryAccessControl,
    InMemoryGovernanceLedger,
    InMemoryUtilityLedger,
)
from voting_power_exchange.vpx import VotingPowerExchange

# Configure logging to stderr (avoids polluting stdout for JSON output)
configure_logging(json_output=False, log_level="WARNING")

app = typer.Typer(
    name="vpx",
    help="Voting Power Exchange - burn utility tokens for capped voting power",
    add_completion=False,
)

# Sub-apps
cap_app = typer.Typer(help="Voting power cap commands")
nonce_app = typer.Typer(help="Replay guard commands")
curve_app = typer.Typer(help="Bonding curve calculator")
intent_app = typer.Typer(help="EIP-712 intent digests and signature checks")

app.add_typer(cap_app, name="cap")
app.add_typer(nonce_app, name="nonce")
app.add_typer(curve_app, name="curve")
app.add_typer(intent_app, name="intent")

# Global state
DEFAULT_DB = Path(".vpx.db")


def format_tokens(amount: int) -> str:
    """Render base units as a decimal token amount without float rounding"""
    whole, frac = divmod(amount, curve.PRECISION)
    frac_str = f"{frac:018d}".rstrip("0")
    return f"{whole}.{frac_str}" if frac_str else str(whole)


def get_settings() -> ExchangeSettings:
    try:
        return ExchangeSettings.from_env()
    except ValueError as e:
        typer.echo(f"Error: Invalid VPX_* configuration: {e}", err=True)
        raise typer.Exit(1)


def get_exchange(db_path: Optional[Path] = None, manager: Optional[str] = None) -> VotingPowerExchange:
    """
    Open the exchange event log with local ledgers

    The console acts as its own role registry: the given manager address
    is granted MANAGER_ROLE for this invocation.
    """
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'vpx init --db {db}' to initialize", err=True)
        raise typer.Exit(1)

    settings = get_settings()
    admin = manager or settings.verifying_contract
    access_control = InMemoryAccessControl(admin)
    if manager:
        access_control.grant_role(MANAGER_ROLE, manager, sender=admin)

    return VotingPowerExchange(
        db,
        InMemoryUtilityLedger(settings.utility_token),
        InMemoryGovernanceLedger(settings.governance_token),
        access_control,
        settings=settings,
    )


def build_intent(
    requester: str,
    amount: int,
    nonce: str,
    expiration: int,
    signature: str = "0x",
) -> ExchangeIntent:
    try:
        return ExchangeIntent(
            requester=requester,
            amount=amount,
            nonce=nonce,
            expiration=expiration,
            signature=signature,
        )
    except ValueError as e:
        typer.echo(f"Error: Invalid intent: {e}", err=True)
        raise typer.Exit(1)


def get_verifier() -> AuthorizationVerifier:
    settings = get_settings()
    return AuthorizationVerifier(
        ExchangeDomain(
            name=settings.domain_name,
            version=settings.domain_version,
            chain_id=settings.chain_id,
            verifying_contract=settings.verifying_contract,
        )
    )


# Initialization command


@app.command()
def init(
    db: Annotated[
        Path,
        typer.Option(help="Database path"),
    ] = DEFAULT_DB,
) -> None:
    """Initialize a new exchange database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    settings = get_settings()
    VotingPowerExchange(
        db,
        InMemoryUtilityLedger(settings.utility_token),
        InMemoryGovernanceLedger(settings.governance_token),
        InMemoryAccessControl(settings.verifying_contract),
        settings=settings,
    )
    typer.echo(f"✓ Initialized exchange database: {db}")


@app.command()
def constants(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show curve and signing constants of this deployment"""
    settings = get_settings()
    verifier = get_verifier()
    values = {
        "exchange_type": EXCHANGE_TYPE,
        "exchange_typehash": "0x" + EXCHANGE_TYPEHASH.hex(),
        "domain_separator": "0x" + verifier.domain_separator().hex(),
        "precision": str(curve.PRECISION),
        "precision_fix": str(curve.PRECISION_FIX),
        "minimum_exchange_amount": str(curve.MINIMUM_EXCHANGE_AMOUNT),
        "default_voting_power_cap": str(settings.default_voting_power_cap),
        "utility_token": settings.utility_token,
        "governance_token": settings.governance_token,
        "chain_id": settings.chain_id,
        "verifying_contract": settings.verifying_contract,
    }

    if json_output:
        typer.echo(json.dumps(values, indent=2))
        return

    typer.echo("Exchange Constants:")
    for key, value in values.items():
        typer.echo(f"  {key}: {value}")


# Cap commands


@cap_app.command("show")
def cap_show(
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Show the current voting power cap"""
    vpx = get_exchange(db)
    cap = vpx.get_voting_power_cap()
    typer.echo(f"Voting power cap: {cap} ({format_tokens(cap)} tokens)")


@cap_app.command("set")
def cap_set(
    new_cap: Annotated[int, typer.Argument(help="New cap in base units")],
    manager: Annotated[str, typer.Option("--manager", help="Manager address")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Raise the voting power cap (it can never be lowered)"""
    vpx = get_exchange(db, manager=manager)
    previous = vpx.get_voting_power_cap()

    try:
        cap = vpx.set_voting_power_cap(new_cap, manager=manager)
    except (VPXError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"✓ Voting power cap raised: {format_tokens(previous)} → {format_tokens(cap)} tokens")


# Nonce commands


@nonce_app.command("status")
def nonce_status(
    requester: Annotated[str, typer.Option("--requester", help="Requester address")],
    nonce: Annotated[str, typer.Option("--nonce", help="32-byte nonce (0x hex)")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Check whether a (requester, nonce) pair has been consumed"""
    vpx = get_exchange(db)
    intent = build_intent(requester, 0, nonce, 0)

    if vpx.is_nonce_consumed(intent.requester, intent.nonce):
        typer.echo(f"Nonce {nonce} of {intent.requester}: consumed")
    else:
        typer.echo(f"Nonce {nonce} of {intent.requester}: available")


# Curve commands


@curve_app.command("power")
def curve_power(
    burned: Annotated[int, typer.Argument(help="Cumulative utility burned (base units)")],
) -> None:
    """Voting power held after a cumulative burn"""
    power = curve.voting_power_from_burned(burned)
    typer.echo(f"{power} ({format_tokens(power)} voting power)")


@curve_app.command("cost")
def curve_cost(
    power: Annotated[int, typer.Argument(help="Voting power (base units)")],
) -> None:
    """Cumulative burn required to hold a voting power"""
    burned = curve.burned_from_voting_power(power)
    typer.echo(f"{burned} ({format_tokens(burned)} tokens burned)")


@curve_app.command("quote")
def curve_quote(
    amount: Annotated[int, typer.Option("--amount", help="Requested burn (base units)")],
    burned: Annotated[
        int,
        typer.Option("--burned", help="Holder's cumulative burn so far"),
    ] = 0,
    power: Annotated[
        int,
        typer.Option("--power", help="Holder's current voting power"),
    ] = 0,
    cap: Annotated[
        Optional[int],
        typer.Option("--cap", help="Voting power cap (defaults to configured cap)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Price an exchange, including the partial fill at the cap"""
    if cap is None:
        cap = get_settings().default_voting_power_cap

    try:
        quote = quote_exchange(amount, burned, power, cap)
    except VPXError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if json_output:
        values = {
            k: v if isinstance(v, bool) else str(v) for k, v in quote.model_dump().items()
        }
        typer.echo(json.dumps(values, indent=2))
        return

    typer.echo(f"Burn: {quote.burn_amount} ({format_tokens(quote.burn_amount)} tokens)")
    typer.echo(f"Granted: {quote.granted_power} ({format_tokens(quote.granted_power)} voting power)")
    if quote.partial_fill:
        typer.echo(f"  Partial fill: capped at {format_tokens(quote.cap)}")


# Intent commands


@intent_app.command("digest")
def intent_digest(
    requester: Annotated[str, typer.Option("--requester", help="Requester address")],
    amount: Annotated[int, typer.Option("--amount", help="Utility burn (base units)")],
    nonce: Annotated[str, typer.Option("--nonce", help="32-byte nonce (0x hex)")],
    expiration: Annotated[int, typer.Option("--expiration", help="Unix timestamp")],
) -> None:
    """EIP-712 digest the requester must sign"""
    intent = build_intent(requester, amount, nonce, expiration)
    typer.echo("0x" + get_verifier().digest(intent).hex())


@intent_app.command("verify")
def intent_verify(
    requester: Annotated[str, typer.Option("--requester", help="Requester address")],
    amount: Annotated[int, typer.Option("--amount", help="Utility burn (base units)")],
    nonce: Annotated[str, typer.Option("--nonce", help="32-byte nonce (0x hex)")],
    expiration: Annotated[int, typer.Option("--expiration", help="Unix timestamp")],
    signature: Annotated[str, typer.Option("--signature", help="Signature (0x hex)")],
) -> None:
    """Check that a signature was produced by the requester"""
    intent = build_intent(requester, amount, nonce, expiration, signature)

    if get_verifier().verify(intent):
        typer.echo(f"✓ Valid signature by {intent.requester}")
    else:
        typer.echo(f"✗ Invalid signature for {intent.requester}", err=True)
        raise typer.Exit(1)


# History


@app.command()
def history(
    requester: Annotated[
        Optional[str],
        typer.Option("--requester", help="Restrict to one holder"),
    ] = None,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show settled exchanges"""
    vpx = get_exchange(db)
    entries = vpx.history(requester)

    if json_output:
        typer.echo(json.dumps(entries, indent=2, default=str))
        return

    if not entries:
        typer.echo("No exchanges settled")
        return

    typer.echo(f"Settled Exchanges ({len(entries)}):")
    for entry in entries:
        fill = "partial" if entry["partial_fill"] else "full"
        typer.echo(
            f"  {entry['received_at']}: {entry['requester']} burned "
            f"{format_tokens(entry['burn_amount'])} → "
            f"{format_tokens(entry['granted_power'])} voting power ({fill})"
        )


def main() -> None:
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
