"""
CLI integration tests

Tests the operator console commands: init, constants, cap, nonce, curve,
intent and history. Uses Typer's CliRunner for isolated command testing.

Fun fact: The first command-line interface (CLI) was created in 1964 for the Dartmouth Time Sharing System.
It revolutionized computing by allowing users to interact with computers through text commands!
"""

import json

import pytest
from eth_account.signers.local import LocalAccount
from typer.testing import CliRunner

from voting_power_exchange import VotingPowerExchange
from voting_power_exchange.cli.main import app, format_tokens
from voting_power_exchange.exchange.signing import EXCHANGE_TYPEHASH

from tests.helpers import MANAGER, ONE_HOUR_LATER, OPERATOR, TOKEN, sign_intent


@pytest.fixture
def runner():
    """Typer CLI test runner"""
    return CliRunner()


@pytest.fixture
def db_path(runner, tmp_path):
    """Initialized exchange database"""
    path = tmp_path / "exchange.db"
    result = runner.invoke(app, ["init", "--db", str(path)])
    assert result.exit_code == 0
    return path


def _intent_args(intent) -> list[str]:
    return [
        "--requester",
        intent.requester,
        "--amount",
        str(intent.amount),
        "--nonce",
        "0x" + intent.nonce.hex(),
        "--expiration",
        str(intent.expiration),
    ]


def test_format_tokens() -> None:
    assert format_tokens(25 * TOKEN) == "25"
    assert format_tokens(TOKEN // 2) == "0.5"
    assert format_tokens(1) == "0.000000000000000001"


# =============================================================================
# Initialization Tests
# =============================================================================


def test_init_creates_database(runner, tmp_path) -> None:
    db_path = tmp_path / "test.db"

    result = runner.invoke(app, ["init", "--db", str(db_path)])

    assert result.exit_code == 0
    assert db_path.exists()
    assert "initialized" in result.stdout.lower()


def test_init_with_existing_database(runner, db_path) -> None:
    result = runner.invoke(app, ["init", "--db", str(db_path)])
    assert result.exit_code == 1


def test_missing_database(runner, tmp_path) -> None:
    result = runner.invoke(app, ["cap", "show", "--db", str(tmp_path / "missing.db")])
    assert result.exit_code == 1


def test_constants_json(runner) -> None:
    result = runner.invoke(app, ["constants", "--json"])

    assert result.exit_code == 0
    values = json.loads(result.stdout)
    assert values["exchange_typehash"] == "0x" + EXCHANGE_TYPEHASH.hex()
    assert values["precision"] == str(10**18)
    assert values["default_voting_power_cap"] == str(99 * TOKEN)


# =============================================================================
# Cap Command Tests
# =============================================================================


def test_cap_show_default(runner, db_path) -> None:
    result = runner.invoke(app, ["cap", "show", "--db", str(db_path)])

    assert result.exit_code == 0
    assert f"{99 * TOKEN} (99 tokens)" in result.stdout


def test_cap_set_persists(runner, db_path) -> None:
    result = runner.invoke(
        app, ["cap", "set", str(150 * TOKEN), "--manager", MANAGER, "--db", str(db_path)]
    )
    assert result.exit_code == 0
    assert "99 → 150" in result.stdout

    result = runner.invoke(app, ["cap", "show", "--db", str(db_path)])
    assert "(150 tokens)" in result.stdout


def test_cap_set_rejects_lower_value(runner, db_path) -> None:
    result = runner.invoke(
        app, ["cap", "set", str(50 * TOKEN), "--manager", MANAGER, "--db", str(db_path)]
    )
    assert result.exit_code == 1

    result = runner.invoke(app, ["cap", "show", "--db", str(db_path)])
    assert "(99 tokens)" in result.stdout


# =============================================================================
# Curve Command Tests
# =============================================================================


def test_curve_power(runner) -> None:
    result = runner.invoke(app, ["curve", "power", str(76_750 * TOKEN)])
    assert result.exit_code == 0
    assert "(100 voting power)" in result.stdout


def test_curve_cost(runner) -> None:
    result = runner.invoke(app, ["curve", "cost", str(99 * TOKEN)])
    assert result.exit_code == 0
    assert "(75240 tokens burned)" in result.stdout


def test_curve_quote_partial_fill(runner) -> None:
    result = runner.invoke(
        app,
        [
            "curve",
            "quote",
            "--amount",
            str(2_000 * TOKEN),
            "--burned",
            str(75_240 * TOKEN),
            "--power",
            str(99 * TOKEN),
            "--cap",
            str(100 * TOKEN),
        ],
    )

    assert result.exit_code == 0
    assert "Burn: " + str(1_510 * TOKEN) in result.stdout
    assert "Partial fill" in result.stdout


def test_curve_quote_json(runner) -> None:
    result = runner.invoke(app, ["curve", "quote", "--amount", str(25 * TOKEN), "--json"])

    assert result.exit_code == 0
    quote = json.loads(result.stdout)
    assert quote["granted_power"] == str(TOKEN)
    assert quote["partial_fill"] is False


def test_curve_quote_at_cap_fails(runner) -> None:
    result = runner.invoke(
        app, ["curve", "quote", "--amount", str(TOKEN), "--power", str(99 * TOKEN)]
    )
    assert result.exit_code == 1


# =============================================================================
# Intent Command Tests
# =============================================================================


def test_intent_digest(runner, alice: LocalAccount, vpx: VotingPowerExchange) -> None:
    intent = sign_intent(alice, vpx.domain, 25 * TOKEN)

    result = runner.invoke(app, ["intent", "digest", *_intent_args(intent)])

    assert result.exit_code == 0
    assert result.stdout.strip() == "0x" + vpx.exchange_digest(intent).hex()


def test_intent_verify_valid(runner, alice: LocalAccount, vpx: VotingPowerExchange) -> None:
    intent = sign_intent(alice, vpx.domain, 25 * TOKEN)

    result = runner.invoke(
        app,
        ["intent", "verify", *_intent_args(intent), "--signature", "0x" + intent.signature.hex()],
    )

    assert result.exit_code == 0
    assert alice.address in result.stdout


def test_intent_verify_forged(
    runner, alice: LocalAccount, bob: LocalAccount, vpx: VotingPowerExchange
) -> None:
    forged = sign_intent(bob, vpx.domain, 25 * TOKEN, requester=alice.address)

    result = runner.invoke(
        app,
        ["intent", "verify", *_intent_args(forged), "--signature", "0x" + forged.signature.hex()],
    )

    assert result.exit_code == 1


def test_intent_digest_rejects_malformed_nonce(runner) -> None:
    result = runner.invoke(
        app,
        [
            "intent",
            "digest",
            "--requester",
            "0x" + "ab" * 20,
            "--amount",
            str(TOKEN),
            "--nonce",
            "0x1234",
            "--expiration",
            str(ONE_HOUR_LATER),
        ],
    )
    assert result.exit_code == 1


# =============================================================================
# Nonce and History Tests (database written by the façade)
# =============================================================================


def test_nonce_status_and_history(
    runner, alice: LocalAccount, vpx: VotingPowerExchange, temp_db
) -> None:
    intent = sign_intent(alice, vpx.domain, 25 * TOKEN, nonce=3)
    vpx.exchange(intent, OPERATOR)

    result = runner.invoke(
        app,
        [
            "nonce",
            "status",
            "--requester",
            alice.address,
            "--nonce",
            "0x" + intent.nonce.hex(),
            "--db",
            str(temp_db),
        ],
    )
    assert result.exit_code == 0
    assert "consumed" in result.stdout

    result = runner.invoke(
        app,
        [
            "nonce",
            "status",
            "--requester",
            alice.address,
            "--nonce",
            "0x" + "00" * 31 + "04",
            "--db",
            str(temp_db),
        ],
    )
    assert "available" in result.stdout

    result = runner.invoke(app, ["history", "--db", str(temp_db)])
    assert result.exit_code == 0
    assert "Settled Exchanges (1):" in result.stdout
    assert "burned 25 → 1 voting power (full)" in result.stdout

    result = runner.invoke(app, ["history", "--requester", alice.address, "--json", "--db", str(temp_db)])
    entries = json.loads(result.stdout)
    assert len(entries) == 1
    assert entries[0]["burn_amount"] == 25 * TOKEN


def test_history_empty(runner, db_path) -> None:
    result = runner.invoke(app, ["history", "--db", str(db_path)])
    assert result.exit_code == 0
    assert "No exchanges settled" in result.stdout
