"""
Health check HTTP server for Kubernetes liveness and readiness probes.

Provides endpoints for monitoring the exchange's event log and, when an
exchange instance is attached, its cap and settlement counters.
"""

import sqlite3
from pathlib import Path
from typing import Any

from flask import Flask, Response, jsonify

from voting_power_exchange import __version__
from voting_power_exchange.kernel.logging import get_logger

logger = get_logger(__name__)

app = Flask(__name__)

# Global state - will be set by initialize_health_server()
_db_path: Path | None = None
_vpx_instance: Any = None  # VotingPowerExchange instance for detailed checks

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Cache-Control": "no-store",
}


@app.after_request
def add_security_headers(response: Response) -> Response:
    """Attach security headers to every response."""
    for header, value in SECURITY_HEADERS.items():
        response.headers[header] = value
    return response


def initialize_health_server(db_path: str | Path, vpx_instance: Any = None) -> None:
    """
    Initialize the health server with database path and exchange instance.

    Args:
        db_path: Path to SQLite event log
        vpx_instance: Optional VotingPowerExchange for detailed health checks
    """
    global _db_path, _vpx_instance
    _db_path = Path(db_path)
    _vpx_instance = vpx_instance
    logger.info("Health server initialized", db_path=str(_db_path))


@app.route("/health/live", methods=["GET"])
def liveness() -> tuple[Response, int]:
    """
    Liveness probe - checks if the process is running.

    Returns:
        JSON response with status and 200 OK
    """
    return jsonify({"status": "alive", "service": "voting-power-exchange"}), 200


@app.route("/health/ready", methods=["GET"])
def readiness() -> tuple[Response, int]:
    """
    Readiness probe - checks if the event log can be queried.

    Returns:
        JSON response with status and 200 OK if ready, 503 if not ready
    """
    if _db_path is None:
        logger.error("Readiness check failed: DB path not initialized")
        return (
            jsonify({"status": "not_ready", "reason": "database_path_not_initialized"}),
            503,
        )

    if not _db_path.exists():
        logger.error("Readiness check failed: DB file does not exist", db_path=str(_db_path))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_file_not_found",
                    "db_path": str(_db_path),
                }
            ),
            503,
        )

    try:
        conn = sqlite3.connect(str(_db_path), timeout=1.0)
        try:
            event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
        finally:
            conn.close()

        logger.debug("Readiness check passed", event_count=event_count)
        return (
            jsonify({"status": "ready", "database": "accessible", "event_count": event_count}),
            200,
        )

    except sqlite3.OperationalError as e:
        logger.error("Readiness check failed: DB operational error", error=str(e))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_operational_error",
                    "error": str(e),
                }
            ),
            503,
        )
    except Exception as e:
        logger.error("Readiness check failed: Unexpected error", error=str(e), exc_info=True)
        return (
            jsonify({"status": "not_ready", "reason": "unexpected_error", "error": str(e)}),
            503,
        )


def _database_health(db_path: Path) -> dict[str, Any]:
    conn = sqlite3.connect(str(db_path), timeout=1.0)
    try:
        event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
        stream_count = conn.execute("SELECT COUNT(DISTINCT stream_id) FROM events").fetchone()[0]
        page_count = conn.execute("PRAGMA page_count").fetchone()[0]
        page_size = conn.execute("PRAGMA page_size").fetchone()[0]
    finally:
        conn.close()

    return {
        "status": "healthy",
        "path": str(db_path),
        "event_count": event_count,
        "stream_count": stream_count,
        "size_mb": round((page_count * page_size) / (1024 * 1024), 2),
    }


@app.route("/health", methods=["GET"])
def detailed_health() -> tuple[Response, int]:
    """
    Detailed health check - includes exchange state if an instance is attached.

    uint256 values are reported as decimal strings.
    """
    health_data: dict[str, Any] = {
        "status": "healthy",
        "service": "voting-power-exchange",
        "version": __version__,
    }

    if _db_path and _db_path.exists():
        try:
            health_data["database"] = _database_health(_db_path)
        except sqlite3.Error as e:
            logger.error("Database health check failed", error=str(e))
            health_data["database"] = {"status": "unhealthy", "error": str(e)}
            health_data["status"] = "degraded"
    else:
        health_data["database"] = {"status": "not_initialized"}
        health_data["status"] = "degraded"

    if _vpx_instance is not None:
        try:
            utility_token, governance_token = _vpx_instance.token_addresses()
            health_data["exchange"] = {
                "voting_power_cap": str(_vpx_instance.get_voting_power_cap()),
                "exchanges_settled": len(_vpx_instance.history()),
                "domain_separator": "0x" + _vpx_instance.domain_separator().hex(),
                "utility_token": utility_token,
                "governance_token": governance_token,
            }
        except Exception as e:
            logger.warning("Could not read exchange state", error=str(e))
            health_data["exchange"] = {"status": "unavailable", "error": str(e)}

    status_code = 200 if health_data["status"] == "healthy" else 503
    return jsonify(health_data), status_code


def run_health_server(port: int = 8080, debug: bool = False) -> None:
    """
    Run the health check server.

    Args:
        port: Port to listen on (default: 8080)
        debug: Enable Flask debug mode (default: False)
    """
    logger.info("Starting health check server", port=port)
    app.run(host="0.0.0.0", port=port, debug=debug)


if __name__ == "__main__":
    # For local runs: python -m voting_power_exchange.health_server
    from voting_power_exchange.kernel.settings import ExchangeSettings

    initialize_health_server(ExchangeSettings.from_env().db_path)
    run_health_server(port=8080, debug=True)
