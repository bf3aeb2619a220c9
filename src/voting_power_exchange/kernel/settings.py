"""
Exchange Settings - deployment parameters for one exchange instance

The EIP-712 domain (name, version, chain id, verifying contract) pins every
signature to exactly one deployment: an intent signed for a testnet
instance is worthless on mainnet and vice versa.
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from voting_power_exchange.exchange.addresses import ZERO_ADDRESS, normalize_address

DEFAULT_VOTING_POWER_CAP = 99 * 10**18


class ExchangeSettings(BaseModel):
    """
    Configuration of an exchange deployment

    Values come from code defaults, keyword arguments, or VPX_* environment
    variables (see from_env).
    """

    domain_name: str = Field(
        default="VotingPowerExchange",
        min_length=1,
        description="EIP-712 domain name",
    )

    domain_version: str = Field(
        default="1",
        min_length=1,
        description="EIP-712 domain version",
    )

    chain_id: int = Field(
        default=1,
        ge=1,
        description="Chain id bound into every signature",
    )

    verifying_contract: str = Field(
        default="0x000000000000000000000000000000000000dEaD",
        description="Address identifying this exchange instance in the EIP-712 domain",
    )

    utility_token: str = Field(
        default=ZERO_ADDRESS,
        description="Address of the utility token ledger (read-only accessor)",
    )

    governance_token: str = Field(
        default=ZERO_ADDRESS,
        description="Address of the governance token ledger (read-only accessor)",
    )

    default_voting_power_cap: int = Field(
        default=DEFAULT_VOTING_POWER_CAP,
        ge=0,
        description="Voting power cap at construction, before any manager update",
    )

    db_path: Path = Field(
        default=Path(".vpx.db"),
        description="SQLite database holding the exchange event log",
    )

    log_level: str = Field(default="INFO")

    json_logs: bool = Field(default=False)

    @field_validator("verifying_contract", "utility_token", "governance_token")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return normalize_address(value)

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level {value}")
        return level

    @classmethod
    def from_env(cls, **overrides: object) -> "ExchangeSettings":
        """
        Build settings from VPX_* environment variables

        Recognised: VPX_DOMAIN_NAME, VPX_DOMAIN_VERSION, VPX_CHAIN_ID,
        VPX_VERIFYING_CONTRACT, VPX_UTILITY_TOKEN, VPX_GOVERNANCE_TOKEN,
        VPX_DEFAULT_VOTING_POWER_CAP, VPX_DB_PATH, VPX_LOG_LEVEL, VPX_JSON_LOGS.
        Keyword overrides win over the environment.
        """
        values: dict[str, object] = {}
        for field_name in cls.model_fields:
            raw = os.getenv(f"VPX_{field_name.upper()}")
            if raw is not None:
                values[field_name] = raw
        if "json_logs" in values:
            values["json_logs"] = str(values["json_logs"]).lower() in {"1", "true", "yes"}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
