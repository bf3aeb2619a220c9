"""
Voting Power Exchange - bonded conversion of utility tokens into voting power

Holders sign an exchange intent off-line; a privileged operator submits it.
The exchange verifies the EIP-712 signature, spends the one-time nonce,
prices the burn on a square-root bonding curve, clamps the grant to the
per-holder cap, and settles both ledgers atomically.

Fun fact: the curve's inverse is a plain quadratic, so reaching 100 voting
power costs 76,750 tokens while the first one costs just 25.
"""

from voting_power_exchange.vpx import VotingPowerExchange

__version__ = "0.1.0"
__all__ = ["VotingPowerExchange", "__version__"]
