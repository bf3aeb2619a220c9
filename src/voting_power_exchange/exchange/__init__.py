"""
Exchange module - bonding curve, signed intents, replay guard and cap policy

Submodules are imported directly (voting_power_exchange.exchange.curve, ...)
so kernel settings can depend on exchange.addresses without a cycle.
"""
