"""
Protocol constants for the DSC engine.

All amounts are integers in 18-decimal fixed point (1e18 == 1.0), matching
the on-chain accounting the engine models.
"""

PRECISION = 10**18
FEED_PRECISION = 10**8  # Chainlink-style USD feeds report 8 decimals
ADDITIONAL_FEED_PRECISION = PRECISION // FEED_PRECISION

# Risk parameters
LIQUIDATION_THRESHOLD = 50   # 50% - only half of the collateral value backs debt (200% overcollateralized)
LIQUIDATION_PRECISION = 100
LIQUIDATION_BONUS = 10       # 10% - extra collateral paid to liquidators
MIN_HEALTH_FACTOR = PRECISION
MAX_HEALTH_FACTOR = 2**256 - 1  # Reported for positions without debt

# Oracle parameters
STALE_PRICE_TIMEOUT = 3 * 60 * 60  # 3 hours

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
