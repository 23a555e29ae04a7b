"""
Health factor computation for the DSC engine.

The health factor measures how far a position is from liquidation:

    health_factor = (collateral_value_usd * liquidation_threshold / 100) * 1e18 / debt_minted

With the default 50% threshold a position needs $2 of collateral for every
DSC minted to sit exactly at 1.0 (1e18). Anything below MIN_HEALTH_FACTOR is
liquidatable. A position without debt cannot be liquidated and reports
MAX_HEALTH_FACTOR.
"""

from typing import Tuple

from .constants import (
    LIQUIDATION_PRECISION,
    LIQUIDATION_THRESHOLD,
    MAX_HEALTH_FACTOR,
    MIN_HEALTH_FACTOR,
    PRECISION,
)
from .errors import BreaksHealthFactor


def calculate_health_factor(total_dsc_minted: int, collateral_value_in_usd: int,
                            liquidation_threshold: int = LIQUIDATION_THRESHOLD) -> int:
    """
    Health factor of a position holding ``collateral_value_in_usd`` worth of
    collateral against ``total_dsc_minted`` DSC of debt.
    """
    if total_dsc_minted == 0:
        return MAX_HEALTH_FACTOR
    collateral_adjusted_for_threshold = collateral_value_in_usd * liquidation_threshold // LIQUIDATION_PRECISION
    return collateral_adjusted_for_threshold * PRECISION // total_dsc_minted


class HealthFactorEngine:
    """
    Evaluates positions recorded in the ledgers at current oracle prices.

    This is the single solvency gate of the engine: every operation that can
    lower collateral or raise debt calls ``assert_healthy`` on the state it
    has just written.
    """

    def __init__(self, oracle, collateral_ledger, debt_ledger,
                 liquidation_threshold: int = LIQUIDATION_THRESHOLD,
                 min_health_factor: int = MIN_HEALTH_FACTOR):
        self.oracle = oracle
        self.collateral_ledger = collateral_ledger
        self.debt_ledger = debt_ledger
        self.liquidation_threshold = liquidation_threshold
        self.min_health_factor = min_health_factor

    def collateral_value_usd(self, user) -> int:
        """Total USD value of every collateral asset the user has deposited."""
        total = 0
        for asset in self.oracle.registry.tokens:
            amount = self.collateral_ledger.balance_of(user, asset)
            if amount > 0:
                total += self.oracle.usd_value(asset, amount)
        return total

    def account_information(self, user) -> Tuple[int, int]:
        """Returns ``(debt_minted, collateral_value_usd)`` for the user."""
        return self.debt_ledger.debt_of(user), self.collateral_value_usd(user)

    def calculate(self, total_dsc_minted: int, collateral_value_in_usd: int) -> int:
        return calculate_health_factor(total_dsc_minted, collateral_value_in_usd, self.liquidation_threshold)

    def health_factor(self, user) -> int:
        debt_minted = self.debt_ledger.debt_of(user)
        if debt_minted == 0:
            return MAX_HEALTH_FACTOR
        return self.calculate(debt_minted, self.collateral_value_usd(user))

    def is_healthy(self, user) -> bool:
        return self.health_factor(user) >= self.min_health_factor

    def assert_healthy(self, user) -> None:
        """
        Raises:
            BreaksHealthFactor: If the user's health factor is below the minimum
        """
        health_factor = self.health_factor(user)
        if health_factor < self.min_health_factor:
            raise BreaksHealthFactor(health_factor)
