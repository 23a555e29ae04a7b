"""
Liquidation of undercollateralized positions.

When a position's health factor falls below the minimum, anyone may repay
part of its DSC debt. In exchange the liquidator receives the equivalent
amount of the position's collateral plus a bonus (10% by default), which is
what makes liquidating worthwhile and keeps the system overcollateralized.

The liquidation process follows these steps:
1. Check the position is liquidatable (health factor below the minimum)
2. Convert the debt being covered into collateral and add the bonus
3. Move that collateral from the position to the liquidator
4. Burn the liquidator's DSC against the position's debt
5. Require the position's health factor to have strictly improved
6. Require the liquidator to still be healthy

A liquidation is never partial: if the position does not hold enough of the
chosen collateral to pay the bonus-inclusive amount, the call fails.
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple

from .errors import HealthFactorNotImproved, HealthFactorOk
from .events import EventType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiquidationResult:
    """
    Values calculated during the liquidation of a position.
    """
    liquidator: str
    user: str
    token: str
    debt_covered: int                    # DSC repaid on behalf of the user
    token_amount_from_debt_covered: int  # Collateral equal in value to the debt covered
    bonus_collateral: int                # Extra collateral paid to the liquidator
    starting_health_factor: int
    ending_health_factor: int

    @property
    def total_collateral_seized(self) -> int:
        return self.token_amount_from_debt_covered + self.bonus_collateral


class LiquidationProtocol:
    """
    Third-party liquidation of positions held by a DSCEngine.

    ``liquidate`` mutates engine state and is only meant to run inside one of
    the engine's atomic entry points (``DSCEngine.liquidate``).
    """

    def __init__(self, engine):
        self.engine = engine

    def liquidate(self, liquidator, collateral, user, debt_to_cover) -> LiquidationResult:
        engine = self.engine
        engine._require_more_than_zero(debt_to_cover)
        engine._require_allowed_token(collateral)

        starting_user_health_factor = engine.health.health_factor(user)
        if starting_user_health_factor >= engine.min_health_factor:
            raise HealthFactorOk(starting_user_health_factor)

        token_amount_from_debt_covered = engine.oracle.token_amount_from_usd(collateral, debt_to_cover)
        bonus_collateral = self.bonus_for(token_amount_from_debt_covered)
        total_collateral_to_redeem = token_amount_from_debt_covered + bonus_collateral

        # Dust debt buys no collateral; the repayment alone has to improve the position
        if total_collateral_to_redeem > 0:
            engine._redeem_collateral(collateral, total_collateral_to_redeem, user, liquidator)
        engine._burn_dsc(debt_to_cover, on_behalf_of=user, dsc_from=liquidator)

        ending_user_health_factor = engine.health.health_factor(user)
        if ending_user_health_factor <= starting_user_health_factor:
            raise HealthFactorNotImproved(starting_user_health_factor, ending_user_health_factor)

        engine.health.assert_healthy(liquidator)

        engine.events.emit(EventType.LIQUIDATION, liquidator=liquidator, user=user, token=collateral,
                           debt_covered=debt_to_cover, collateral_seized=total_collateral_to_redeem)
        logger.info("%s liquidated %s: covered %d DSC for %d %s (health factor %d -> %d)",
                    liquidator, user, debt_to_cover, total_collateral_to_redeem, collateral,
                    starting_user_health_factor, ending_user_health_factor)

        return LiquidationResult(
            liquidator=liquidator,
            user=user,
            token=collateral,
            debt_covered=debt_to_cover,
            token_amount_from_debt_covered=token_amount_from_debt_covered,
            bonus_collateral=bonus_collateral,
            starting_health_factor=starting_user_health_factor,
            ending_health_factor=ending_user_health_factor,
        )

    def bonus_for(self, collateral_amount) -> int:
        return collateral_amount * self.engine.liquidation_bonus // self._precision()

    def liquidation_candidates(self) -> List[Tuple[str, int]]:
        """
        Depositors whose health factor is below the minimum, as
        ``(user, health_factor)`` pairs, worst first.
        """
        engine = self.engine
        candidates = []
        for user in engine.collateral_ledger.depositors():
            health_factor = engine.health.health_factor(user)
            if health_factor < engine.min_health_factor:
                candidates.append((user, health_factor))
        candidates.sort(key=lambda candidate: candidate[1])
        return candidates

    def max_debt_to_cover(self, user, collateral) -> int:
        """
        Largest debt a single liquidation of ``user`` can cover when seizing
        ``collateral``, limited by the user's debt and by how much of that
        collateral they hold once the bonus is added on top.
        """
        engine = self.engine
        balance = engine.collateral_ledger.balance_of(user, collateral)
        if balance == 0:
            return 0
        precision = self._precision()
        seizable_before_bonus = balance * precision // (precision + engine.liquidation_bonus)
        return min(engine.debt_ledger.debt_of(user), engine.oracle.usd_value(collateral, seizable_before_bonus))

    def _precision(self):
        return self.engine.get_liquidation_precision()
