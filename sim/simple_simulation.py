"""
Simple simulation for the DSC engine.

This script walks a handful of positions through a price crash and a
liquidation.
"""

import numpy as np

from dsc.config import build_protocol
from dsc.constants import PRECISION
from dsc.logging_setup import configure_logging
from dsc.simulation import check_invariants, open_position


def _usd(amount):
    return amount / PRECISION


def print_state(deployment):
    engine = deployment.engine
    for symbol, token in deployment.tokens.items():
        custody = token.balance_of(engine.address)
        print(f"  {symbol}: {_usd(custody):.4f} deposited, "
              f"${_usd(engine.get_usd_value(token.address, custody)):,.2f}")
    print(f"  DSC supply: {_usd(deployment.dsc.total_supply):,.2f}")
    print(f"  Number of depositors: {len(engine.get_depositors())}")


def run_basic_simulation():
    configure_logging("INFO")
    rng = np.random.default_rng()

    # Initialize the protocol
    deployment = build_protocol()
    engine = deployment.engine
    weth = deployment.token_address("WETH")

    print("Opening initial positions...")
    for i in range(5):
        collateral = int(rng.uniform(3.0, 8.0) * PRECISION)
        # Target a health factor of ~1.5
        dsc_amount = engine.get_usd_value(weth, collateral) // 3
        open_position(deployment, f"user{i}", "WETH", collateral, dsc_amount)
        print(f"user{i}: {_usd(collateral):.2f} WETH, {_usd(dsc_amount):,.2f} DSC")

    # A liquidator with plenty of collateral and DSC to pay with
    open_position(deployment, "liquidator", "WETH", 100 * PRECISION, 20_000 * PRECISION)

    print("\nInitial protocol state:")
    print_state(deployment)

    # Simulate a price drop
    new_price = 1200.0
    print(f"\nSimulating WETH price drop to ${new_price:.2f}")
    deployment.set_price("WETH", new_price)

    candidates = engine.liquidations.liquidation_candidates()
    if candidates:
        print(f"Positions eligible for liquidation: {[user for user, _ in candidates]}")
        user, health_factor = candidates[0]
        debt_to_cover = engine.liquidations.max_debt_to_cover(user, weth)
        deployment.dsc.approve("liquidator", engine.address, debt_to_cover)
        result = engine.liquidate("liquidator", weth, user, debt_to_cover)
        print(f"Liquidated {user}: covered {_usd(result.debt_covered):,.2f} DSC, "
              f"seized {_usd(result.total_collateral_seized):.4f} WETH")
    else:
        print("No positions eligible for liquidation at this price")

    print("\nFinal protocol state:")
    print_state(deployment)
    check_invariants(deployment)


if __name__ == "__main__":
    run_basic_simulation()
