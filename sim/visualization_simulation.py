"""
Visualization simulation for the DSC engine.

Loads config.yaml, opens positions across every collateral token and plots a
month of random price movements with a liquidation bot at work.
"""

import numpy as np

from dsc.config import build_protocol, load_config
from dsc.constants import PRECISION
from dsc.logging_setup import configure_logging
from dsc.simulation import InvariantHandler, SimulationClock, open_position, open_random_positions, simulate_market_scenario


def run_visualization_simulation():
    cfg = load_config()
    configure_logging(cfg.log_level)
    rng = np.random.default_rng(cfg.simulation.seed)

    clock = SimulationClock()
    deployment = build_protocol(cfg, clock=clock)

    print("Opening initial positions...")
    # Health factors spread from 1.2 to 2.0
    for user in open_random_positions(deployment, 10, rng):
        minted, collateral_value = deployment.engine.get_account_information(user)
        print(f"{user}: ${collateral_value / PRECISION:,.2f} collateral, {minted / PRECISION:,.2f} DSC")

    print("\nFunding liquidation bot...")
    symbol = cfg.collateral[0].symbol
    open_position(deployment, "keeper", symbol, 1000 * PRECISION, 50_000 * PRECISION)

    print("\nRunning random user actions...")
    handler = InvariantHandler(deployment, rng=rng, include_price_moves=cfg.simulation.include_price_moves)
    stats = handler.run(100, check=not cfg.simulation.include_price_moves)
    print(f"  calls: {stats.calls}")
    print(f"  reverts: {stats.reverts}")

    print("\nRunning simulation with visualizations...")
    results = simulate_market_scenario(deployment, "keeper", cfg.simulation.days,
                                       price_volatility=cfg.simulation.price_volatility,
                                       plot_results=True, rng=rng, clock=clock)

    print("\nSimulation Results:")
    for key, value in results.items():
        if key != 'history':
            print(f"  {key}: {value}")


if __name__ == "__main__":
    run_visualization_simulation()
