"""
Simulation and invariant harness for the DSC engine.

Two tools live here:

* ``InvariantHandler`` drives the engine with random but bounded user actions
  (deposit, mint, redeem, burn, liquidate) and ``check_invariants`` verifies
  the protocol invariants after every step:
    1. The USD value of all collateral held by the engine is at least the DSC supply
    2. Ledger totals, per-user balances and token custody agree for every collateral
    3. Recorded debt equals the DSC supply
    4. Read-only accessors never raise
* ``simulate_market_scenario`` runs the protocol through a random log-normal
  price path with a liquidation bot sweeping underwater positions every hour.

Arbitrary price moves between calls are left out of the handler's default
actions: a crash between two oracle updates can leave positions worth less
than their debt, which breaks invariant 1 no matter what the engine does.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np

from .config import Deployment
from .errors import DSCError

logger = logging.getLogger(__name__)

MAX_DEPOSIT_SIZE = 2**96 - 1
ONE_HOUR = 60 * 60


class SimulationClock:
    """Manually advanced clock for feeds and the engine's stale-price check."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InvariantViolation(AssertionError):
    """Raised by ``check_invariants`` when a protocol invariant does not hold."""


def check_invariants(deployment: Deployment) -> None:
    """
    Verify the protocol invariants on the current state.

    Raises:
        InvariantViolation: If any invariant is broken
    """
    engine = deployment.engine
    dsc = deployment.dsc
    depositors = engine.get_depositors()

    total_collateral_value = 0
    for token in deployment.tokens.values():
        custody = token.balance_of(engine.address)
        ledger_total = engine.get_total_collateral_deposited(token.address)
        per_user_total = sum(engine.get_collateral_balance_of_user(user, token.address) for user in depositors)
        if not custody == ledger_total == per_user_total:
            raise InvariantViolation(
                f"{token.address} conservation broken: custody {custody}, "
                f"ledger {ledger_total}, sum of balances {per_user_total}"
            )
        total_collateral_value += engine.get_usd_value(token.address, custody)

    if total_collateral_value < dsc.total_supply:
        raise InvariantViolation(
            f"Protocol undercollateralized: collateral worth {total_collateral_value}, "
            f"DSC supply {dsc.total_supply}"
        )

    if engine.debt_ledger.total_debt() != dsc.total_supply:
        raise InvariantViolation(
            f"Recorded debt {engine.debt_ledger.total_debt()} differs from DSC supply {dsc.total_supply}"
        )

    # Getters should never raise
    engine.get_precision()
    engine.get_additional_feed_precision()
    engine.get_liquidation_threshold()
    engine.get_liquidation_bonus()
    engine.get_liquidation_precision()
    engine.get_min_health_factor()
    engine.get_collateral_tokens()
    engine.get_dsc()
    for user in depositors:
        engine.get_account_information(user)
        engine.get_health_factor(user)


def open_position(deployment: Deployment, user: str, symbol: str, collateral_amount: int,
                  dsc_amount: int = 0) -> None:
    """Fund ``user`` with collateral, deposit it and optionally mint DSC against it."""
    engine = deployment.engine
    token = deployment.tokens[symbol]
    token.mint(user, collateral_amount)
    token.approve(user, engine.address, collateral_amount)
    if dsc_amount > 0:
        engine.deposit_collateral_and_mint_dsc(user, token.address, collateral_amount, dsc_amount)
    else:
        engine.deposit_collateral(user, token.address, collateral_amount)


def open_random_positions(deployment: Deployment, count: int, rng: np.random.Generator,
                          min_health_factor: float = 1.2, max_health_factor: float = 2.0) -> List[str]:
    """
    Open ``count`` positions with random collateral, spreading their health
    factors evenly between ``min_health_factor`` and ``max_health_factor``.
    """
    engine = deployment.engine
    symbols = list(deployment.tokens)
    users = []
    for i in range(count):
        user = f"user{i}"
        symbol = symbols[i % len(symbols)]
        collateral_amount = int(rng.uniform(2.0, 10.0) * 10**18)
        target_health_factor = min_health_factor + i * (max_health_factor - min_health_factor) / count

        collateral_value = engine.get_usd_value(deployment.token_address(symbol), collateral_amount)
        backing_value = collateral_value * engine.get_liquidation_threshold() // engine.get_liquidation_precision()
        dsc_amount = int(backing_value / target_health_factor)

        open_position(deployment, user, symbol, collateral_amount, dsc_amount)
        users.append(user)
    return users


@dataclass
class HandlerStats:
    """Per-action counts of successful, reverted and skipped calls."""
    calls: Dict[str, int] = field(default_factory=dict)
    reverts: Dict[str, int] = field(default_factory=dict)
    skips: Dict[str, int] = field(default_factory=dict)

    def record(self, bucket: Dict[str, int], action: str) -> None:
        bucket[action] = bucket.get(action, 0) + 1

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


def _bound(value: int, low: int, high: int) -> int:
    """Map ``value`` into ``[low, high]``."""
    return low + value % (high - low + 1)


class InvariantHandler:
    """
    Random, bounded sequence of user actions against a deployment.

    Amounts are bounded to what the acting user can plausibly afford so most
    calls get through; the calls that still revert are counted and leave no
    state behind.

    Args:
        deployment: Protocol to drive
        rng: numpy random generator, seeded for reproducible runs
        actors: Number of distinct users taking actions
        include_price_moves: Also move collateral prices randomly between calls
    """

    def __init__(self, deployment: Deployment, rng: Optional[np.random.Generator] = None,
                 actors: int = 3, include_price_moves: bool = False):
        self.deployment = deployment
        self.engine = deployment.engine
        self.dsc = deployment.dsc
        self.rng = rng if rng is not None else np.random.default_rng()
        self.actors = [f"actor{i}" for i in range(actors)]
        self.collateral = list(deployment.tokens.values())
        self.stats = HandlerStats()

        self.actions: List[Callable[[], bool]] = [
            self.deposit_collateral,
            self.mint_dsc,
            self.redeem_collateral,
            self.burn_dsc,
            self.liquidate,
        ]
        if include_price_moves:
            self.actions.append(self.update_collateral_price)

    def _uint(self, bits: int = 96) -> int:
        """Random unsigned integer of ``bits`` bits (numpy draws are capped at 63)."""
        value = 0
        for _ in range(0, bits, 32):
            value = (value << 32) | int(self.rng.integers(0, 2**32))
        return value % 2**bits

    def _pick(self, items):
        return items[int(self.rng.integers(len(items)))]

    # --- Actions; each returns False when it had nothing sensible to do ---

    def deposit_collateral(self) -> bool:
        actor = self._pick(self.actors)
        token = self._pick(self.collateral)
        amount = _bound(self._uint(), 1, MAX_DEPOSIT_SIZE)

        token.mint(actor, amount)
        token.approve(actor, self.engine.address, amount)
        self.engine.deposit_collateral(actor, token.address, amount)
        return True

    def mint_dsc(self) -> bool:
        actor = self._pick(self.actors)
        total_dsc_minted, collateral_value = self.engine.get_account_information(actor)
        backing_value = (collateral_value * self.engine.get_liquidation_threshold()
                         // self.engine.get_liquidation_precision())
        max_dsc_to_mint = backing_value - total_dsc_minted
        if max_dsc_to_mint <= 0:
            return False

        amount = _bound(self._uint(), 1, max_dsc_to_mint)
        self.engine.mint_dsc(actor, amount)
        return True

    def redeem_collateral(self) -> bool:
        actor = self._pick(self.actors)
        token = self._pick(self.collateral)
        max_collateral = self.engine.get_collateral_balance_of_user(actor, token.address)
        if max_collateral == 0:
            return False

        amount = _bound(self._uint(), 1, max_collateral)
        self.engine.redeem_collateral(actor, token.address, amount)
        return True

    def burn_dsc(self) -> bool:
        actor = self._pick(self.actors)
        max_burn = min(self.dsc.balance_of(actor), self.engine.debt_ledger.debt_of(actor))
        if max_burn == 0:
            return False

        amount = _bound(self._uint(), 1, max_burn)
        self.dsc.approve(actor, self.engine.address, amount)
        self.engine.burn_dsc(actor, amount)
        return True

    def liquidate(self) -> bool:
        liquidator = self._pick(self.actors)
        user = self._pick(self.actors)
        token = self._pick(self.collateral)
        max_cover = min(self.dsc.balance_of(liquidator), self.engine.debt_ledger.debt_of(user))
        if max_cover == 0:
            return False

        debt_to_cover = _bound(self._uint(), 1, max_cover)
        self.dsc.approve(liquidator, self.engine.address, debt_to_cover)
        self.engine.liquidate(liquidator, token.address, user, debt_to_cover)
        return True

    def update_collateral_price(self) -> bool:
        symbol = self._pick(list(self.deployment.feeds))
        feed = self.deployment.feeds[symbol]
        new_answer = max(1, int(feed.latest_answer() * self.rng.uniform(0.5, 1.5)))
        feed.update_answer(new_answer)
        return True

    # --- Driving ---

    def step(self) -> str:
        """Run one random action and return its name."""
        action = self._pick(self.actions)
        name = action.__name__
        try:
            performed = action()
        except DSCError as exc:
            logger.debug("%s reverted: %s", name, exc)
            self.stats.record(self.stats.reverts, name)
        else:
            self.stats.record(self.stats.calls if performed else self.stats.skips, name)
        return name

    def run(self, steps: int, check: bool = True) -> HandlerStats:
        """Run ``steps`` actions, checking the invariants after each one."""
        for _ in range(steps):
            self.step()
            if check:
                check_invariants(self.deployment)
        return self.stats


def run_liquidation_bot(deployment: Deployment, keeper: str) -> Tuple[int, int]:
    """
    Liquidate every underwater position as far as one call allows, paying with
    the keeper's DSC and seizing the user's most valuable collateral.

    Returns:
        (liquidations performed, liquidations that could not be performed)
    """
    engine = deployment.engine
    dsc = deployment.dsc
    liquidated = 0
    failed = 0

    for user, health_factor in engine.liquidations.liquidation_candidates():
        if user == keeper:
            continue

        collateral = max(
            engine.get_collateral_tokens(),
            key=lambda token: engine.get_usd_value(token, engine.get_collateral_balance_of_user(user, token)),
        )
        debt_to_cover = min(engine.liquidations.max_debt_to_cover(user, collateral), dsc.balance_of(keeper))
        if debt_to_cover == 0:
            failed += 1
            continue

        dsc.approve(keeper, engine.address, debt_to_cover)
        try:
            engine.liquidate(keeper, collateral, user, debt_to_cover)
        except DSCError as exc:
            logger.debug("Could not liquidate %s (health factor %d): %s", user, health_factor, exc)
            failed += 1
        else:
            liquidated += 1

    return liquidated, failed


def simulate_market_scenario(deployment: Deployment, keeper: str, days: int, price_volatility: float = 0.02,
                             plot_results: bool = True, rng: Optional[np.random.Generator] = None,
                             clock: Optional[SimulationClock] = None) -> Dict:
    """
    Run the protocol through random hourly price movements.

    Every hour each collateral price takes a log-normal step, then the
    liquidation bot sweeps the positions that went underwater.

    Args:
        deployment: Protocol with positions already open
        keeper: Address of the liquidation bot; it needs DSC to liquidate
        days: Number of days to simulate
        price_volatility: Standard deviation of hourly log returns
        plot_results: Whether to plot the history with matplotlib
        rng: numpy random generator
        clock: Clock the deployment was built with, advanced one hour per step

    Returns:
        Dictionary with simulation results and the recorded history
    """
    rng = rng if rng is not None else np.random.default_rng()
    engine = deployment.engine
    symbols = list(deployment.feeds)
    steps = days * 24

    # Arrays to store history
    time_points = np.zeros(steps)
    price_points = np.zeros((steps, len(symbols)))
    dsc_supply_points = np.zeros(steps)
    collateral_value_points = np.zeros(steps)
    liquidation_points = np.zeros(steps)
    underwater_points = np.zeros(steps)

    log_returns = rng.normal(0, price_volatility, (steps, len(symbols)))
    total_liquidated = 0
    total_failed = 0

    for i in range(steps):
        if clock is not None:
            clock.advance(ONE_HOUR)

        for j, symbol in enumerate(symbols):
            feed = deployment.feeds[symbol]
            feed.update_answer(max(1, int(feed.latest_answer() * np.exp(log_returns[i, j]))))

        liquidated, failed = run_liquidation_bot(deployment, keeper)
        total_liquidated += liquidated
        total_failed += failed

        # Record historical data
        time_points[i] = (i + 1) / 24
        for j, symbol in enumerate(symbols):
            feed = deployment.feeds[symbol]
            price_points[i, j] = feed.latest_answer() / 10**feed.decimals
        dsc_supply_points[i] = deployment.dsc.total_supply / 1e18
        collateral_value_points[i] = _total_collateral_value(deployment) / 1e18
        liquidation_points[i] = total_liquidated
        underwater_points[i] = len(engine.liquidations.liquidation_candidates())

    if plot_results:
        fig, axs = plt.subplots(4, 1, figsize=(12, 16), sharex=True)

        for j, symbol in enumerate(symbols):
            axs[0].plot(time_points, price_points[:, j], label=symbol)
        axs[0].set_title('Collateral Prices')
        axs[0].set_ylabel('USD')
        axs[0].legend()

        axs[1].plot(time_points, collateral_value_points, label='Collateral value')
        axs[1].plot(time_points, dsc_supply_points, label='DSC supply')
        axs[1].set_title('Collateral vs. Debt')
        axs[1].set_ylabel('USD')
        axs[1].legend()

        axs[2].plot(time_points, underwater_points)
        axs[2].set_title('Liquidatable Positions')
        axs[2].set_ylabel('Count')

        axs[3].plot(time_points, liquidation_points)
        axs[3].set_title('Cumulative Liquidations')
        axs[3].set_ylabel('Count')
        axs[3].set_xlabel('Days')

        plt.tight_layout()
        plt.show()

    final_supply = deployment.dsc.total_supply
    final_collateral_value = _total_collateral_value(deployment)
    return {
        'final_prices': {symbol: float(price_points[-1, j]) for j, symbol in enumerate(symbols)} if steps else {},
        'final_dsc_supply': final_supply,
        'final_collateral_value': final_collateral_value,
        'final_collateralization_ratio': final_collateral_value / final_supply if final_supply else float('inf'),
        'liquidations': total_liquidated,
        'failed_liquidations': total_failed,
        'liquidatable_positions': len(engine.liquidations.liquidation_candidates()),
        'history': {
            'days': time_points,
            'prices': price_points,
            'dsc_supply': dsc_supply_points,
            'collateral_value': collateral_value_points,
        },
    }


def _total_collateral_value(deployment: Deployment) -> int:
    engine = deployment.engine
    return sum(
        engine.get_usd_value(token.address, token.balance_of(engine.address))
        for token in deployment.tokens.values()
    )
