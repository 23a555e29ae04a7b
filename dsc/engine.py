"""
DSC Engine.

This module simulates the DSCEngine contract, the core of the Decentralized
Stable Coin system. Users lock collateral tokens with the engine and mint DSC,
a USD-pegged stable coin, against them.

The engine is responsible for:
1. Accepting and returning collateral (deposit / redeem)
2. Minting and burning DSC against that collateral (mint / burn)
3. Enforcing the minimum health factor after every operation that lowers
   collateral or raises debt
4. Letting third parties liquidate undercollateralized positions for a bonus

The system is designed to always be overcollateralized: at no point should
the USD value of all collateral be worth less than the DSC in circulation.

Every entry point is atomic. The ledgers are written first, the external
token effects happen next, and the health factor is validated on the
resulting state; if any step raises, every ledger, token balance and event of
the call is rolled back.
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, List, Optional, Sequence, Tuple

from .collateral_ledger import CollateralLedger
from .constants import (
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_BONUS,
    LIQUIDATION_PRECISION,
    LIQUIDATION_THRESHOLD,
    MIN_HEALTH_FACTOR,
    PRECISION,
    STALE_PRICE_TIMEOUT,
)
from .debt_ledger import DebtLedger
from .errors import MintFailed, NeedsMoreThanZero, NotAllowedToken, ReentrantCall, TransferFailed
from .events import EventLog, EventType
from .health_factor import HealthFactorEngine
from .liquidation import LiquidationProtocol, LiquidationResult
from .oracle import PriceOracleAdapter
from .price_feed import PriceFeed
from .registry import CollateralRegistry
from .stable_coin import DecentralizedStableCoin
from .transaction import atomic

logger = logging.getLogger(__name__)


class DSCEngine:
    """
    Simulates the DSCEngine contract which manages collateral and DSC debt.

    Callers are identified by plain address strings passed as the first
    argument of every entry point.

    Args:
        collateral_tokens: Collateral token objects; their ``address`` is their identity
        price_feeds: One USD price feed per collateral token, in the same order
        stable_coin: The DSC token; the engine must be its owner to mint
        address: Identity of the engine, the account holding custody of collateral
        liquidation_threshold: Percentage of collateral value that backs debt
        liquidation_bonus: Percentage of seized collateral paid to liquidators on top
        min_health_factor: Solvency floor, 1e18 == 1.0
        stale_price_timeout: Maximum accepted age of a price, None to disable
        clock: Callable returning the current time in seconds

    Raises:
        TokenAddressesAndPriceFeedAddressesMustBeSameLength: If the lists differ in length
    """

    def __init__(self, collateral_tokens: Sequence, price_feeds: Sequence[PriceFeed],
                 stable_coin: DecentralizedStableCoin, address: str = "DSCEngine",
                 liquidation_threshold: int = LIQUIDATION_THRESHOLD,
                 liquidation_bonus: int = LIQUIDATION_BONUS,
                 min_health_factor: int = MIN_HEALTH_FACTOR,
                 stale_price_timeout: Optional[float] = STALE_PRICE_TIMEOUT,
                 clock: Callable[[], float] = time.time):
        self.address = address
        self.stable_coin = stable_coin

        self.registry = CollateralRegistry([token.address for token in collateral_tokens], list(price_feeds))
        self._tokens = {token.address: token for token in collateral_tokens}

        self.liquidation_threshold = liquidation_threshold
        self.liquidation_bonus = liquidation_bonus
        self.min_health_factor = min_health_factor

        # State
        self.collateral_ledger = CollateralLedger()
        self.debt_ledger = DebtLedger()
        self.events = EventLog()

        # Components
        self.oracle = PriceOracleAdapter(self.registry, stale_price_timeout=stale_price_timeout, clock=clock)
        self.health = HealthFactorEngine(
            self.oracle,
            self.collateral_ledger,
            self.debt_ledger,
            liquidation_threshold=liquidation_threshold,
            min_health_factor=min_health_factor,
        )
        self.liquidations = LiquidationProtocol(self)

        self._entered = False

    # --- Call discipline ---

    @contextmanager
    def _non_reentrant(self, operation):
        """Runs one entry point: rejects nested calls and rolls back on failure."""
        if self._entered:
            raise ReentrantCall()
        self._entered = True
        try:
            with atomic(*self._participants()):
                yield
        except Exception as exc:
            logger.debug("%s reverted: %s", operation, exc)
            raise
        finally:
            self._entered = False

    def _participants(self):
        return [self.collateral_ledger, self.debt_ledger, self.events, self.stable_coin, *self._tokens.values()]

    def _require_more_than_zero(self, amount):
        if amount <= 0:
            raise NeedsMoreThanZero(amount)

    def _require_allowed_token(self, token):
        if token not in self.registry:
            raise NotAllowedToken(token)

    # --- External functions ---

    def deposit_collateral_and_mint_dsc(self, caller: str, token_collateral_address: str,
                                        amount_collateral: int, amount_dsc_to_mint: int) -> None:
        """
        Deposit collateral and mint DSC in one call.

        Args:
            caller: Address of the user
            token_collateral_address: Collateral token to deposit
            amount_collateral: Amount of collateral to deposit
            amount_dsc_to_mint: Amount of DSC to mint
        """
        with self._non_reentrant("deposit_collateral_and_mint_dsc"):
            self._deposit_collateral(caller, token_collateral_address, amount_collateral)
            self._mint_dsc(caller, amount_dsc_to_mint)

    def deposit_collateral(self, caller: str, token_collateral_address: str, amount_collateral: int) -> None:
        """
        Lock ``amount_collateral`` of a collateral token with the engine.

        The caller must have approved the engine to move the tokens. Depositing
        only ever raises the caller's health factor, so no health check is made.

        Raises:
            NeedsMoreThanZero: If the amount is zero
            NotAllowedToken: If the token is not accepted as collateral
            TransferFailed: If the token reports a failed transfer
        """
        with self._non_reentrant("deposit_collateral"):
            self._deposit_collateral(caller, token_collateral_address, amount_collateral)

    def redeem_collateral_for_dsc(self, caller: str, token_collateral_address: str,
                                  amount_collateral: int, amount_dsc_to_burn: int) -> None:
        """
        Burn DSC and take collateral back in one call.

        The burn happens first so the health check of the redemption already
        sees the reduced debt.
        """
        with self._non_reentrant("redeem_collateral_for_dsc"):
            self._require_more_than_zero(amount_collateral)
            self._require_allowed_token(token_collateral_address)
            self._burn_dsc(amount_dsc_to_burn, on_behalf_of=caller, dsc_from=caller)
            self._redeem_collateral(token_collateral_address, amount_collateral, caller, caller)
            self.health.assert_healthy(caller)

    def redeem_collateral(self, caller: str, token_collateral_address: str, amount_collateral: int) -> None:
        """
        Take collateral back out of the engine.

        Raises:
            NeedsMoreThanZero: If the amount is zero
            NotAllowedToken: If the token is not accepted as collateral
            InsufficientCollateral: If the caller deposited less than the amount
            BreaksHealthFactor: If the remaining collateral no longer covers the caller's debt
        """
        with self._non_reentrant("redeem_collateral"):
            self._require_more_than_zero(amount_collateral)
            self._require_allowed_token(token_collateral_address)
            self._redeem_collateral(token_collateral_address, amount_collateral, caller, caller)
            self.health.assert_healthy(caller)

    def mint_dsc(self, caller: str, amount_dsc_to_mint: int) -> None:
        """
        Mint DSC against the caller's deposited collateral.

        Raises:
            NeedsMoreThanZero: If the amount is zero
            BreaksHealthFactor: If the new debt is not covered by the collateral
            MintFailed: If the stable coin reports a failed mint
        """
        with self._non_reentrant("mint_dsc"):
            self._mint_dsc(caller, amount_dsc_to_mint)

    def burn_dsc(self, caller: str, amount: int) -> None:
        """
        Repay DSC debt by burning the caller's DSC.

        The caller must have approved the engine to move the DSC.
        """
        with self._non_reentrant("burn_dsc"):
            self._require_more_than_zero(amount)
            self._burn_dsc(amount, on_behalf_of=caller, dsc_from=caller)
            # Burning cannot lower the health factor; checked anyway
            self.health.assert_healthy(caller)

    def liquidate(self, caller: str, token_collateral_address: str, user: str, debt_to_cover: int) -> LiquidationResult:
        """
        Repay part of an undercollateralized user's debt in exchange for their
        collateral plus a bonus.

        Args:
            caller: Address of the liquidator, who pays with their own DSC
            token_collateral_address: Collateral token to seize from the user
            user: Address of the position being liquidated
            debt_to_cover: Amount of the user's DSC debt to repay

        Returns:
            LiquidationResult describing what was repaid and seized

        Raises:
            HealthFactorOk: If the user's position is not liquidatable
            InsufficientCollateral: If the user cannot cover the seizure plus bonus
            HealthFactorNotImproved: If the liquidation leaves the user no healthier
            BreaksHealthFactor: If the liquidator ends up unhealthy
        """
        with self._non_reentrant("liquidate"):
            return self.liquidations.liquidate(caller, token_collateral_address, user, debt_to_cover)

    # --- Internal functions ---

    def _deposit_collateral(self, caller, token_collateral_address, amount_collateral):
        self._require_more_than_zero(amount_collateral)
        self._require_allowed_token(token_collateral_address)

        self.collateral_ledger.deposit(caller, token_collateral_address, amount_collateral)
        self.events.emit(EventType.COLLATERAL_DEPOSITED, user=caller, token=token_collateral_address,
                         amount=amount_collateral)
        logger.debug("%s deposited %d %s", caller, amount_collateral, token_collateral_address)

        token = self._tokens[token_collateral_address]
        if not token.transfer_from(self.address, caller, self.address, amount_collateral):
            raise TransferFailed(token_collateral_address, caller, self.address, amount_collateral)

    def _mint_dsc(self, caller, amount_dsc_to_mint):
        self._require_more_than_zero(amount_dsc_to_mint)

        self.debt_ledger.increase(caller, amount_dsc_to_mint)
        self.health.assert_healthy(caller)

        if not self.stable_coin.mint(self.address, caller, amount_dsc_to_mint):
            raise MintFailed(caller, amount_dsc_to_mint)
        self.events.emit(EventType.DSC_MINTED, user=caller, amount=amount_dsc_to_mint)
        logger.debug("%s minted %d DSC", caller, amount_dsc_to_mint)

    def _redeem_collateral(self, token_collateral_address, amount_collateral, redeemed_from, redeemed_to):
        """Debit ``redeemed_from``'s ledger balance and pay the tokens out to ``redeemed_to``."""
        self.collateral_ledger.withdraw(redeemed_from, token_collateral_address, amount_collateral)
        self.events.emit(EventType.COLLATERAL_REDEEMED, redeemed_from=redeemed_from, redeemed_to=redeemed_to,
                         token=token_collateral_address, amount=amount_collateral)
        logger.debug("Redeemed %d %s from %s to %s", amount_collateral, token_collateral_address,
                     redeemed_from, redeemed_to)

        token = self._tokens[token_collateral_address]
        if not token.transfer(self.address, redeemed_to, amount_collateral):
            raise TransferFailed(token_collateral_address, self.address, redeemed_to, amount_collateral)

    def _burn_dsc(self, amount_dsc_to_burn, on_behalf_of, dsc_from):
        """Reduce ``on_behalf_of``'s debt, paying with DSC pulled from ``dsc_from``."""
        self._require_more_than_zero(amount_dsc_to_burn)

        self.debt_ledger.decrease(on_behalf_of, amount_dsc_to_burn)
        if not self.stable_coin.transfer_from(self.address, dsc_from, self.address, amount_dsc_to_burn):
            raise TransferFailed(self.stable_coin.address, dsc_from, self.address, amount_dsc_to_burn)
        self.stable_coin.burn(self.address, amount_dsc_to_burn)

        self.events.emit(EventType.DSC_BURNED, on_behalf_of=on_behalf_of, dsc_from=dsc_from,
                         amount=amount_dsc_to_burn)
        logger.debug("%s burned %d DSC on behalf of %s", dsc_from, amount_dsc_to_burn, on_behalf_of)

    # --- Read-only functions ---

    def get_account_information(self, user: str) -> Tuple[int, int]:
        """Returns ``(total_dsc_minted, collateral_value_in_usd)`` for the user."""
        return self.health.account_information(user)

    def get_account_collateral_value(self, user: str) -> int:
        return self.health.collateral_value_usd(user)

    def get_health_factor(self, user: str) -> int:
        return self.health.health_factor(user)

    def calculate_health_factor(self, total_dsc_minted: int, collateral_value_in_usd: int) -> int:
        return self.health.calculate(total_dsc_minted, collateral_value_in_usd)

    def get_usd_value(self, token: str, amount: int) -> int:
        return self.oracle.usd_value(token, amount)

    def get_token_amount_from_usd(self, token: str, usd_amount_in_wei: int) -> int:
        return self.oracle.token_amount_from_usd(token, usd_amount_in_wei)

    def get_collateral_balance_of_user(self, user: str, token: str) -> int:
        return self.collateral_ledger.balance_of(user, token)

    def get_total_collateral_deposited(self, token: str) -> int:
        return self.collateral_ledger.total_deposited(token)

    def get_collateral_tokens(self) -> List[str]:
        return list(self.registry.tokens)

    def get_collateral_token(self, token: str):
        """Returns the token object behind a collateral address."""
        self._require_allowed_token(token)
        return self._tokens[token]

    def get_collateral_token_price_feed(self, token: str) -> PriceFeed:
        return self.registry.price_feed(token)

    def get_depositors(self) -> List[str]:
        return self.collateral_ledger.depositors()

    def get_dsc(self) -> DecentralizedStableCoin:
        return self.stable_coin

    def get_precision(self) -> int:
        return PRECISION

    def get_additional_feed_precision(self) -> int:
        return ADDITIONAL_FEED_PRECISION

    def get_liquidation_threshold(self) -> int:
        return self.liquidation_threshold

    def get_liquidation_bonus(self) -> int:
        return self.liquidation_bonus

    def get_liquidation_precision(self) -> int:
        return LIQUIDATION_PRECISION

    def get_min_health_factor(self) -> int:
        return self.min_health_factor
