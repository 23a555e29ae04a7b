"""
Unit tests for the DSCEngine.

Covers construction, price conversions, the deposit / mint / redeem / burn
state machine, atomicity of failed calls and the read-only accessors.
"""

import unittest

from dsc.collateral_token import ERC20Mock
from dsc.config import build_protocol
from dsc.constants import ADDITIONAL_FEED_PRECISION, LIQUIDATION_BONUS, LIQUIDATION_THRESHOLD, MIN_HEALTH_FACTOR, PRECISION
from dsc.engine import DSCEngine
from dsc.errors import (
    BreaksHealthFactor,
    InsufficientAllowance,
    InsufficientCollateral,
    InsufficientDebt,
    MintFailed,
    NeedsMoreThanZero,
    NotAllowedToken,
    NotMinter,
    ReentrantCall,
    StalePrice,
    TokenAddressesAndPriceFeedAddressesMustBeSameLength,
    TransferFailed,
)
from dsc.events import EventType
from dsc.price_feed import PriceFeed
from dsc.simulation import SimulationClock
from dsc.stable_coin import DecentralizedStableCoin

AMOUNT_COLLATERAL = 10 * PRECISION
AMOUNT_TO_MINT = 100 * PRECISION
STARTING_ERC20_BALANCE = 10 * PRECISION
ETH_USD_PRICE = 2000 * 10**8
BTC_USD_PRICE = 1000 * 10**8


class MockFailedMintDSC(DecentralizedStableCoin):
    """Stable coin that reports every mint as failed."""

    def mint(self, caller, to, amount):
        super().mint(caller, to, amount)
        return False


class ReentrantToken(ERC20Mock):
    """Collateral token that calls back into the engine while being transferred."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.engine = None

    def transfer_from(self, spender, sender, recipient, amount):
        if self.engine is not None:
            self.engine.deposit_collateral(sender, self.address, amount)
        return super().transfer_from(spender, sender, recipient, amount)


class DSCEngineTestCase(unittest.TestCase):
    def setUp(self):
        """Deploy WETH ($2000) and WBTC ($1000) collateral and fund the user."""
        self.clock = SimulationClock()
        self.deployment = build_protocol(clock=self.clock)
        self.engine = self.deployment.engine
        self.dsc = self.deployment.dsc
        self.weth = self.deployment.token_address("WETH")
        self.wbtc = self.deployment.token_address("WBTC")
        self.weth_token = self.deployment.tokens["WETH"]

        self.user = "user"
        self.weth_token.mint(self.user, STARTING_ERC20_BALANCE)

    def deposit(self, amount=AMOUNT_COLLATERAL):
        self.weth_token.approve(self.user, self.engine.address, amount)
        self.engine.deposit_collateral(self.user, self.weth, amount)

    def deposit_and_mint(self, amount_collateral=AMOUNT_COLLATERAL, amount_to_mint=AMOUNT_TO_MINT):
        self.weth_token.approve(self.user, self.engine.address, amount_collateral)
        self.engine.deposit_collateral_and_mint_dsc(self.user, self.weth, amount_collateral, amount_to_mint)


class TestConstructor(unittest.TestCase):
    def test_reverts_if_token_length_doesnt_match_price_feeds(self):
        weth = ERC20Mock("Wrapped Ether", "WETH")
        wbtc = ERC20Mock("Wrapped Bitcoin", "WBTC")
        eth_usd = PriceFeed(8, ETH_USD_PRICE)
        dsc = DecentralizedStableCoin(owner="deployer")

        with self.assertRaises(TokenAddressesAndPriceFeedAddressesMustBeSameLength):
            DSCEngine([weth, wbtc], [eth_usd], dsc)

    def test_collateral_tokens_and_feeds_are_bound(self):
        weth = ERC20Mock("Wrapped Ether", "WETH")
        wbtc = ERC20Mock("Wrapped Bitcoin", "WBTC")
        eth_usd = PriceFeed(8, ETH_USD_PRICE)
        btc_usd = PriceFeed(8, BTC_USD_PRICE)
        engine = DSCEngine([weth, wbtc], [eth_usd, btc_usd], DecentralizedStableCoin(owner="deployer"))

        self.assertEqual(engine.get_collateral_tokens(), ["WETH", "WBTC"])
        self.assertIs(engine.get_collateral_token_price_feed("WETH"), eth_usd)
        self.assertIs(engine.get_collateral_token_price_feed("WBTC"), btc_usd)
        self.assertIs(engine.get_collateral_token("WBTC"), wbtc)


class TestPrices(DSCEngineTestCase):
    def test_get_usd_value(self):
        # 15e18 * 2000/ETH = 30,000e18
        self.assertEqual(self.engine.get_usd_value(self.weth, 15 * PRECISION), 30_000 * PRECISION)

    def test_get_token_amount_from_usd(self):
        # $100 of WETH at $2000/WETH = 0.05 WETH
        self.assertEqual(self.engine.get_token_amount_from_usd(self.weth, 100 * PRECISION), 5 * 10**16)

    def test_conversions_round_trip_at_uneven_price(self):
        self.deployment.set_price("WETH", 1999.99999999)
        for amount in (1, 7, 10**18 + 1, 123_456_789_123_456_789_123):
            usd = self.engine.get_usd_value(self.weth, amount)
            back = self.engine.get_token_amount_from_usd(self.weth, usd)
            self.assertTrue(0 <= amount - back <= 1)

    def test_stale_price_blocks_price_dependent_calls(self):
        self.deposit()
        self.clock.advance(3 * 60 * 60 + 1)

        with self.assertRaises(StalePrice):
            self.engine.get_account_information(self.user)
        with self.assertRaises(StalePrice):
            self.engine.mint_dsc(self.user, AMOUNT_TO_MINT)

        # A fresh answer unblocks the engine
        self.deployment.set_price("WETH", 2000)
        self.engine.mint_dsc(self.user, AMOUNT_TO_MINT)
        self.assertEqual(self.dsc.balance_of(self.user), AMOUNT_TO_MINT)


class TestDepositCollateral(DSCEngineTestCase):
    def test_reverts_if_collateral_zero(self):
        self.weth_token.approve(self.user, self.engine.address, AMOUNT_COLLATERAL)
        with self.assertRaises(NeedsMoreThanZero):
            self.engine.deposit_collateral(self.user, self.weth, 0)

    def test_reverts_with_unapproved_collateral(self):
        random_token = ERC20Mock("Random", "RAN", initial_account=self.user, initial_balance=AMOUNT_COLLATERAL)
        with self.assertRaises(NotAllowedToken):
            self.engine.deposit_collateral(self.user, random_token.address, AMOUNT_COLLATERAL)

    def test_can_deposit_collateral_without_minting(self):
        self.deposit()
        self.assertEqual(self.dsc.balance_of(self.user), 0)

    def test_can_deposit_collateral_and_get_account_info(self):
        self.deposit()

        total_dsc_minted, collateral_value_in_usd = self.engine.get_account_information(self.user)
        self.assertEqual(total_dsc_minted, 0)
        self.assertEqual(collateral_value_in_usd, 20_000 * PRECISION)
        self.assertEqual(self.engine.get_token_amount_from_usd(self.weth, collateral_value_in_usd), AMOUNT_COLLATERAL)

    def test_deposit_moves_tokens_into_custody(self):
        self.deposit()

        self.assertEqual(self.weth_token.balance_of(self.user), 0)
        self.assertEqual(self.weth_token.balance_of(self.engine.address), AMOUNT_COLLATERAL)
        self.assertEqual(self.engine.get_collateral_balance_of_user(self.user, self.weth), AMOUNT_COLLATERAL)
        self.assertEqual(self.engine.get_total_collateral_deposited(self.weth), AMOUNT_COLLATERAL)
        self.assertEqual(self.engine.get_depositors(), [self.user])

    def test_deposit_emits_event(self):
        self.deposit()

        events = self.engine.events.of_kind(EventType.COLLATERAL_DEPOSITED)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].data, {"user": self.user, "token": self.weth, "amount": AMOUNT_COLLATERAL})

    def test_deposit_without_allowance_leaves_no_trace(self):
        with self.assertRaises(InsufficientAllowance):
            self.engine.deposit_collateral(self.user, self.weth, AMOUNT_COLLATERAL)

        self.assertEqual(self.engine.get_collateral_balance_of_user(self.user, self.weth), 0)
        self.assertEqual(self.engine.get_depositors(), [])
        self.assertEqual(len(self.engine.events), 0)

    def test_reverts_if_transfer_from_fails(self):
        self.weth_token.approve(self.user, self.engine.address, AMOUNT_COLLATERAL)
        self.weth_token.fail_transfers = True

        with self.assertRaises(TransferFailed):
            self.engine.deposit_collateral(self.user, self.weth, AMOUNT_COLLATERAL)

        self.assertEqual(self.engine.get_collateral_balance_of_user(self.user, self.weth), 0)
        self.assertEqual(self.engine.get_total_collateral_deposited(self.weth), 0)
        self.assertEqual(len(self.engine.events), 0)

    def test_reentrant_deposit_is_rejected_and_rolled_back(self):
        token = ReentrantToken("Reentrant", "RE", initial_account=self.user, initial_balance=AMOUNT_COLLATERAL)
        engine = DSCEngine([token], [PriceFeed(8, ETH_USD_PRICE)], DecentralizedStableCoin(owner="deployer"))
        token.approve(self.user, engine.address, AMOUNT_COLLATERAL)
        token.engine = engine

        with self.assertRaises(ReentrantCall):
            engine.deposit_collateral(self.user, token.address, AMOUNT_COLLATERAL)

        self.assertEqual(engine.get_collateral_balance_of_user(self.user, token.address), 0)
        self.assertEqual(token.balance_of(self.user), AMOUNT_COLLATERAL)

        # The guard is released once the call is over
        token.engine = None
        engine.deposit_collateral(self.user, token.address, AMOUNT_COLLATERAL)
        self.assertEqual(engine.get_collateral_balance_of_user(self.user, token.address), AMOUNT_COLLATERAL)


class TestMintDsc(DSCEngineTestCase):
    def test_reverts_if_mint_amount_is_zero(self):
        self.deposit()
        with self.assertRaises(NeedsMoreThanZero):
            self.engine.mint_dsc(self.user, 0)

    def test_can_mint_dsc(self):
        self.deposit()
        self.engine.mint_dsc(self.user, AMOUNT_TO_MINT)

        self.assertEqual(self.dsc.balance_of(self.user), AMOUNT_TO_MINT)
        self.assertEqual(self.engine.get_account_information(self.user), (AMOUNT_TO_MINT, 20_000 * PRECISION))

    def test_can_mint_up_to_the_health_factor_limit(self):
        self.deposit()
        # $20,000 of collateral backs at most $10,000 of DSC
        self.engine.mint_dsc(self.user, 10_000 * PRECISION)
        self.assertEqual(self.engine.get_health_factor(self.user), MIN_HEALTH_FACTOR)

    def test_reverts_if_mint_amount_breaks_health_factor(self):
        self.deposit()
        amount_to_mint = self.engine.get_usd_value(self.weth, AMOUNT_COLLATERAL)
        expected_health_factor = self.engine.calculate_health_factor(
            amount_to_mint, self.engine.get_usd_value(self.weth, AMOUNT_COLLATERAL)
        )

        with self.assertRaises(BreaksHealthFactor) as context:
            self.engine.mint_dsc(self.user, amount_to_mint)

        self.assertEqual(context.exception.health_factor, expected_health_factor)
        self.assertEqual(expected_health_factor, 5 * 10**17)

        # The debt increase did not persist
        self.assertEqual(self.engine.get_account_information(self.user)[0], 0)
        self.assertEqual(self.dsc.total_supply, 0)

    def test_one_wei_above_the_limit_breaks_health_factor(self):
        self.deposit()
        with self.assertRaises(BreaksHealthFactor):
            self.engine.mint_dsc(self.user, 10_000 * PRECISION + 1)

    def test_reverts_if_mint_fails(self):
        weth = ERC20Mock("Wrapped Ether", "WETH", initial_account=self.user, initial_balance=AMOUNT_COLLATERAL)
        dsc = MockFailedMintDSC(owner="deployer")
        engine = DSCEngine([weth], [PriceFeed(8, ETH_USD_PRICE)], dsc)
        dsc.transfer_ownership("deployer", engine.address)
        weth.approve(self.user, engine.address, AMOUNT_COLLATERAL)

        with self.assertRaises(MintFailed):
            engine.deposit_collateral_and_mint_dsc(self.user, weth.address, AMOUNT_COLLATERAL, AMOUNT_TO_MINT)

        self.assertEqual(dsc.total_supply, 0)
        self.assertEqual(engine.get_collateral_balance_of_user(self.user, weth.address), 0)
        self.assertEqual(weth.balance_of(self.user), AMOUNT_COLLATERAL)

    def test_engine_must_own_the_stable_coin(self):
        weth = ERC20Mock("Wrapped Ether", "WETH", initial_account=self.user, initial_balance=AMOUNT_COLLATERAL)
        engine = DSCEngine([weth], [PriceFeed(8, ETH_USD_PRICE)], DecentralizedStableCoin(owner="deployer"))
        weth.approve(self.user, engine.address, AMOUNT_COLLATERAL)
        engine.deposit_collateral(self.user, weth.address, AMOUNT_COLLATERAL)

        with self.assertRaises(NotMinter):
            engine.mint_dsc(self.user, AMOUNT_TO_MINT)
        self.assertEqual(engine.get_account_information(self.user)[0], 0)


class TestDepositCollateralAndMintDsc(DSCEngineTestCase):
    def test_can_mint_with_deposited_collateral(self):
        self.deposit_and_mint()

        self.assertEqual(self.dsc.balance_of(self.user), AMOUNT_TO_MINT)
        self.assertEqual(self.engine.get_collateral_balance_of_user(self.user, self.weth), AMOUNT_COLLATERAL)

    def test_reverts_if_minted_dsc_breaks_health_factor(self):
        amount_to_mint = self.engine.get_usd_value(self.weth, AMOUNT_COLLATERAL)
        with self.assertRaises(BreaksHealthFactor):
            self.deposit_and_mint(amount_to_mint=amount_to_mint)

        # The deposit was rolled back together with the mint
        self.assertEqual(self.engine.get_collateral_balance_of_user(self.user, self.weth), 0)
        self.assertEqual(self.weth_token.balance_of(self.user), STARTING_ERC20_BALANCE)
        self.assertEqual(self.engine.get_depositors(), [])


class TestBurnDsc(DSCEngineTestCase):
    def test_reverts_if_burn_amount_is_zero(self):
        self.deposit_and_mint()
        with self.assertRaises(NeedsMoreThanZero):
            self.engine.burn_dsc(self.user, 0)

    def test_cant_burn_more_than_user_has(self):
        with self.assertRaises(InsufficientDebt):
            self.engine.burn_dsc(self.user, 1)

    def test_can_burn_dsc(self):
        self.deposit_and_mint()
        self.dsc.approve(self.user, self.engine.address, AMOUNT_TO_MINT)
        self.engine.burn_dsc(self.user, AMOUNT_TO_MINT)

        self.assertEqual(self.dsc.balance_of(self.user), 0)
        self.assertEqual(self.dsc.total_supply, 0)
        self.assertEqual(self.engine.get_account_information(self.user)[0], 0)
        self.assertEqual(len(self.engine.events.of_kind(EventType.DSC_BURNED)), 1)

    def test_burn_without_allowance_keeps_debt(self):
        self.deposit_and_mint()
        with self.assertRaises(InsufficientAllowance):
            self.engine.burn_dsc(self.user, AMOUNT_TO_MINT)

        self.assertEqual(self.engine.get_account_information(self.user)[0], AMOUNT_TO_MINT)
        self.assertEqual(self.dsc.balance_of(self.user), AMOUNT_TO_MINT)


class TestRedeemCollateral(DSCEngineTestCase):
    def test_reverts_if_redeem_amount_is_zero(self):
        self.deposit_and_mint()
        with self.assertRaises(NeedsMoreThanZero):
            self.engine.redeem_collateral(self.user, self.weth, 0)

    def test_can_redeem_collateral(self):
        self.deposit()
        self.engine.redeem_collateral(self.user, self.weth, AMOUNT_COLLATERAL)

        self.assertEqual(self.weth_token.balance_of(self.user), AMOUNT_COLLATERAL)
        self.assertEqual(self.engine.get_collateral_balance_of_user(self.user, self.weth), 0)

    def test_emits_collateral_redeemed_with_correct_args(self):
        self.deposit()
        self.engine.redeem_collateral(self.user, self.weth, AMOUNT_COLLATERAL)

        event = self.engine.events[-1]
        self.assertEqual(event.kind, EventType.COLLATERAL_REDEEMED)
        self.assertEqual(event.data, {
            "redeemed_from": self.user,
            "redeemed_to": self.user,
            "token": self.weth,
            "amount": AMOUNT_COLLATERAL,
        })

    def test_cannot_redeem_more_than_deposited(self):
        self.deposit()
        with self.assertRaises(InsufficientCollateral):
            self.engine.redeem_collateral(self.user, self.weth, AMOUNT_COLLATERAL + 1)

    def test_redeem_that_breaks_health_factor_is_unwound(self):
        self.deposit_and_mint()

        with self.assertRaises(BreaksHealthFactor) as context:
            self.engine.redeem_collateral(self.user, self.weth, AMOUNT_COLLATERAL)
        self.assertEqual(context.exception.health_factor, 0)

        # Ledger, custody and the user's wallet are all back where they were
        self.assertEqual(self.engine.get_collateral_balance_of_user(self.user, self.weth), AMOUNT_COLLATERAL)
        self.assertEqual(self.weth_token.balance_of(self.engine.address), AMOUNT_COLLATERAL)
        self.assertEqual(self.weth_token.balance_of(self.user), 0)
        self.assertEqual(len(self.engine.events.of_kind(EventType.COLLATERAL_REDEEMED)), 0)

    def test_reverts_if_transfer_fails(self):
        self.deposit()
        self.weth_token.fail_transfers = True

        with self.assertRaises(TransferFailed):
            self.engine.redeem_collateral(self.user, self.weth, AMOUNT_COLLATERAL)
        self.assertEqual(self.engine.get_collateral_balance_of_user(self.user, self.weth), AMOUNT_COLLATERAL)


class TestRedeemCollateralForDsc(DSCEngineTestCase):
    def test_must_redeem_more_than_zero(self):
        self.deposit_and_mint()
        self.dsc.approve(self.user, self.engine.address, AMOUNT_TO_MINT)
        with self.assertRaises(NeedsMoreThanZero):
            self.engine.redeem_collateral_for_dsc(self.user, self.weth, 0, AMOUNT_TO_MINT)

    def test_can_redeem_deposited_collateral(self):
        self.deposit_and_mint()
        self.dsc.approve(self.user, self.engine.address, AMOUNT_TO_MINT)
        self.engine.redeem_collateral_for_dsc(self.user, self.weth, AMOUNT_COLLATERAL, AMOUNT_TO_MINT)

        self.assertEqual(self.dsc.balance_of(self.user), 0)
        self.assertEqual(self.weth_token.balance_of(self.user), AMOUNT_COLLATERAL)
        self.assertEqual(self.engine.get_account_information(self.user), (0, 0))

    def test_partial_burn_that_leaves_user_unhealthy_is_unwound(self):
        self.deposit_and_mint()
        self.dsc.approve(self.user, self.engine.address, AMOUNT_TO_MINT)

        with self.assertRaises(BreaksHealthFactor):
            self.engine.redeem_collateral_for_dsc(self.user, self.weth, AMOUNT_COLLATERAL, AMOUNT_TO_MINT // 2)

        self.assertEqual(self.engine.get_account_information(self.user)[0], AMOUNT_TO_MINT)
        self.assertEqual(self.dsc.balance_of(self.user), AMOUNT_TO_MINT)
        self.assertEqual(self.engine.get_collateral_balance_of_user(self.user, self.weth), AMOUNT_COLLATERAL)


class TestViewFunctions(DSCEngineTestCase):
    def test_constants(self):
        self.assertEqual(self.engine.get_precision(), PRECISION)
        self.assertEqual(self.engine.get_additional_feed_precision(), ADDITIONAL_FEED_PRECISION)
        self.assertEqual(self.engine.get_liquidation_threshold(), LIQUIDATION_THRESHOLD)
        self.assertEqual(self.engine.get_liquidation_bonus(), LIQUIDATION_BONUS)
        self.assertEqual(self.engine.get_liquidation_precision(), 100)
        self.assertEqual(self.engine.get_min_health_factor(), MIN_HEALTH_FACTOR)
        self.assertIs(self.engine.get_dsc(), self.dsc)

    def test_get_collateral_tokens(self):
        self.assertEqual(self.engine.get_collateral_tokens(), [self.weth, self.wbtc])

    def test_get_collateral_balance_of_user(self):
        self.deposit()
        self.assertEqual(self.engine.get_collateral_balance_of_user(self.user, self.weth), AMOUNT_COLLATERAL)
        self.assertEqual(self.engine.get_collateral_balance_of_user(self.user, self.wbtc), 0)

    def test_get_account_collateral_value(self):
        self.deposit()
        self.assertEqual(
            self.engine.get_account_collateral_value(self.user),
            self.engine.get_usd_value(self.weth, AMOUNT_COLLATERAL),
        )


if __name__ == "__main__":
    unittest.main()
