"""
Unit tests for price feeds, the collateral registry and the oracle adapter.
"""

import unittest

import numpy as np

from dsc.constants import PRECISION, STALE_PRICE_TIMEOUT
from dsc.errors import (
    DSCError,
    DuplicateCollateralToken,
    InvalidPrice,
    StalePrice,
    TokenAddressesAndPriceFeedAddressesMustBeSameLength,
    UnknownAsset,
    UnsupportedFeedDecimals,
)
from dsc.oracle import PriceOracleAdapter
from dsc.price_feed import PriceFeed, stale_check_latest_round_data
from dsc.registry import CollateralRegistry
from dsc.simulation import MAX_DEPOSIT_SIZE, SimulationClock

ETH_USD_PRICE = 2000 * 10**8


class TestPriceFeed(unittest.TestCase):
    def setUp(self):
        self.clock = SimulationClock()
        self.feed = PriceFeed(8, ETH_USD_PRICE, address="ETH/USD", clock=self.clock)

    def test_initial_round(self):
        round_data = self.feed.latest_round_data()
        self.assertEqual(round_data.round_id, 1)
        self.assertEqual(round_data.answer, ETH_USD_PRICE)
        self.assertEqual(round_data.updated_at, self.clock())
        self.assertEqual(round_data.answered_in_round, 1)

    def test_update_answer_opens_new_round(self):
        self.clock.advance(60)
        self.feed.update_answer(1800 * 10**8)

        self.assertEqual(self.feed.latest_round, 2)
        self.assertEqual(self.feed.latest_answer(), 1800 * 10**8)
        self.assertEqual(self.feed.latest_timestamp(), self.clock())
        self.assertEqual(self.feed.get_round_data(1).answer, ETH_USD_PRICE)

    def test_fresh_price_passes_stale_check(self):
        self.clock.advance(STALE_PRICE_TIMEOUT)
        round_data = stale_check_latest_round_data(self.feed, self.clock())
        self.assertEqual(round_data.answer, ETH_USD_PRICE)

    def test_old_price_is_stale(self):
        self.clock.advance(STALE_PRICE_TIMEOUT + 1)
        with self.assertRaises(StalePrice):
            stale_check_latest_round_data(self.feed, self.clock())

        # No timeout, no age check
        stale_check_latest_round_data(self.feed, self.clock(), timeout=None)

    def test_incomplete_round_is_stale(self):
        self.feed.update_round_data(2, ETH_USD_PRICE, updated_at=0, started_at=0)
        with self.assertRaises(StalePrice):
            stale_check_latest_round_data(self.feed, self.clock(), timeout=None)

    def test_non_positive_price_is_invalid(self):
        self.feed.update_answer(0)
        with self.assertRaises(InvalidPrice):
            stale_check_latest_round_data(self.feed, self.clock())


class TestCollateralRegistry(unittest.TestCase):
    def setUp(self):
        self.eth_usd = PriceFeed(8, ETH_USD_PRICE)
        self.btc_usd = PriceFeed(8, 1000 * 10**8)

    def test_lookup(self):
        registry = CollateralRegistry(["WETH", "WBTC"], [self.eth_usd, self.btc_usd])

        self.assertEqual(len(registry), 2)
        self.assertEqual(registry.tokens, ("WETH", "WBTC"))
        self.assertIn("WETH", registry)
        self.assertNotIn("DOGE", registry)
        self.assertIs(registry.price_feed("WBTC"), self.btc_usd)

        with self.assertRaises(UnknownAsset):
            registry.get("DOGE")

    def test_length_mismatch(self):
        with self.assertRaises(TokenAddressesAndPriceFeedAddressesMustBeSameLength):
            CollateralRegistry(["WETH", "WBTC"], [self.eth_usd])

    def test_duplicate_token(self):
        with self.assertRaises(DuplicateCollateralToken):
            CollateralRegistry(["WETH", "WETH"], [self.eth_usd, self.btc_usd])


class TestPriceOracleAdapter(unittest.TestCase):
    def setUp(self):
        self.clock = SimulationClock()
        self.eth_usd = PriceFeed(8, ETH_USD_PRICE, clock=self.clock)
        registry = CollateralRegistry(["WETH"], [self.eth_usd])
        self.oracle = PriceOracleAdapter(registry, clock=self.clock)

    def test_price_is_scaled_to_18_decimals(self):
        self.assertEqual(self.oracle.price("WETH"), 2000 * PRECISION)

    def test_conversions(self):
        self.assertEqual(self.oracle.usd_value("WETH", 15 * PRECISION), 30_000 * PRECISION)
        self.assertEqual(self.oracle.token_amount_from_usd("WETH", 100 * PRECISION), 5 * 10**16)

    def test_conversions_round_trip_within_one_wei(self):
        rng = np.random.default_rng(1234)
        answers = [199_999_999_999, 100_000_001, 123_456_789_012, 99_999_999_999_999]
        answers += [int(rng.integers(10**8, 10**14)) for _ in range(20)]
        amounts = [1, 2, 3, 10**18 - 1, MAX_DEPOSIT_SIZE, MAX_DEPOSIT_SIZE - 1]
        amounts += [MAX_DEPOSIT_SIZE - int(rng.integers(0, 10**9)) for _ in range(5)]
        amounts += [int(rng.integers(1, 2**62)) * int(rng.integers(1, 2**34)) for _ in range(30)]

        # At $1 or more per unit, a round trip loses at most one wei
        for answer in answers:
            self.eth_usd.update_answer(answer)
            for amount in amounts:
                back = self.oracle.token_amount_from_usd("WETH", self.oracle.usd_value("WETH", amount))
                self.assertTrue(0 <= amount - back <= 1, f"price {answer}, amount {amount}, back {back}")

    def test_other_feed_decimals(self):
        feed = PriceFeed(18, 2000 * PRECISION, clock=self.clock)
        oracle = PriceOracleAdapter(CollateralRegistry(["WETH"], [feed]), clock=self.clock)
        self.assertEqual(oracle.usd_value("WETH", PRECISION), 2000 * PRECISION)

    def test_rejects_feeds_with_more_than_18_decimals(self):
        feed = PriceFeed(19, 1, clock=self.clock)
        with self.assertRaises(UnsupportedFeedDecimals) as context:
            PriceOracleAdapter(CollateralRegistry(["WETH"], [feed]), clock=self.clock)
        self.assertEqual(context.exception.decimals, 19)
        self.assertIsInstance(context.exception, DSCError)

    def test_stale_price_is_refused(self):
        self.clock.advance(STALE_PRICE_TIMEOUT + 1)
        with self.assertRaises(StalePrice):
            self.oracle.usd_value("WETH", PRECISION)

    def test_unknown_asset(self):
        with self.assertRaises(UnknownAsset):
            self.oracle.price("DOGE")


if __name__ == "__main__":
    unittest.main()
