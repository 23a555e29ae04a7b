"""
Collateral registry.

The set of accepted collateral tokens and the price feed bound to each one is
fixed when the engine is built. The registry is that immutable configuration:
an ordered tuple of asset descriptors plus a lookup by token address.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, Sequence, Tuple

from .errors import (
    DuplicateCollateralToken,
    TokenAddressesAndPriceFeedAddressesMustBeSameLength,
    UnknownAsset,
)
from .price_feed import PriceFeed


@dataclass(frozen=True)
class CollateralAsset:
    """A collateral token together with its USD price feed."""
    address: str
    price_feed: PriceFeed


class CollateralRegistry:
    """
    Immutable list of collateral assets, built from parallel address/feed lists.

    Raises:
        TokenAddressesAndPriceFeedAddressesMustBeSameLength: If the lists differ in length
        DuplicateCollateralToken: If a token address appears twice
    """

    def __init__(self, token_addresses: Sequence[str], price_feeds: Sequence[PriceFeed]):
        if len(token_addresses) != len(price_feeds):
            raise TokenAddressesAndPriceFeedAddressesMustBeSameLength(len(token_addresses), len(price_feeds))

        by_address: Dict[str, CollateralAsset] = {}
        for address, feed in zip(token_addresses, price_feeds):
            if address in by_address:
                raise DuplicateCollateralToken(address)
            by_address[address] = CollateralAsset(address=address, price_feed=feed)

        self._assets: Tuple[CollateralAsset, ...] = tuple(by_address.values())
        self._by_address = by_address

    def __contains__(self, address) -> bool:
        return address in self._by_address

    def __iter__(self) -> Iterator[CollateralAsset]:
        return iter(self._assets)

    def __len__(self) -> int:
        return len(self._assets)

    @property
    def tokens(self) -> Tuple[str, ...]:
        return tuple(asset.address for asset in self._assets)

    def get(self, address: str) -> CollateralAsset:
        try:
            return self._by_address[address]
        except KeyError:
            raise UnknownAsset(address) from None

    def price_feed(self, address: str) -> PriceFeed:
        return self.get(address).price_feed
