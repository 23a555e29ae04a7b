"""
Price feed model.

This module simulates a Chainlink-style USD price aggregator. The answer is an
integer with a fixed number of decimals (8 for USD pairs) and every update
records the round it belongs to and when it happened, which is what the
stale-price check in ``stale_check_latest_round_data`` reads.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .constants import STALE_PRICE_TIMEOUT
from .errors import InvalidPrice, StalePrice


@dataclass(frozen=True)
class RoundData:
    """One aggregator round as reported by ``latest_round_data``."""
    round_id: int
    answer: int             # Price scaled by 10**decimals
    started_at: float
    updated_at: float
    answered_in_round: int


class PriceFeed:
    """
    Reconfigurable price aggregator used for simulations and tests.

    Args:
        decimals: Number of decimals the answer is expressed with
        initial_answer: First reported price, already scaled by ``decimals``
        address: Identity of the feed
        clock: Callable returning the current time in seconds
    """

    def __init__(self, decimals: int, initial_answer: int, address: Optional[str] = None,
                 clock: Callable[[], float] = time.time):
        self.decimals = decimals
        self.address = address or f"feed-{id(self):x}"
        self.clock = clock

        self.latest_round = 0
        self.rounds: Dict[int, RoundData] = {}

        self.update_answer(initial_answer)

    def __repr__(self):
        return f"PriceFeed({self.address!r}, decimals={self.decimals})"

    def update_answer(self, answer: int) -> None:
        """Publishes a new price in a fresh round stamped with the current time."""
        now = self.clock()
        self.update_round_data(self.latest_round + 1, answer, now, now)

    def update_round_data(self, round_id: int, answer: int, updated_at: float, started_at: float) -> None:
        """Publishes a round with explicit timing, e.g. to age a price on purpose."""
        self.latest_round = round_id
        self.rounds[round_id] = RoundData(
            round_id=round_id,
            answer=answer,
            started_at=started_at,
            updated_at=updated_at,
            answered_in_round=round_id,
        )

    def latest_round_data(self) -> RoundData:
        return self.rounds[self.latest_round]

    def get_round_data(self, round_id: int) -> RoundData:
        return self.rounds[round_id]

    def latest_answer(self) -> int:
        return self.latest_round_data().answer

    def latest_timestamp(self) -> float:
        return self.latest_round_data().updated_at


def stale_check_latest_round_data(feed: PriceFeed, now: float,
                                  timeout: Optional[float] = STALE_PRICE_TIMEOUT) -> RoundData:
    """
    Read the latest round of ``feed`` and refuse to use it if it is stale.

    A round is stale when it was never completed, when it was answered in an
    older round, or when it is older than ``timeout`` seconds. A ``timeout``
    of None disables the age check.

    Raises:
        StalePrice: If the round cannot be trusted
        InvalidPrice: If the reported price is not positive
    """
    round_data = feed.latest_round_data()

    if round_data.updated_at == 0 or round_data.answered_in_round < round_data.round_id:
        raise StalePrice(feed.address, round_data.updated_at, now)

    if timeout is not None and now - round_data.updated_at > timeout:
        raise StalePrice(feed.address, round_data.updated_at, now)

    if round_data.answer <= 0:
        raise InvalidPrice(feed.address, round_data.answer)

    return round_data
