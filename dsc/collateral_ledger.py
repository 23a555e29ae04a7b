"""
Collateral Ledger for the DSC engine.

This module tracks how much of each collateral token every user has deposited
with the engine, together with the per-token totals. The per-token total
always equals the sum of the users' balances for that token.

It also keeps the registry of depositors, in order of their first deposit,
which is what liquidation tooling walks to find undercollateralized
positions. A user appears in that registry exactly once no matter how many
deposits they make.
"""

from .errors import InsufficientCollateral, NeedsMoreThanZero


class CollateralLedger:
    """
    Per-user, per-asset deposited collateral balances.
    """

    def __init__(self):
        # user -> {asset -> amount}
        self.balances = {}

        # asset -> total amount deposited by all users
        self.totals = {}

        # Users in order of their first deposit
        self._depositors = []
        self._depositor_set = set()

    def balance_of(self, user, asset):
        """Returns the amount of ``asset`` deposited by ``user``."""
        return self.balances.get(user, {}).get(asset, 0)

    def assets_of(self, user):
        """Returns ``{asset: amount}`` for every asset the user holds a non-zero balance of."""
        return {asset: amount for asset, amount in self.balances.get(user, {}).items() if amount > 0}

    def total_deposited(self, asset):
        return self.totals.get(asset, 0)

    def depositors(self):
        return list(self._depositors)

    def deposit(self, user, asset, amount):
        """
        Credit ``amount`` of ``asset`` to ``user``.

        Raises:
            NeedsMoreThanZero: If amount is not positive
        """
        if amount <= 0:
            raise NeedsMoreThanZero(amount)

        user_balances = self.balances.setdefault(user, {})
        user_balances[asset] = user_balances.get(asset, 0) + amount
        self.totals[asset] = self.totals.get(asset, 0) + amount

        if user not in self._depositor_set:
            self._depositor_set.add(user)
            self._depositors.append(user)

    def withdraw(self, user, asset, amount):
        """
        Debit ``amount`` of ``asset`` from ``user``.

        Raises:
            NeedsMoreThanZero: If amount is not positive
            InsufficientCollateral: If the user holds less than amount
        """
        if amount <= 0:
            raise NeedsMoreThanZero(amount)

        balance = self.balance_of(user, asset)
        if amount > balance:
            raise InsufficientCollateral(user, asset, amount, balance)

        self.balances[user][asset] = balance - amount
        self.totals[asset] -= amount

    def snapshot(self):
        return (
            {user: dict(assets) for user, assets in self.balances.items()},
            dict(self.totals),
            list(self._depositors),
        )

    def restore(self, state):
        balances, totals, depositors = state
        self.balances = {user: dict(assets) for user, assets in balances.items()}
        self.totals = dict(totals)
        self._depositors = list(depositors)
        self._depositor_set = set(depositors)
