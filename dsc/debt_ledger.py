"""
Debt Ledger for the DSC engine.

Tracks how much DSC every user has minted against their collateral.
"""

from .errors import InsufficientDebt, NeedsMoreThanZero


class DebtLedger:
    """
    Per-user minted DSC counter.
    """

    def __init__(self):
        self.debts = {}  # user -> DSC minted
        self.total = 0

    def debt_of(self, user):
        return self.debts.get(user, 0)

    def total_debt(self):
        return self.total

    def increase(self, user, amount):
        if amount <= 0:
            raise NeedsMoreThanZero(amount)

        self.debts[user] = self.debt_of(user) + amount
        self.total += amount

    def decrease(self, user, amount):
        """
        Pay back ``amount`` of ``user``'s debt.

        Raises:
            InsufficientDebt: If the user owes less than amount
        """
        if amount <= 0:
            raise NeedsMoreThanZero(amount)

        debt = self.debt_of(user)
        if amount > debt:
            raise InsufficientDebt(user, amount, debt)

        self.debts[user] = debt - amount
        self.total -= amount

    def snapshot(self):
        return dict(self.debts), self.total

    def restore(self, state):
        debts, total = state
        self.debts = dict(debts)
        self.total = total
