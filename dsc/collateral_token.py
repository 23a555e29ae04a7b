"""
Collateral token model.

Stands in for the wrapped collateral assets (WETH, WBTC, ...) users deposit.
Anyone can mint, which is how simulations and tests fund their users.
"""

from .token import Token


class ERC20Mock(Token):
    """
    Freely mintable ERC20 collateral token.

    ``fail_transfers`` makes ``transfer`` and ``transfer_from`` report failure
    by returning False instead of moving tokens, the way a non-reverting
    ERC20 signals an unsuccessful transfer.
    """

    def __init__(self, name, symbol, address=None, decimals=18, initial_account=None, initial_balance=0):
        super().__init__(name, symbol, address=address, decimals=decimals)
        self.fail_transfers = False

        if initial_account is not None and initial_balance > 0:
            self._mint(initial_account, initial_balance)

    def mint(self, account, amount):
        """Mints ``amount`` tokens to ``account``."""
        self._mint(account, amount)
        return True

    def transfer(self, sender, recipient, amount):
        if self.fail_transfers:
            return False
        return super().transfer(sender, recipient, amount)

    def transfer_from(self, spender, sender, recipient, amount):
        if self.fail_transfers:
            return False
        return super().transfer_from(spender, sender, recipient, amount)
