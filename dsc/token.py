"""
Fungible token ledger shared by the stable coin and the collateral tokens.

This module simulates the ERC20 balance/allowance bookkeeping the engine
relies on. Accounts are plain string addresses.
"""

import logging

from .constants import ZERO_ADDRESS
from .errors import (
    InsufficientAllowance,
    InsufficientBalance,
    NeedsMoreThanZero,
    NotZeroAddress,
)

logger = logging.getLogger(__name__)


class Token:
    """
    Minimal ERC20-style token: balances, allowances and total supply.
    """

    def __init__(self, name, symbol, address=None, decimals=18):
        self.name = name
        self.symbol = symbol
        self.address = address or symbol
        self.decimals = decimals

        # Total token supply
        self.total_supply = 0

        # Mapping of addresses to token balances
        self.balances = {}

        # Mapping of owner -> spender -> allowance
        self.allowances = {}

    def __repr__(self):
        return f"{type(self).__name__}({self.address!r})"

    def balance_of(self, account):
        """Returns the token balance of the given account."""
        return self.balances.get(account, 0)

    def allowance(self, owner, spender):
        """Returns how much ``spender`` may still move on behalf of ``owner``."""
        return self.allowances.get(owner, {}).get(spender, 0)

    def approve(self, owner, spender, amount):
        """
        Lets ``spender`` transfer up to ``amount`` tokens out of ``owner``'s balance.

        Returns:
            True if successful
        """
        if spender == ZERO_ADDRESS:
            raise NotZeroAddress()
        self.allowances.setdefault(owner, {})[spender] = amount
        return True

    def transfer(self, sender, recipient, amount):
        """
        Transfers tokens from sender to recipient.

        Args:
            sender: Address sending the tokens
            recipient: Address receiving the tokens
            amount: Amount of tokens to transfer

        Returns:
            True if successful
        """
        if amount <= 0:
            raise NeedsMoreThanZero(amount)
        if recipient == ZERO_ADDRESS:
            raise NotZeroAddress()

        sender_balance = self.balances.get(sender, 0)
        if sender_balance < amount:
            raise InsufficientBalance(sender, amount, sender_balance)

        self.balances[sender] = sender_balance - amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount

        return True

    def transfer_from(self, spender, sender, recipient, amount):
        """
        Transfers tokens out of ``sender``'s balance using ``spender``'s allowance.

        Args:
            spender: Address spending the allowance
            sender: Address whose tokens are moved
            recipient: Address receiving the tokens
            amount: Amount of tokens to transfer

        Returns:
            True if successful
        """
        allowed = self.allowance(sender, spender)
        if allowed < amount:
            raise InsufficientAllowance(sender, spender, amount, allowed)

        self.transfer(sender, recipient, amount)
        self.allowances[sender][spender] = allowed - amount

        return True

    def _mint(self, recipient, amount):
        if amount <= 0:
            raise NeedsMoreThanZero(amount)
        if recipient == ZERO_ADDRESS:
            raise NotZeroAddress()

        self.balances[recipient] = self.balances.get(recipient, 0) + amount
        self.total_supply += amount

    def _burn(self, from_account, amount):
        from_balance = self.balances.get(from_account, 0)
        self.balances[from_account] = from_balance - amount
        self.total_supply -= amount

    # --- Transaction support ---

    def snapshot(self):
        """Captures balances, allowances and supply so a failed call can be undone."""
        return (
            dict(self.balances),
            {owner: dict(spenders) for owner, spenders in self.allowances.items()},
            self.total_supply,
        )

    def restore(self, state):
        balances, allowances, total_supply = state
        self.balances = dict(balances)
        self.allowances = {owner: dict(spenders) for owner, spenders in allowances.items()}
        self.total_supply = total_supply
