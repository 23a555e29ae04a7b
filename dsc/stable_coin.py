"""
Decentralized Stable Coin (DSC) token.

This module simulates the stable coin minted against collateral. The token
is a plain balance ledger whose only privileged account is its owner, the
engine: nobody else can mint, and burning only ever destroys the caller's
own tokens.
"""

import logging

from .constants import ZERO_ADDRESS
from .errors import BurnAmountExceedsBalance, NeedsMoreThanZero, NotMinter, NotOwner, NotZeroAddress
from .token import Token

logger = logging.getLogger(__name__)


class DecentralizedStableCoin(Token):
    """
    The USD-pegged stable coin of the protocol.

    Ownership is meant to be handed to the engine right after deployment so
    the engine becomes the single authorized minter.
    """

    def __init__(self, owner, address="DSC"):
        super().__init__("DecentralizedStableCoin", "DSC", address=address)

        # Owner of the contract, the only account allowed to mint
        self.owner = owner

    def transfer_ownership(self, caller, new_owner):
        """
        Hands minting rights to ``new_owner``.
        Only callable by the current owner.
        """
        if caller != self.owner:
            raise NotOwner(caller)
        if new_owner == ZERO_ADDRESS:
            raise NotZeroAddress()

        logger.debug("DSC ownership transferred from %s to %s", self.owner, new_owner)
        self.owner = new_owner

    def mint(self, caller, to, amount):
        """
        Mints new tokens to the recipient account.
        Only callable by the owner.

        Args:
            caller: Address requesting the mint
            to: Address receiving the minted tokens
            amount: Amount of tokens to mint

        Returns:
            True if successful
        """
        if caller != self.owner:
            raise NotMinter(caller)
        if to == ZERO_ADDRESS:
            raise NotZeroAddress()
        if amount <= 0:
            raise NeedsMoreThanZero(amount)

        self._mint(to, amount)
        return True

    def burn(self, caller, amount):
        """
        Burns tokens from the caller's own balance.

        Args:
            caller: Address whose tokens are destroyed
            amount: Amount of tokens to burn
        """
        if amount <= 0:
            raise NeedsMoreThanZero(amount)

        balance = self.balance_of(caller)
        if balance < amount:
            raise BurnAmountExceedsBalance(caller, amount, balance)

        self._burn(caller, amount)
