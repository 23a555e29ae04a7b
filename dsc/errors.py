"""
Errors raised by the DSC engine and its collaborators.

Every error aborts the whole call it was raised from; the engine restores the
state it had before the call. All of them are ``ValueError`` subclasses so
callers can treat any rejected operation uniformly.
"""


class DSCError(ValueError):
    """Base class for every rejected DSC operation."""


class NeedsMoreThanZero(DSCError):
    def __init__(self, amount=0):
        self.amount = amount
        super().__init__(f"Amount must be more than zero, got {amount}")


class NotAllowedToken(DSCError):
    def __init__(self, token):
        self.token = token
        super().__init__(f"Token {token} is not an allowed collateral token")


class UnknownAsset(DSCError):
    def __init__(self, asset):
        self.asset = asset
        super().__init__(f"No price feed bound to asset {asset}")


class TokenAddressesAndPriceFeedAddressesMustBeSameLength(DSCError):
    def __init__(self, tokens_length, feeds_length):
        self.tokens_length = tokens_length
        self.feeds_length = feeds_length
        super().__init__(
            f"Token addresses and price feed addresses must be same length "
            f"({tokens_length} tokens, {feeds_length} feeds)"
        )


class DuplicateCollateralToken(DSCError):
    def __init__(self, token):
        self.token = token
        super().__init__(f"Collateral token {token} is listed more than once")


class TransferFailed(DSCError):
    def __init__(self, token, sender, recipient, amount):
        self.token = token
        self.sender = sender
        self.recipient = recipient
        self.amount = amount
        super().__init__(f"Transfer of {amount} {token} from {sender} to {recipient} failed")


class MintFailed(DSCError):
    def __init__(self, recipient, amount):
        self.recipient = recipient
        self.amount = amount
        super().__init__(f"Minting {amount} DSC to {recipient} failed")


class BreaksHealthFactor(DSCError):
    def __init__(self, health_factor):
        self.health_factor = health_factor
        super().__init__(f"Breaks health factor: {health_factor}")


class HealthFactorOk(DSCError):
    def __init__(self, health_factor):
        self.health_factor = health_factor
        super().__init__(f"Health factor is ok ({health_factor}), position is not liquidatable")


class HealthFactorNotImproved(DSCError):
    def __init__(self, starting_health_factor, ending_health_factor):
        self.starting_health_factor = starting_health_factor
        self.ending_health_factor = ending_health_factor
        super().__init__(
            f"Health factor not improved: {starting_health_factor} -> {ending_health_factor}"
        )


class InsufficientCollateral(DSCError):
    def __init__(self, user, asset, requested, available):
        self.user = user
        self.asset = asset
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient collateral for {user}: requested {requested} {asset}, available {available}"
        )


class InsufficientDebt(DSCError):
    def __init__(self, user, requested, available):
        self.user = user
        self.requested = requested
        self.available = available
        super().__init__(f"Insufficient debt for {user}: requested {requested}, minted {available}")


class ReentrantCall(DSCError):
    def __init__(self):
        super().__init__("Reentrant call into the engine")


class StalePrice(DSCError):
    def __init__(self, feed, updated_at, now):
        self.feed = feed
        self.updated_at = updated_at
        self.now = now
        super().__init__(f"Stale price from {feed}: last updated at {updated_at}, now {now}")


class InvalidPrice(DSCError):
    def __init__(self, feed, answer):
        self.feed = feed
        self.answer = answer
        super().__init__(f"Invalid price from {feed}: {answer}")


class UnsupportedFeedDecimals(DSCError):
    def __init__(self, feed, decimals):
        self.feed = feed
        self.decimals = decimals
        super().__init__(f"Feed {feed} reports {decimals} decimals, at most 18 are supported")


# --- Token errors ---

class NotMinter(DSCError):
    def __init__(self, caller):
        self.caller = caller
        super().__init__(f"{caller} is not allowed to mint")


class NotOwner(DSCError):
    def __init__(self, caller):
        self.caller = caller
        super().__init__(f"{caller} is not the owner")


class NotZeroAddress(DSCError):
    def __init__(self):
        super().__init__("Cannot use the zero address")


class BurnAmountExceedsBalance(DSCError):
    def __init__(self, account, amount, balance):
        self.account = account
        self.amount = amount
        self.balance = balance
        super().__init__(f"Burn amount {amount} exceeds balance {balance} of {account}")


class InsufficientBalance(DSCError):
    def __init__(self, account, amount, balance):
        self.account = account
        self.amount = amount
        self.balance = balance
        super().__init__(f"Insufficient balance: {account} has {balance}, needs {amount}")


class InsufficientAllowance(DSCError):
    def __init__(self, owner, spender, amount, allowance):
        self.owner = owner
        self.spender = spender
        self.amount = amount
        self.allowance = allowance
        super().__init__(
            f"Insufficient allowance: {spender} may spend {allowance} of {owner}, needs {amount}"
        )
