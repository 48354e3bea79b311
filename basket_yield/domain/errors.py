"""
Domain errors.

Only DataUnavailableError escapes a processing cycle. Partial compute,
recommendation parse, swap execution and audit write failures are recovered
where they happen.
"""


class BasketYieldError(Exception):
    """Base class for service errors"""


class DataUnavailableError(BasketYieldError):
    """Market data could not be fetched at all; the cycle is aborted."""


class ConfigurationError(BasketYieldError):
    """Basket configuration file is missing or invalid."""


class UserNotFoundError(BasketYieldError):
    def __init__(self, user_ref):
        super().__init__(f"User not found: {user_ref}")
        self.user_ref = user_ref


class InvalidRequestError(BasketYieldError):
    """Caller supplied an unknown basket id or a malformed wallet address."""


class UserAlreadyRegisteredError(BasketYieldError):
    def __init__(self, wallet_address: str):
        super().__init__(f"User already registered: {wallet_address}")
        self.wallet_address = wallet_address
