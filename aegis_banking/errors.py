"""
Error Types

All engine errors derive from BankingError, itself a ValueError, so callers
that only know about ValueError keep working.
"""


class BankingError(ValueError):
    """Base class for all banking core errors"""


class ValidationError(BankingError):
    """Malformed or out-of-range input"""


class NotFoundError(BankingError):
    """Referenced account, transfer or loan does not exist"""


class AuthorizationError(BankingError):
    """Caller does not own the resource and is not staff"""


class InvalidStateError(BankingError):
    """Operation not legal in the entity's current lifecycle state"""


class InsufficientFundsError(BankingError):
    """Funds check failed"""


class ResourceExhaustedError(BankingError):
    """Bounded retry ran out of attempts"""


class UniqueConstraintError(BankingError):
    """Storage-level uniqueness violation"""
