"""
Subsettle Exception Hierarchy

All exceptions inherit from SubsettleError for easy catching.

Underfunded settlement is NOT an error. It is a state transition reported
through SettlementOutcome and never raised.
"""


class SubsettleError(Exception):
    """Base exception for all Subsettle errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class AuthorizationError(SubsettleError):
    """Raised when the caller is not allowed to perform an operation"""
    pass


class NotOwner(AuthorizationError):
    """Raised when the caller does not match the stored owner reference"""
    pass


class ValidationError(SubsettleError):
    """Raised when command input is rejected before any mutation"""
    pass


class InvalidFee(ValidationError):
    """Raised when a provider fee is zero or negative"""
    pass


class InvalidAmount(ValidationError):
    """Raised when a deposit amount is zero or negative"""
    pass


class EmptyProviderSet(ValidationError):
    """Raised when a subscriber registers without any provider"""
    pass


class DuplicateProviderId(ValidationError):
    """Raised when a provider id repeats in a subscriber registration"""
    pass


class ArityMismatch(ValidationError):
    """Raised when parallel argument lists differ in length"""
    pass


class InvalidProviderId(ValidationError):
    """Raised when a provider id was never issued"""
    pass


class UnknownProvider(ValidationError):
    """Raised when a command targets a provider that does not exist"""
    pass


class UnknownSubscriber(ValidationError):
    """Raised when a command targets a subscriber that does not exist"""
    pass


class DuplicateRegistrationKey(ValidationError):
    """Raised when a registration key has already been consumed"""
    pass


class CapacityExceeded(ValidationError):
    """Raised when the maximum provider count has been issued"""
    pass


class ProviderInactive(ValidationError):
    """Raised when a subscriber registers against an inactive or removed provider"""
    pass


class InsufficientFundsError(SubsettleError):
    """Raised when funds do not cover a required amount"""
    pass


class InsufficientDeposit(InsufficientFundsError):
    """Raised when the registration deposit is below the two-epoch floor"""
    pass


class TransferError(SubsettleError):
    """Raised when the transfer rail refuses a pull or push"""
    pass


class ConfigError(SubsettleError):
    """Raised when configuration or scenario files are invalid"""
    pass


class JournalError(SubsettleError):
    """Raised when journal operations fail"""
    pass
