"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class DepositoryNotFoundError(DomainException):
    """Depository does not exist or is not owned by the caller"""

    pass


class InvalidDepositoryStatusError(DomainException):
    """Depository is not in the status the operation requires"""

    pass


class GuessValidationError(DomainException):
    """Micro-deposit guesses are missing or the wrong count.

    Messages must never include how many micro-deposits are stored.
    """

    pass


class MicroDepositMismatchError(DomainException):
    """Guessed amounts do not match the stored micro-deposits"""

    pass


class MicroDepositsExistError(DomainException):
    """Micro-deposits were already initiated for this depository"""

    pass


class PersistenceError(DomainException):
    """Storage layer failed"""

    pass


class ACHFileError(DomainException):
    """ACH file could not be constructed or modified"""

    pass


class MergeError(DomainException):
    """A micro-deposit could not be merged into an outbound file"""

    pass


class UpstreamError(DomainException):
    """An external service returned an error or is unavailable"""

    pass


class ACHServiceError(UpstreamError):
    """ACH file service rejected or failed a file operation"""

    pass


class LedgerServiceError(UpstreamError):
    """Accounts (ledger) service returned an error or is unavailable"""

    pass


class LedgerPostingError(UpstreamError):
    """Ledger transaction could not be posted after all attempts"""

    pass


class ODFIResolutionError(UpstreamError):
    """ODFI account could not be found in the ledger"""

    pass
