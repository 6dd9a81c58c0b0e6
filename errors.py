"""Error taxonomy shared by the services, processors and HTTP layer."""


class LedgerError(Exception):
    """Base class for every error raised by the ledger core."""


class ValidationError(LedgerError, ValueError):
    """Input is malformed or outside policy; nothing was written."""


class NotFoundError(LedgerError, ValueError):
    """Entity does not exist or belongs to another owner."""


class AuthorizationError(LedgerError):
    """Caller is not authenticated as the owner being operated on."""


class ConflictError(LedgerError):
    """A concurrent write changed the same entity; retry the whole operation."""


class StoreUnavailableError(LedgerError):
    """The atomic commit failed for infrastructure reasons; nothing was applied."""
