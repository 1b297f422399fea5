"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ConfigurationError(DomainException):
    """Settings are missing or invalid; the job must not start"""

    pass


class SourceFetchError(DomainException):
    """Charge or invoice listing failed; no gate decision can be made"""

    def __init__(self, source: str, message: str):
        super().__init__(f"Failed to fetch {source}: {message}")
        self.source = source
        self.message = message


class UpdateError(DomainException):
    """Due-date update failed for a single invoice"""

    def __init__(self, invoice_id: str, kind: str, message: str):
        super().__init__(f"Invoice {invoice_id} update failed ({kind}): {message}")
        self.invoice_id = invoice_id
        self.kind = kind
        self.message = message


class PersistenceError(DomainException):
    """Audit record could not be written"""

    pass
