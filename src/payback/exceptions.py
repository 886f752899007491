"""Custom exceptions for PayBack."""


class PayBackError(Exception):
    """Base exception for all PayBack errors."""

    pass


class ConfigurationError(PayBackError):
    """Raised when configuration is invalid or missing."""

    pass


class ImportFormatError(PayBackError):
    """Base class for export-text parsing errors."""

    pass


class IncompatibleFormatError(ImportFormatError):
    """Raised when text does not contain a recognized export envelope."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or "The data format is not compatible with PayBack. Please ensure "
            "you're importing a valid PayBack export file."
        )


class RowParseError(ImportFormatError):
    """Raised when a single section row cannot be parsed."""

    def __init__(self, section: str, line_number: int, reason: str):
        self.section = section
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"[{section}] line {line_number}: {reason}")


class PersistenceError(PayBackError):
    """Raised when the local store cannot be saved or loaded."""

    pass


class RemoteAPIError(PayBackError):
    """Raised when a backend request fails."""

    pass
