# backend/portfolio_tracker/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain errors and contain NO HTTP knowledge.
The API layer maps them to HTTP responses in main.py.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    ├── NotFoundError
    │   └── HoldingNotFoundError
    ├── FetchError
    │   ├── UpstreamError      (provider answered, but not with a usable quote)
    │   └── UnreachableError   (timeout, connection or DNS failure)
    └── StorageError

Where each kind is handled:
    - ValidationError is raised synchronously to the caller and never reaches
      storage.
    - FetchError is absorbed per symbol inside a refresh (last-known value
      is kept and the refresh is marked degraded). Only interactive search
      lets it propagate.
    - StorageError is logged and reported as a non-durable write; the
      in-memory state still advances.
"""


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when a holding or request violates a domain rule.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "Holding")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class HoldingNotFoundError(NotFoundError):
    """Raised when a holding id is looked up explicitly and does not exist."""

    def __init__(self, holding_id: str) -> None:
        self.holding_id = holding_id
        super().__init__(
            f"Holding {holding_id} not found",
            resource_type="Holding",
            resource_id=holding_id,
        )


# =============================================================================
# FETCH ERRORS
# =============================================================================


class FetchError(ServiceError):
    """
    Base exception for quote provider failures.

    Attributes:
        provider: Name of the provider that failed
        symbol: Symbol being fetched (None for exchange rate lookups)
        reason: Underlying cause, for logs
    """

    def __init__(
            self,
            message: str,
            provider: str | None = None,
            symbol: str | None = None,
            reason: str | None = None,
    ) -> None:
        self.provider = provider
        self.symbol = symbol
        self.reason = reason
        super().__init__(message)


class UpstreamError(FetchError):
    """
    The provider responded, but with an error or an unusable body.

    Covers non-2xx status codes, malformed JSON, missing prices and unknown
    symbols. Retrying does not help.

    Attributes:
        status_code: HTTP status returned by the provider (if any)
    """

    def __init__(
            self,
            provider: str,
            reason: str,
            symbol: str | None = None,
            status_code: int | None = None,
    ) -> None:
        self.status_code = status_code
        target = f" for {symbol}" if symbol else ""
        super().__init__(
            f"Provider '{provider}' returned an unusable response{target}: {reason}",
            provider=provider,
            symbol=symbol,
            reason=reason,
        )


class UnreachableError(FetchError):
    """The provider could not be reached in time (timeout, connection, DNS)."""

    def __init__(
            self,
            provider: str,
            reason: str,
            symbol: str | None = None,
    ) -> None:
        target = f" for {symbol}" if symbol else ""
        super().__init__(
            f"Provider '{provider}' is unreachable{target}: {reason}",
            provider=provider,
            symbol=symbol,
            reason=reason,
        )


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(ServiceError):
    """
    Raised when the durable store rejects a read or write.

    Attributes:
        operation: Storage operation that failed (e.g., "insert_holding")
    """

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage operation '{operation}' failed: {reason}")
