"""
Error taxonomy for the translation pipeline.

Only ``InitializationError`` (and ``NotInitializedError`` at the HTTP
boundary) is ever raised to callers.  The other kinds tag ``Guarded``
results so callers can tell *why* a statement was withheld without parsing
the localized message.
"""


class NLSQLError(Exception):
    """Base class for every error raised by the service."""

    kind = "error"


class InitializationError(NLSQLError):
    """Schema payload was empty, unparseable or described no tables."""

    kind = "initialization"


class NotInitializedError(NLSQLError):
    """A request arrived before a schema snapshot was loaded."""

    kind = "not_initialized"


class UnresolvedEntityError(NLSQLError):
    kind = "unresolved_entity"


class UnsafeOperationError(NLSQLError):
    kind = "unsafe_operation"


class ValidationError(NLSQLError):
    kind = "validation"
