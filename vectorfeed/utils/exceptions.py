"""
VectorFeed Custom Exceptions
============================

Custom exception hierarchy for VectorFeed with error codes, context
information, and a recoverable flag that the queue consumer uses to decide
between redelivery and acknowledgement.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Database errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_SCHEMA = "D002"
    DATABASE_TRANSACTION = "D004"
    DATABASE_ERROR = "D006"

    # Feed ingestion errors (F001-F099)
    FEED_INVALID_URL = "F001"
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_ACCESS_DENIED = "F005"
    FEED_NOT_FOUND = "F006"

    # Content processing errors (P001-P099)
    CONTENT_INVALID = "P001"
    CONTENT_EXTRACTION_FAILED = "P003"
    MESSAGE_INVALID = "P005"

    # AI processing errors (A001-A099)
    AI_API_ERROR = "A001"
    AI_INVALID_RESPONSE = "A003"
    AI_TIMEOUT = "A004"
    AI_AUTHENTICATION = "A005"
    AI_RATE_LIMIT = "A006"
    AI_INVALID_CREDENTIALS = "A009"
    AI_CONNECTION_ERROR = "A010"

    # Vector store errors (V101-V199)
    VECTOR_STORE_ERROR = "V101"
    VECTOR_STORE_TIMEOUT = "V102"
    VECTOR_ID_TOO_LONG = "V103"

    # Queue errors (Q001-Q099)
    QUEUE_SEND_FAILED = "Q001"
    QUEUE_RECEIVE_FAILED = "Q002"
    QUEUE_ACK_FAILED = "Q003"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"

    # System errors (S001-S099)
    SYSTEM_RESOURCE_EXHAUSTED = "S001"
    SYSTEM_PERMISSION_DENIED = "S002"
    SYSTEM_MEMORY_ERROR = "S004"


class VectorFeedError(Exception):
    """Base exception for all VectorFeed errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize VectorFeed error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether a redelivery may succeed
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _passthrough(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(VectorFeedError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_passthrough(kwargs, "context", "error_code", "user_message"),
        )


class DatabaseError(VectorFeedError):
    """Database-related errors."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        """Initialize database error.

        Args:
            message: Error message
            query: SQL query that caused the error
            **kwargs: Additional arguments for VectorFeedError
        """
        context = kwargs.get("context", {})
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.DATABASE_CONNECTION),
            context=context,
            user_message=kwargs.get("user_message", "Database operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class FeedError(VectorFeedError):
    """Feed ingestion and parsing errors."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        """Initialize feed error.

        Args:
            message: Error message
            feed_url: Feed URL that caused the error
            **kwargs: Additional arguments for VectorFeedError
        """
        context = kwargs.get("context", {})
        if feed_url:
            context["feed_url"] = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_NETWORK_ERROR),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Feed processing failed: {message}"
            ),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class FeedFetchError(FeedError):
    """RSS/Atom feed fetching errors."""

    pass


class ProcessingError(VectorFeedError):
    """Content processing errors."""

    def __init__(self, message: str, item_id: Optional[str] = None, **kwargs):
        """Initialize processing error.

        Args:
            message: Error message
            item_id: Item identity that caused the error
            **kwargs: Additional arguments for VectorFeedError
        """
        context = kwargs.get("context", {})
        if item_id:
            context["item_id"] = item_id

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONTENT_INVALID),
            context=context,
            user_message=kwargs.get("user_message", "Item processing failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class ContentExtractionError(ProcessingError):
    """Publisher page fetch or extraction failures."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if url:
            context["url"] = url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONTENT_EXTRACTION_FAILED),
            context=context,
            **_passthrough(kwargs, "context", "error_code"),
        )


class MessageValidationError(ProcessingError):
    """Queue message bodies that cannot be parsed."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.MESSAGE_INVALID),
            user_message=kwargs.get("user_message", "Malformed queue message"),
            recoverable=False,
            **_passthrough(kwargs, "error_code", "user_message", "recoverable"),
        )


class AIError(VectorFeedError):
    """Embedding model and API errors."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        **kwargs,
    ):
        """Initialize AI error.

        Args:
            message: Error message
            provider: AI provider name (e.g., 'workers_ai')
            model: Model identifier used for the call
            **kwargs: Additional arguments for VectorFeedError
        """
        context = kwargs.get("context", {})
        if provider:
            context["ai_provider"] = provider
        if model:
            context["model"] = model

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.AI_API_ERROR),
            context=context,
            user_message=kwargs.get(
                "user_message", "Embedding model temporarily unavailable"
            ),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )
        self.provider = provider


class VectorStoreError(VectorFeedError):
    """Vector index errors."""

    def __init__(self, message: str, index_name: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if index_name:
            context["index_name"] = index_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VECTOR_STORE_ERROR),
            context=context,
            user_message=kwargs.get("user_message", "Vector index operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class QueueError(VectorFeedError):
    """Work queue errors."""

    def __init__(self, message: str, message_id: Optional[int] = None, **kwargs):
        context = kwargs.get("context", {})
        if message_id is not None:
            context["message_id"] = message_id

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.QUEUE_SEND_FAILED),
            context=context,
            user_message=kwargs.get("user_message", "Queue operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class ValidationError(VectorFeedError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        """Initialize validation error.

        Args:
            message: Error message
            field_name: Field name that failed validation
            **kwargs: Additional arguments for VectorFeedError
        """
        context = kwargs.get("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.get("recoverable", False),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> VectorFeedError:
    """Convert generic exceptions to VectorFeed exceptions with proper logging.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        VectorFeed exception with proper categorization
    """
    context = context or {}
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__

    if isinstance(exception, VectorFeedError):
        logger.error(f"Operation '{operation}' failed", extra=exception.to_dict())
        return exception

    elif isinstance(exception, (ConnectionError, TimeoutError)):
        error = VectorFeedError(
            message=f"Network error during {operation}: {str(exception)}",
            error_code=ErrorCode.FEED_NETWORK_ERROR,
            context=context,
            user_message="Network connection failed",
            recoverable=True,
        )

    elif isinstance(exception, PermissionError):
        error = VectorFeedError(
            message=f"Permission denied during {operation}: {str(exception)}",
            error_code=ErrorCode.SYSTEM_PERMISSION_DENIED,
            context=context,
            user_message="Access denied",
            recoverable=False,
        )

    elif isinstance(exception, MemoryError):
        error = VectorFeedError(
            message=f"Memory exhausted during {operation}: {str(exception)}",
            error_code=ErrorCode.SYSTEM_MEMORY_ERROR,
            context=context,
            user_message="System resources exhausted",
            recoverable=True,
        )

    else:
        error = VectorFeedError(
            message=f"Unexpected error during {operation}: {str(exception)}",
            context=context,
            user_message="An unexpected error occurred",
            recoverable=True,
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error


def is_retryable_error(exception: Exception) -> bool:
    """Check if an error is worth handing back to the queue for redelivery.

    Non-VectorFeed exceptions are treated as transient infrastructure failures.
    """
    if not isinstance(exception, VectorFeedError):
        return True
    return exception.recoverable
