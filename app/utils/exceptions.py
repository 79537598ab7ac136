"""
Custom Exception Classes for the Resume Match API

Every error carries a stable ``error_code`` and the HTTP status the
exception middleware answers with. Keyword context passed to the
constructor ends up in ``details``.
"""
from typing import Dict, Any
from fastapi import HTTPException


class ResumeMatchError(Exception):
    """Base exception for the Resume Match API"""

    error_code = "RESUME_MATCH_ERROR"
    http_status = 500

    def __init__(self, message: str, details: Dict[str, Any] = None, cause: Exception = None, **context):
        self.message = message
        self.details = dict(details or {})
        self.details.update({k: v for k, v in context.items() if v is not None})
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/response"""
        result = {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }
        if self.cause:
            result["cause"] = str(self.cause)
        return result


class ValidationError(ResumeMatchError):
    """Raised when input or selection validation fails"""

    error_code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, message: str, field: str = None, value: Any = None, **kwargs):
        super().__init__(message, field=field,
                         invalid_value=str(value) if value is not None else None, **kwargs)


class BusinessLogicError(ResumeMatchError):
    """Raised when a request conflicts with the current state"""

    error_code = "BUSINESS_LOGIC_ERROR"
    http_status = 409

    def __init__(self, message: str, rule: str = None, **kwargs):
        super().__init__(message, business_rule=rule, **kwargs)


class UnsupportedFormat(ResumeMatchError):
    """Raised when a file extension has no reader (file_name, extension)"""

    error_code = "UNSUPPORTED_FORMAT"
    http_status = 415


class DecodeError(ResumeMatchError):
    """Raised when a binary document is corrupt or unreadable"""

    error_code = "DECODE_ERROR"
    http_status = 422


# Model-side failures all surface as 502: the request was fine, the upstream answer was not

class OCRFailure(ResumeMatchError):
    """Raised by the vision call; the ingestion pipeline degrades it to empty text"""

    error_code = "OCR_FAILURE"
    http_status = 502


class EmptyAIResponse(ResumeMatchError):
    error_code = "EMPTY_AI_RESPONSE"
    http_status = 502


class MalformedResponse(ResumeMatchError):
    """Raised when the model output does not fit the response schema"""

    error_code = "MALFORMED_RESPONSE"
    http_status = 502

    def __init__(self, message: str, raw: str = None, **kwargs):
        super().__init__(message, raw_excerpt=raw[:200] if raw else None, **kwargs)


class ScoringFailure(ResumeMatchError):
    """Raised when scoring one resume against the selected jobs fails"""

    error_code = "SCORING_FAILURE"
    http_status = 502


class ExternalServiceError(ResumeMatchError):
    """Raised when the LLM service call fails at the transport level"""

    error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502


class DatabaseError(ResumeMatchError):
    error_code = "DATABASE_ERROR"


class ProcessingError(ResumeMatchError):
    """Raised when resume/JD processing fails for an unexpected reason"""

    error_code = "PROCESSING_ERROR"


class EmptyDocument(ProcessingError):
    """Raised when a readable upload yields no text, e.g. a scan OCR could not read"""

    error_code = "EMPTY_DOCUMENT"
    http_status = 422


class ConfigurationError(ResumeMatchError):
    """Raised when configuration is invalid or missing"""

    error_code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, config_key: str = None, config_value: Any = None, **kwargs):
        super().__init__(message, config_key=config_key,
                         config_value=str(config_value) if config_value is not None else None, **kwargs)


def map_to_http_exception(exc: ResumeMatchError) -> HTTPException:
    """HTTPException carrying the error dict and its message"""
    return HTTPException(
        status_code=exc.http_status,
        detail={"error": exc.to_dict(), "message": exc.message},
    )


class ExceptionContext:
    """
    Wraps a block of library work: logs start/failure with the given context
    and converts unexpected exceptions into ResumeMatchError subclasses.
    """

    def __init__(self, operation: str, logger=None, **context):
        self.operation = operation
        self.logger = logger
        self.context = context

    def __enter__(self):
        if self.logger:
            self.logger.debug(f"Starting operation: {self.operation}", extra=self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            return False

        if self.logger:
            self.logger.error(
                f"Operation failed: {self.operation} - {exc_val}",
                extra={**self.context, "exception_type": exc_type.__name__}
            )

        # Re-raise custom exceptions as-is
        if isinstance(exc_val, ResumeMatchError):
            return False

        if isinstance(exc_val, (KeyError, ValueError, TypeError)):
            raise ValidationError(
                f"Validation error in {self.operation}: {exc_val}", details=dict(self.context), cause=exc_val
            ) from exc_val
        if "mongo" in str(exc_val).lower() or "database" in str(exc_val).lower():
            raise DatabaseError(
                f"Database error in {self.operation}: {exc_val}",
                details=dict(self.context), operation=self.operation, cause=exc_val
            ) from exc_val
        raise ProcessingError(
            f"Processing error in {self.operation}: {exc_val}", details=dict(self.context), cause=exc_val
        ) from exc_val
