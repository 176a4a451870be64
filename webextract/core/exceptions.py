"""Custom exceptions for the workflow engine with detailed error information."""

import traceback
from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    PARSING = "parsing"
    VALIDATION = "validation"
    EXECUTION = "execution"
    CREDENTIAL = "credential"
    UPSTREAM = "upstream"
    RESOURCE = "resource"
    STORAGE = "storage"
    CONFIGURATION = "configuration"


class WebExtractError(Exception):
    """Base exception for all workflow engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.context = context or {}
        self.timestamp = datetime.utcnow()
        self.traceback_info = traceback.format_stack()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class MalformedPayloadError(WebExtractError):
    """Raised inside the recovery parser when a text candidate cannot be decoded.

    Never escapes ``parse_workflow``; it only drives the next repair pass.
    """

    def __init__(self, message: str, stage: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.PARSING,
            recoverable=True,
            **kwargs
        )
        if stage:
            self.add_context(stage=stage)


class GraphValidationError(WebExtractError):
    """Raised when a workflow fails structural validation."""

    def __init__(
        self,
        message: str,
        validation_errors: Optional[List[str]] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        self.validation_errors = validation_errors or []
        if validation_errors:
            self.add_details(validation_errors=validation_errors)


class NodeExecutionError(WebExtractError):
    """Raised when a node cannot complete."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        run_id: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.EXECUTION)
        super().__init__(message, recoverable=True, **kwargs)
        if node_id:
            self.add_context(node_id=node_id)
        if run_id:
            self.add_context(run_id=run_id)


class MissingInputError(NodeExecutionError):
    """Raised when a required input has no value at run time."""

    def __init__(self, input_name: str, **kwargs):
        super().__init__(f"input -> {input_name} is not defined", **kwargs)
        self.input_name = input_name
        self.add_context(input_name=input_name)


class CredentialError(NodeExecutionError):
    """Raised when a credential is missing or cannot be decrypted."""

    def __init__(self, message: str, credential_id: Optional[str] = None, **kwargs):
        super().__init__(message, category=ErrorCategory.CREDENTIAL, **kwargs)
        if credential_id:
            self.add_context(credential_id=credential_id)


class UpstreamServiceError(NodeExecutionError):
    """Raised when an external model or network call fails."""

    def __init__(self, message: str, service: Optional[str] = None, **kwargs):
        super().__init__(message, category=ErrorCategory.UPSTREAM, **kwargs)
        if service:
            self.add_context(service=service)


class ResourceError(NodeExecutionError):
    """Raised when the shared automation handle fails to start or is used after release."""

    def __init__(self, message: str, resource_type: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.RESOURCE,
            **kwargs
        )
        if resource_type:
            self.add_context(resource_type=resource_type)


class RunControllerError(WebExtractError):
    """Raised when run controller operations fail."""

    def __init__(
        self,
        message: str,
        run_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        if run_id:
            self.add_context(run_id=run_id)


class StorageError(WebExtractError):
    """Raised when storage operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            recoverable=True,
            **kwargs
        )
        if operation:
            self.add_context(operation=operation)
        if table:
            self.add_context(table=table)


class ConfigurationError(WebExtractError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if config_key:
            self.add_context(config_key=config_key)


def create_error_response(error: WebExtractError) -> Dict[str, Any]:
    """Create a standardized error response from a WebExtractError."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "recoverable": error.recoverable,
            "timestamp": error.timestamp.isoformat()
        },
        "context": error.context
    }
