"""Custom exceptions for the knowledge layer.

Provides a structured exception hierarchy with error codes and
machine-readable error information, so the agent facade can hand
callers something better than a bare message.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_VALIDATION_FAILED = 1002
    NOTE_ALREADY_EXISTS = 1003
    NOTE_TITLE_REQUIRED = 1004

    # Storage errors (4xxx)
    MIRROR_READ_FAILED = 4001
    MIRROR_WRITE_FAILED = 4002
    MIRROR_DELETE_FAILED = 4003
    STORAGE_CONNECTION_FAILED = 4004
    SCHEMA_CREATION_FAILED = 4005
    FTS_CORRUPTED = 4007

    # Vault import errors (45xx)
    IMPORT_FAILED = 4501

    # Search errors (5xxx)
    SEARCH_FAILED = 5001
    SEARCH_INVALID_QUERY = 5002

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_DIRECTION = 7004


class KnowledgeError(Exception):
    """Base exception for all knowledge layer errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NoteNotFoundError(KnowledgeError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note with ID '{note_id}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id}
        )
        self.note_id = note_id


class DuplicateNoteError(KnowledgeError):
    """Raised when a create would collide with an existing note id or mirror path."""

    def __init__(
        self,
        note_id: str,
        path: Optional[str] = None,
        message: Optional[str] = None
    ):
        details: Dict[str, Any] = {"note_id": note_id}
        if path:
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        super().__init__(
            message or f"Note with ID '{note_id}' already exists",
            code=ErrorCode.NOTE_ALREADY_EXISTS,
            details=details
        )
        self.note_id = note_id
        self.path = path


class NoteValidationError(KnowledgeError):
    """Raised when note data fails validation."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.NOTE_VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class StorageError(KnowledgeError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.MIRROR_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class MirrorIOError(StorageError):
    """Raised when a vault mirror file cannot be written, read or removed."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.MIRROR_WRITE_FAILED,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            operation=operation,
            path=path,
            code=code,
            original_error=original_error
        )


class SchemaError(StorageError):
    """Raised at startup when the store's tables cannot be created.

    This is fatal: the service cannot run without its relations.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(
            message,
            operation="create_schema",
            code=ErrorCode.SCHEMA_CREATION_FAILED,
            original_error=original_error
        )


class VaultImportError(KnowledgeError):
    """Raised (and logged) when a single vault file cannot be imported."""

    def __init__(
        self,
        message: str,
        file_name: str,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {"file_name": file_name}
        if original_error:
            details["original_error"] = str(original_error)[:200]
        super().__init__(message, code=ErrorCode.IMPORT_FAILED, details=details)
        self.file_name = file_name
        self.original_error = original_error


class SearchError(KnowledgeError):
    """Raised for search-related errors."""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        code: ErrorCode = ErrorCode.SEARCH_FAILED
    ):
        details = {}
        if query:
            details["query"] = query[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.query = query


class ValidationError(KnowledgeError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value
