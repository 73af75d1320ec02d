"""
Error taxonomy for the autosave engine.

Every failure that reaches ``on_saved`` is carried as one of these. The
underlying exception, when there is one, is kept on ``original_error`` and
also chained as ``__cause__``.
"""

from typing import Any, Dict, List, Optional


class AutosaveError(Exception):
    """Base error with a machine-readable code and optional metadata."""

    code: str = "AUTOSAVE_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.original_error = original_error
        self.metadata: Dict[str, Any] = dict(metadata or {})
        if original_error is not None:
            self.__cause__ = original_error

    @classmethod
    def from_unknown(cls, error: Any, code: Optional[str] = None) -> 'AutosaveError':
        """Wrap anything raised or returned as a failure into an AutosaveError.

        AutosaveErrors pass through unchanged.
        """
        if isinstance(error, AutosaveError):
            return error
        if isinstance(error, BaseException):
            wrapped = cls(str(error) or type(error).__name__, original_error=error)
        else:
            wrapped = cls(str(error))
        if code is not None:
            wrapped.code = code
        return wrapped

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code!r})"


class TransportError(AutosaveError):
    """A transport failed, possibly after several attempts."""

    code = "TRANSPORT_ERROR"

    def __init__(
        self,
        message: str,
        attempts: int = 1,
        original_error: Optional[BaseException] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, original_error=original_error, metadata=metadata)
        self.attempts = attempts


class ValidationError(AutosaveError):
    """The payload was rejected before reaching the transport."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        failed_fields: Optional[List[str]] = None,
        original_error: Optional[BaseException] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, original_error=original_error, metadata=metadata)
        self.failed_fields: List[str] = list(failed_fields or [])


class CancellationError(AutosaveError):
    """The save was aborted through its cancellation token."""

    code = "CANCELLED"

    def __init__(
        self,
        message: str = "Save cancelled",
        original_error: Optional[BaseException] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, original_error=original_error, metadata=metadata)
