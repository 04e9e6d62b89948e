"""
Conversion error taxonomy.

Every failure that leaves the resolver or the dispatcher is a
ConversionError carrying exactly one ErrorKind. The message is safe to
show to the caller; the original collaborator failure is kept on
``cause`` (and chained as ``__cause__``) for diagnostics only.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of conversion failure kinds."""
    INVALID_INPUT_TYPE = "InvalidInputType"
    INPUT_PARSE_ERROR = "InputParseError"
    CONVERTER_INIT_ERROR = "ConverterInitError"
    CONVERT_TIMEOUT = "ConvertTimeout"
    CONVERT_FAILED = "ConvertFailed"
    REGISTRY_AUTH_FAILED = "RegistryAuthFailed"
    TEMPLATE_FETCH_FAILED = "TemplateFetchFailed"


class ConversionError(Exception):
    """Typed failure raised by the conversion core."""

    def __init__(self, kind: ErrorKind, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause

    def __repr__(self) -> str:
        return f"ConversionError(kind={self.kind.value!r}, message={self.message!r})"


class OperationCancelledError(Exception):
    """A resolution step was cancelled or ran past its time budget."""
    pass
