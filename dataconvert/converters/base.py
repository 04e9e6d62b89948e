"""
Abstract base class for converters.

A converter renders one kind of input message through a template
collection. Converters are built once and shared across requests, so
they must not keep per-conversion state on the instance.
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from dataconvert.models import InputDataType, ProcessorSettings, TemplateCollection


class RenderFailureKind(str, Enum):
    """Failure kinds reported by converters."""
    PARSE_ERROR = "parse_error"
    INIT_ERROR = "init_error"
    TIMEOUT = "timeout"
    RENDER_ERROR = "render_error"


@dataclass
class RenderResult:
    """
    Outcome of a render call.

    Attributes:
        success: Whether rendering produced output
        output: Converted text if successful
        failure: RenderFailureKind if failed
        error: Diagnostic message if failed
        cause: Underlying exception, if any
        metadata: Additional execution metadata (timing, template name)
    """
    success: bool
    output: Optional[str] = None
    failure: Optional[RenderFailureKind] = None
    error: Optional[str] = None
    cause: Optional[BaseException] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, output: str, **metadata) -> "RenderResult":
        """Create successful result."""
        return cls(success=True, output=output, metadata=metadata)

    @classmethod
    def fail(
        cls,
        failure: RenderFailureKind,
        error: str,
        cause: Optional[BaseException] = None,
        **metadata
    ) -> "RenderResult":
        """Create failed result."""
        return cls(success=False, failure=failure, error=error, cause=cause, metadata=metadata)


class Converter(ABC):
    """
    Abstract base class for all converters.

    Each converter must:
    1. Declare the input data type it handles
    2. Implement async render() bounded by settings.timeout
    3. Report failures as a RenderResult instead of raising
    """

    def __init__(self, settings: ProcessorSettings):
        self.settings = settings

    @property
    @abstractmethod
    def input_data_type(self) -> InputDataType:
        """Input type this converter handles."""
        pass

    @abstractmethod
    async def render(
        self,
        input_data: str,
        entry_point_template: str,
        templates: TemplateCollection,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RenderResult:
        """
        Convert raw input by rendering the entry point template.

        Args:
            input_data: Raw source message
            entry_point_template: Name of the template rendering starts from
            templates: Resolved template collection
            cancel_event: Polled while rendering where possible

        Returns:
            RenderResult with output text or a failure kind
        """
        pass

    def __repr__(self) -> str:
        return f"<Converter: {self.input_data_type.value} timeout={self.settings.timeout}s>"
