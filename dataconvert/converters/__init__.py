"""
Converters for supported input data types.

Each converter follows a standardized interface:
- Defined by abstract Converter base class
- Returns RenderResult with success/failure kind
- Bounded by its ProcessorSettings timeout
"""
from .base import Converter, RenderFailureKind, RenderResult
from .hl7v2 import Hl7v2Converter

__all__ = [
    "Converter",
    "RenderFailureKind",
    "RenderResult",
    "Hl7v2Converter",
]
