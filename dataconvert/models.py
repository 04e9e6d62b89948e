"""
Core data model for data conversion.

- InputDataType: closed set of source message kinds
- ConversionRequest: one conversion job (validated at the boundary)
- TemplateCollection: ordered template layers, last layer wins
- AccessToken: short-lived registry credential
- ProcessorSettings: per-converter configuration
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field


class InputDataType(str, Enum):
    """Kinds of source messages that can be converted."""
    HL7V2 = "Hl7v2"

    @classmethod
    def _missing_(cls, value):
        # Tags arrive from request envelopes in any casing ("hl7v2", "HL7V2")
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None


class ConversionRequest(BaseModel):
    """Request schema for a single data conversion"""
    input_data: str = Field(..., description="Raw source message")
    input_data_type: InputDataType
    template_collection_reference: str = Field(..., min_length=1)
    entry_point_template: str = Field(..., min_length=1, description="Template rendering starts from")
    registry_server: Optional[str] = None


@dataclass
class TemplateCollection:
    """
    Ordered sequence of template layers.

    Each layer maps a template name to its source text. Layers are kept in
    the order they were produced (base first); when several layers define
    the same name, the last one wins. Every lookup, including templates
    that include or import other templates, goes through ``get``.
    """
    layers: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def from_layer(cls, templates: Dict[str, str]) -> "TemplateCollection":
        """Create a single-layer collection."""
        return cls(layers=[dict(templates)])

    def get(self, name: str) -> Optional[str]:
        """
        Find a template by name.

        Args:
            name: Template name (e.g. 'ADT_A01', 'Resource/Patient')

        Returns:
            Template source from the last layer that defines it, or None
        """
        for layer in reversed(self.layers):
            if name in layer:
                return layer[name]
        return None

    def names(self) -> Set[str]:
        """All template names visible in the collection."""
        visible: Set[str] = set()
        for layer in self.layers:
            visible.update(layer.keys())
        return visible

    @property
    def is_empty(self) -> bool:
        return not any(self.layers)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self.names())


@dataclass(frozen=True)
class AccessToken:
    """Registry access token. The value is kept out of repr and logs."""
    value: str = field(repr=False)
    server: str


@dataclass(frozen=True)
class ProcessorSettings:
    """Per-converter settings applied uniformly to every conversion."""
    timeout: float  # seconds
