"""
FHIR Data Convert

Converts HL7v2 messages into FHIR Bundles by rendering them through a
selectable template collection.

Components:
- resolver: template collection reference -> TemplateCollection
- dispatcher: routes a request to its converter and maps failures
- registry: immutable input type -> converter mapping
- service: resolve-then-convert pipeline for one request; build_service
  wires it (and logging) from Settings
"""
from .dispatcher import ConversionDispatcher
from .errors import ConversionError, ErrorKind
from .models import (
    AccessToken,
    ConversionRequest,
    InputDataType,
    ProcessorSettings,
    TemplateCollection,
)
from .reference import DEFAULT_TEMPLATE_REFERENCE
from .registry import ConverterRegistry, build_converter_registry
from .resolver import TemplateCollectionResolver
from .service import ConvertDataService, build_service

__all__ = [
    "ConversionDispatcher",
    "ConversionError",
    "ErrorKind",
    "AccessToken",
    "ConversionRequest",
    "InputDataType",
    "ProcessorSettings",
    "TemplateCollection",
    "DEFAULT_TEMPLATE_REFERENCE",
    "ConverterRegistry",
    "build_converter_registry",
    "TemplateCollectionResolver",
    "ConvertDataService",
    "build_service",
]
