"""
Converter Registry

Read-only mapping from input data type to converter, built once at
startup and shared by every request.
"""
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Union

from dataconvert.config import Settings, settings as default_settings
from dataconvert.converters.base import Converter
from dataconvert.converters.hl7v2.converter import Hl7v2Converter
from dataconvert.models import InputDataType, ProcessorSettings


class ConverterRegistry:
    """Immutable lookup of converters by input data type."""

    def __init__(self, converters: Mapping[InputDataType, Converter]):
        self._converters = MappingProxyType(dict(converters))

    def get(self, input_data_type: Union[InputDataType, str, None]) -> Optional[Converter]:
        """
        Find the converter for an input type.

        Args:
            input_data_type: InputDataType or its tag (any casing)

        Returns:
            The registered converter, or None
        """
        if input_data_type is None:
            return None
        if not isinstance(input_data_type, InputDataType):
            try:
                input_data_type = InputDataType(input_data_type)
            except ValueError:
                return None
        return self._converters.get(input_data_type)

    @property
    def input_data_types(self) -> Mapping[InputDataType, Converter]:
        return self._converters

    def __contains__(self, input_data_type) -> bool:
        return self.get(input_data_type) is not None

    def __iter__(self) -> Iterator[InputDataType]:
        return iter(self._converters)

    def __len__(self) -> int:
        return len(self._converters)


def build_converter_registry(config: Optional[Settings] = None) -> ConverterRegistry:
    """
    Build the registry of supported converters from settings.

    Adding an input type means registering one more converter here with
    its own ProcessorSettings.
    """
    config = config or default_settings
    processor_settings = ProcessorSettings(timeout=config.operation_timeout)

    converters: Dict[InputDataType, Converter] = {
        InputDataType.HL7V2: Hl7v2Converter(processor_settings),
    }
    return ConverterRegistry(converters)
