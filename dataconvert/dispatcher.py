"""
Conversion Dispatcher

Executes exactly one conversion against an already resolved template
collection:

1. Converter lookup by input data type
2. Render through the converter (bounded by its processor timeout)
3. Mapping of the converter's failure kind to one ConversionError kind

Output is all-or-nothing: no partial text is returned on failure.
"""
import asyncio
import logging
from typing import Dict, Optional

from dataconvert.converters.base import RenderFailureKind, RenderResult
from dataconvert.errors import ConversionError, ErrorKind
from dataconvert.models import ConversionRequest, TemplateCollection
from dataconvert.registry import ConverterRegistry

logger = logging.getLogger(__name__)

RENDER_FAILURE_TO_ERROR_KIND: Dict[RenderFailureKind, ErrorKind] = {
    RenderFailureKind.PARSE_ERROR: ErrorKind.INPUT_PARSE_ERROR,
    RenderFailureKind.INIT_ERROR: ErrorKind.CONVERTER_INIT_ERROR,
    RenderFailureKind.TIMEOUT: ErrorKind.CONVERT_TIMEOUT,
    RenderFailureKind.RENDER_ERROR: ErrorKind.CONVERT_FAILED,
}


class ConversionDispatcher:
    """
    Routes conversion requests to the registered converter.

    Usage:
        dispatcher = ConversionDispatcher(build_converter_registry())
        bundle_json = await dispatcher.convert(request, templates)
    """

    def __init__(self, registry: ConverterRegistry):
        self.registry = registry

    async def convert(
        self,
        request: ConversionRequest,
        templates: TemplateCollection,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        """
        Convert the request's input data.

        Args:
            request: Conversion request
            templates: Template collection resolved for the request
            cancel_event: Forwarded to the converter

        Returns:
            Converted output text

        Raises:
            ConversionError: One of InvalidInputType, InputParseError,
                ConverterInitError, ConvertTimeout, ConvertFailed
        """
        input_type = getattr(request.input_data_type, "value", request.input_data_type)
        converter = self.registry.get(request.input_data_type)
        if converter is None:
            # Unknown types are rejected when the request is built
            logger.error("Invalid input data type for conversion: %s", input_type)
            raise ConversionError(
                ErrorKind.INVALID_INPUT_TYPE,
                "Invalid input data type for conversion."
            )

        try:
            result = await converter.render(
                request.input_data,
                request.entry_point_template,
                templates,
                cancel_event,
            )
        except (ConversionError, asyncio.CancelledError):
            raise
        except Exception as e:
            logger.error(
                "Unhandled exception: data convert process failed (input_type=%s, template=%s).",
                input_type, request.entry_point_template,
                exc_info=e
            )
            raise ConversionError(
                ErrorKind.CONVERT_FAILED,
                f"Data conversion failed: {e}",
                e
            ) from e

        if result.success:
            return result.output

        raise self._failure(result, input_type, request.entry_point_template)

    def _failure(self, result: RenderResult, input_type: str, template: str) -> ConversionError:
        kind = RENDER_FAILURE_TO_ERROR_KIND.get(result.failure, ErrorKind.CONVERT_FAILED)
        context = {"input_type": input_type, "template": template, "error_kind": kind.value}

        if kind == ErrorKind.INPUT_PARSE_ERROR:
            logger.error(
                "Unable to parse the input data (input_type=%s).", input_type,
                exc_info=result.cause,
                extra=context
            )
            message = f"Unable to parse the inputData to {input_type} type."
        elif kind == ErrorKind.CONVERTER_INIT_ERROR:
            logger.error(
                "Fail to initialize the convert engine (input_type=%s, template=%s): %s",
                input_type, template, result.error,
                exc_info=result.cause,
                extra=context
            )
            message = f"Failed to initialize the data conversion engine: {result.error}"
        elif kind == ErrorKind.CONVERT_TIMEOUT:
            logger.error(
                "Data convert operation timed out (input_type=%s, template=%s).",
                input_type, template,
                exc_info=result.cause,
                extra=context
            )
            message = "Data conversion operation timed out."
        else:
            logger.error(
                "Data convert process failed (input_type=%s, template=%s): %s",
                input_type, template, result.error,
                exc_info=result.cause,
                extra=context
            )
            message = f"Data conversion failed: {result.error}"

        error = ConversionError(kind, message, result.cause)
        error.__cause__ = result.cause
        return error
