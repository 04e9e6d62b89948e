"""
Conversion dispatcher and converter registry tests

Covers:
1. Registry lookup and immutability
2. Mapping of converter failure kinds to ConversionError kinds
3. Unknown input types and unexpected converter exceptions
"""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from dataconvert.config import Settings
from dataconvert.converters.base import Converter, RenderFailureKind, RenderResult
from dataconvert.converters.hl7v2 import Hl7v2Converter
from dataconvert.dispatcher import ConversionDispatcher
from dataconvert.errors import ConversionError, ErrorKind
from dataconvert.models import ConversionRequest, InputDataType, ProcessorSettings, TemplateCollection
from dataconvert.reference import DEFAULT_TEMPLATE_REFERENCE
from dataconvert.registry import ConverterRegistry, build_converter_registry


SAMPLE_REQUEST = ConversionRequest(
    input_data="MSH|^~\\&|SIMHOSP|SFAC|RAPP|RFAC|20200508131015||ADT^A01|517|T|2.3",
    input_data_type="Hl7v2",
    template_collection_reference=DEFAULT_TEMPLATE_REFERENCE,
    entry_point_template="ADT_A01"
)

TEMPLATES = TemplateCollection.from_layer({"ADT_A01": "{}"})


class SlowConverter(Converter):
    """Converter whose render never finishes inside its budget."""

    @property
    def input_data_type(self) -> InputDataType:
        return InputDataType.HL7V2

    async def render(self, input_data, entry_point_template, templates, cancel_event=None):
        try:
            await asyncio.wait_for(asyncio.sleep(60), timeout=self.settings.timeout)
        except asyncio.TimeoutError as e:
            return RenderResult.fail(RenderFailureKind.TIMEOUT, "too slow", cause=e)
        return RenderResult.ok("{}")


def make_dispatcher(render_result=None, side_effect=None):
    """Dispatcher with one mocked Hl7v2 converter."""
    converter = Mock()
    converter.render = AsyncMock(return_value=render_result, side_effect=side_effect)
    registry = ConverterRegistry({InputDataType.HL7V2: converter})
    return ConversionDispatcher(registry), converter


class TestConverterRegistry:
    """Test the input type -> converter mapping."""

    def test_build_from_settings(self):
        registry = build_converter_registry(Settings(operation_timeout=2.5))

        converter = registry.get(InputDataType.HL7V2)
        assert isinstance(converter, Hl7v2Converter)
        assert converter.settings.timeout == 2.5
        assert len(registry) == 1
        assert list(registry) == [InputDataType.HL7V2]

    def test_lookup_by_tag(self):
        registry = build_converter_registry(Settings())

        assert registry.get("hl7v2") is registry.get(InputDataType.HL7V2)
        assert "HL7V2" in registry
        assert registry.get("cda") is None
        assert registry.get(None) is None

    def test_registry_is_read_only(self):
        source = {InputDataType.HL7V2: Mock()}
        registry = ConverterRegistry(source)
        source.clear()

        assert InputDataType.HL7V2 in registry
        with pytest.raises(TypeError):
            registry.input_data_types[InputDataType.HL7V2] = Mock()


class TestConversionDispatcher:
    """Test routing and failure mapping."""

    @pytest.mark.asyncio
    async def test_success_returns_output(self):
        dispatcher, converter = make_dispatcher(RenderResult.ok('{"resourceType": "Bundle"}'))

        output = await dispatcher.convert(SAMPLE_REQUEST, TEMPLATES)

        assert output == '{"resourceType": "Bundle"}'
        converter.render.assert_awaited_once_with(
            SAMPLE_REQUEST.input_data, "ADT_A01", TEMPLATES, None
        )

    @pytest.mark.asyncio
    async def test_cancel_event_is_forwarded(self):
        dispatcher, converter = make_dispatcher(RenderResult.ok("{}"))
        cancel_event = asyncio.Event()

        await dispatcher.convert(SAMPLE_REQUEST, TEMPLATES, cancel_event)

        assert converter.render.await_args.args[3] is cancel_event

    @pytest.mark.asyncio
    async def test_no_converter_is_invalid_input_type(self):
        dispatcher = ConversionDispatcher(ConverterRegistry({}))

        with pytest.raises(ConversionError) as exc_info:
            await dispatcher.convert(SAMPLE_REQUEST, TEMPLATES)

        assert exc_info.value.kind == ErrorKind.INVALID_INPUT_TYPE
        assert exc_info.value.message == "Invalid input data type for conversion."

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure,kind,message", [
        (RenderFailureKind.PARSE_ERROR, ErrorKind.INPUT_PARSE_ERROR,
         "Unable to parse the inputData to Hl7v2 type."),
        (RenderFailureKind.INIT_ERROR, ErrorKind.CONVERTER_INIT_ERROR,
         "Failed to initialize the data conversion engine: boom"),
        (RenderFailureKind.TIMEOUT, ErrorKind.CONVERT_TIMEOUT,
         "Data conversion operation timed out."),
        (RenderFailureKind.RENDER_ERROR, ErrorKind.CONVERT_FAILED,
         "Data conversion failed: boom"),
    ])
    async def test_failure_kind_mapping(self, failure, kind, message):
        cause = RuntimeError("underlying")
        dispatcher, _ = make_dispatcher(RenderResult.fail(failure, "boom", cause=cause))

        with pytest.raises(ConversionError) as exc_info:
            await dispatcher.convert(SAMPLE_REQUEST, TEMPLATES)

        assert exc_info.value.kind == kind
        assert exc_info.value.message == message
        assert exc_info.value.cause is cause
        assert exc_info.value.__cause__ is cause

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_convert_failed(self):
        error = KeyError("engine exploded")
        dispatcher, _ = make_dispatcher(side_effect=error)

        with pytest.raises(ConversionError) as exc_info:
            await dispatcher.convert(SAMPLE_REQUEST, TEMPLATES)

        assert exc_info.value.kind == ErrorKind.CONVERT_FAILED
        assert exc_info.value.cause is error

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self):
        dispatcher, _ = make_dispatcher(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await dispatcher.convert(SAMPLE_REQUEST, TEMPLATES)

    @pytest.mark.asyncio
    async def test_slow_converter_times_out(self):
        registry = ConverterRegistry({InputDataType.HL7V2: SlowConverter(ProcessorSettings(timeout=0.1))})

        with pytest.raises(ConversionError) as exc_info:
            await asyncio.wait_for(ConversionDispatcher(registry).convert(SAMPLE_REQUEST, TEMPLATES), timeout=5)

        assert exc_info.value.kind == ErrorKind.CONVERT_TIMEOUT
        assert exc_info.value.message == "Data conversion operation timed out."

    @pytest.mark.asyncio
    async def test_real_converter_timeout(self):
        registry = build_converter_registry(Settings(operation_timeout=0.2))
        dispatcher = ConversionDispatcher(registry)
        slow = TemplateCollection.from_layer({
            "ADT_A01": "{% for i in range(100000) %}{% for j in range(100000) %}{{ j }}{% endfor %}{% endfor %}"
        })

        with pytest.raises(ConversionError) as exc_info:
            await dispatcher.convert(SAMPLE_REQUEST, slow)

        assert exc_info.value.kind == ErrorKind.CONVERT_TIMEOUT

    @pytest.mark.asyncio
    async def test_repeated_failures_are_identical(self):
        dispatcher = ConversionDispatcher(build_converter_registry(Settings()))
        request = SAMPLE_REQUEST.model_copy(update={"input_data": "MSH*"})

        kinds = []
        for _ in range(2):
            with pytest.raises(ConversionError) as exc_info:
                await dispatcher.convert(request, TEMPLATES)
            kinds.append((exc_info.value.kind, exc_info.value.message))

        assert kinds == [(ErrorKind.INPUT_PARSE_ERROR, "Unable to parse the inputData to Hl7v2 type.")] * 2
