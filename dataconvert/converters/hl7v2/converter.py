"""
HL7v2 -> FHIR converter.

Parses the message, renders the entry point template in a worker thread
and post-processes the output into a FHIR Bundle. Rendering is bounded
twice by the processor timeout: cooperatively inside the sandbox, and by
an outer deadline that abandons the worker if it stops responding.
"""
import asyncio
import threading
import time
from typing import Callable, Optional

from jinja2 import TemplateError, TemplateNotFound, TemplateSyntaxError

from dataconvert.converters.base import Converter, RenderFailureKind, RenderResult
from dataconvert.converters.postprocess import OutputError, postprocess_bundle
from dataconvert.converters.rendering import (
    RenderAbortedError,
    RenderTimeoutError,
    create_environment,
    render_template,
)
from dataconvert.models import InputDataType, TemplateCollection
from .parser import Hl7v2Message, Hl7v2ParseError, parse_hl7v2


class Hl7v2Converter(Converter):
    """
    Converts HL7 v2.x messages to FHIR Bundles.

    Usage:
        converter = Hl7v2Converter(ProcessorSettings(timeout=5.0))
        result = await converter.render(message, "ADT_A01", templates)

        if result.success:
            bundle_json = result.output
    """

    @property
    def input_data_type(self) -> InputDataType:
        return InputDataType.HL7V2

    async def render(
        self,
        input_data: str,
        entry_point_template: str,
        templates: TemplateCollection,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RenderResult:
        started = time.monotonic()

        try:
            message = parse_hl7v2(input_data)
        except Hl7v2ParseError as e:
            return RenderResult.fail(
                RenderFailureKind.PARSE_ERROR,
                "Unable to parse the inputData to Hl7v2 type.",
                cause=e
            )

        abandoned = threading.Event()

        def should_abort() -> bool:
            return abandoned.is_set() or (cancel_event is not None and cancel_event.is_set())

        try:
            output = await asyncio.wait_for(
                asyncio.to_thread(
                    self._render_sync, message, entry_point_template, templates, should_abort
                ),
                timeout=self.settings.timeout,
            )
        except (asyncio.TimeoutError, RenderTimeoutError) as e:
            return RenderResult.fail(
                RenderFailureKind.TIMEOUT,
                f"Data conversion exceeded the {self.settings.timeout}s time budget.",
                cause=e,
                template=entry_point_template
            )
        except TemplateSyntaxError as e:
            return RenderResult.fail(
                RenderFailureKind.INIT_ERROR,
                f"Template '{e.name or entry_point_template}' failed to compile: {e.message}",
                cause=e,
                template=entry_point_template
            )
        except TemplateNotFound as e:
            return RenderResult.fail(
                RenderFailureKind.RENDER_ERROR,
                f"Template '{e.name}' was not found in the template collection.",
                cause=e,
                template=entry_point_template
            )
        except RenderAbortedError as e:
            return RenderResult.fail(
                RenderFailureKind.RENDER_ERROR,
                "Data conversion was cancelled.",
                cause=e,
                template=entry_point_template
            )
        except (TemplateError, OutputError) as e:
            return RenderResult.fail(
                RenderFailureKind.RENDER_ERROR,
                str(e),
                cause=e,
                template=entry_point_template
            )
        except Exception as e:
            # Runtime errors raised from inside a template (bad arithmetic, wrong types, ...)
            return RenderResult.fail(
                RenderFailureKind.RENDER_ERROR,
                f"Template rendering failed: {e}",
                cause=e,
                template=entry_point_template
            )
        finally:
            # Stops a worker thread that outlived the outer deadline
            abandoned.set()

        return RenderResult.ok(
            output,
            template=entry_point_template,
            message_type=message.message_type,
            elapsed_ms=round((time.monotonic() - started) * 1000, 1)
        )

    def _render_sync(
        self,
        message: Hl7v2Message,
        entry_point_template: str,
        templates: TemplateCollection,
        should_abort: Callable[[], bool],
    ) -> str:
        env = create_environment(templates, self.settings.timeout, should_abort)
        rendered = render_template(env, entry_point_template, {"msg": message})
        return postprocess_bundle(rendered)
