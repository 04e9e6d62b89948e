"""
Template rendering over a TemplateCollection.

Templates are Jinja2 templates rendered in a sandbox. The sandbox checks
the render deadline and an abort flag on every attribute lookup, call and
output chunk, so a runaway template stops itself once its budget is spent.
"""
import re
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from jinja2 import BaseLoader, TemplateNotFound
from jinja2.sandbox import SandboxedEnvironment

from dataconvert.models import TemplateCollection

# Fixed namespace so generated ids only depend on their seed
ID_NAMESPACE = uuid.UUID("6c1e3f0a-9a53-4b6e-8f3e-2f0a5a1d7c42")

HL7_DATETIME = re.compile(
    r"^(?P<year>\d{4})(?P<month>\d{2})?(?P<day>\d{2})?"
    r"(?:(?P<hour>\d{2})(?P<minute>\d{2})?(?P<second>\d{2})?(?:\.(?P<fraction>\d{1,4}))?)?"
    r"(?P<tz>[+\-]\d{4})?$"
)

GENDER_CODES = {"M": "male", "F": "female", "O": "other", "U": "unknown", "A": "other", "N": "unknown"}

OBSERVATION_STATUS_CODES = {
    "F": "final",
    "P": "preliminary",
    "C": "corrected",
    "X": "cancelled",
    "W": "entered-in-error",
    "R": "registered",
    "I": "registered",
    "S": "preliminary",
    "D": "entered-in-error",
}

CODE_SYSTEMS = {
    "LN": "http://loinc.org",
    "LOINC": "http://loinc.org",
    "SCT": "http://snomed.info/sct",
    "SNM": "http://snomed.info/sct",
    "I10": "http://hl7.org/fhir/sid/icd-10",
    "RXNORM": "http://www.nlm.nih.gov/research/umls/rxnorm",
    "UCUM": "http://unitsofmeasure.org",
}


class RenderTimeoutError(Exception):
    """Rendering ran past its time budget."""
    pass


class RenderAbortedError(Exception):
    """Rendering was abandoned by its caller."""
    pass


class TemplateCollectionLoader(BaseLoader):
    """Loads templates by name from a layered TemplateCollection (last layer wins)."""

    def __init__(self, templates: TemplateCollection):
        self.templates = templates

    def get_source(self, environment, template):
        source = self.templates.get(template)
        if source is None:
            raise TemplateNotFound(template)
        # Collections are request scoped and never change underneath us
        return source, None, lambda: True

    def list_templates(self) -> List[str]:
        return sorted(self.templates.names())


class BoundedSandboxedEnvironment(SandboxedEnvironment):
    """Sandboxed environment that enforces a wall-clock deadline."""

    def __init__(self, deadline: float, should_abort: Optional[Callable[[], bool]] = None, **options):
        super().__init__(**options)
        self.deadline = deadline
        self.should_abort = should_abort

    def check_budget(self) -> None:
        if time.monotonic() > self.deadline:
            raise RenderTimeoutError("Template rendering exceeded its time budget")
        if self.should_abort is not None and self.should_abort():
            raise RenderAbortedError("Template rendering was abandoned")

    def getattr(self, obj, attribute):
        self.check_budget()
        return super().getattr(obj, attribute)

    def call(__self, __context, __obj, *args, **kwargs):
        __self.check_budget()
        return super().call(__context, __obj, *args, **kwargs)


def _parse_hl7_datetime(value: Any) -> Optional[re.Match]:
    if value is None:
        return None
    return HL7_DATETIME.match(str(value).strip())


def to_fhir_date(value: Any) -> str:
    """HL7 DT/DTM ('19870624000000') -> FHIR date ('1987-06-24'); '' if unparsable."""
    match = _parse_hl7_datetime(value)
    if not match:
        return ""
    parts = [match.group("year")]
    if match.group("month"):
        parts.append(match.group("month"))
        if match.group("day"):
            parts.append(match.group("day"))
    return "-".join(parts)


def to_fhir_datetime(value: Any) -> str:
    """
    HL7 DTM -> FHIR dateTime.

    A value with a time but no offset is taken as UTC, FHIR requires a
    zone whenever hours are given.
    """
    match = _parse_hl7_datetime(value)
    if not match:
        return ""
    date = to_fhir_date(value)
    if not match.group("hour") or not match.group("day"):
        return date

    time_part = f"{match.group('hour')}:{match.group('minute') or '00'}:{match.group('second') or '00'}"
    if match.group("fraction"):
        time_part += f".{match.group('fraction')}"

    tz = match.group("tz")
    zone = f"{tz[:3]}:{tz[3:]}" if tz else "Z"
    return f"{date}T{time_part}{zone}"


def to_fhir_gender(value: Any) -> str:
    if not value:
        return ""
    return GENDER_CODES.get(str(value).strip().upper(), "unknown")


def to_observation_status(value: Any) -> str:
    return OBSERVATION_STATUS_CODES.get(str(value or "").strip().upper(), "final")


def to_code_system(value: Any) -> str:
    return CODE_SYSTEMS.get(str(value or "").strip().upper(), "")


def to_number(value: Any) -> Optional[float]:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def generate_id(*seeds: Any) -> str:
    """Deterministic resource id: the same seeds always give the same uuid."""
    return str(uuid.uuid5(ID_NAMESPACE, "|".join(str(seed) for seed in seeds)))


FILTERS: Dict[str, Callable] = {
    "to_fhir_date": to_fhir_date,
    "to_fhir_datetime": to_fhir_datetime,
    "to_fhir_gender": to_fhir_gender,
    "to_observation_status": to_observation_status,
    "to_code_system": to_code_system,
    "to_number": to_number,
}


def create_environment(
    templates: TemplateCollection,
    timeout: float,
    should_abort: Optional[Callable[[], bool]] = None,
) -> BoundedSandboxedEnvironment:
    """
    Build a sandboxed environment for one render.

    Args:
        templates: Collection every template name is resolved against
        timeout: Budget in seconds, counted from now
        should_abort: Polled during rendering; True stops the render
    """
    env = BoundedSandboxedEnvironment(
        deadline=time.monotonic() + timeout,
        should_abort=should_abort,
        loader=TemplateCollectionLoader(templates),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters.update(FILTERS)
    env.globals["generate_id"] = generate_id
    return env


def render_template(
    env: BoundedSandboxedEnvironment,
    entry_point_template: str,
    context: Dict[str, Any],
) -> str:
    """
    Render the entry point template chunk by chunk, checking the budget
    between chunks.

    Raises:
        TemplateNotFound: Entry point (or an included template) is missing
        TemplateSyntaxError: A template failed to compile
        RenderTimeoutError: The deadline passed
        RenderAbortedError: The caller abandoned the render
    """
    template = env.get_template(entry_point_template)
    chunks = []
    for chunk in template.generate(**context):
        env.check_budget()
        chunks.append(chunk)
    return "".join(chunks)
