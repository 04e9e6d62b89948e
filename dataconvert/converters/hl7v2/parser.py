"""
HL7 v2.x message parsing.

Validates the MSH header, parses the message with the ``hl7`` library and
exposes a small read-only view over the parsed tree (message -> segment ->
field) that templates navigate with HL7 numbering, e.g.
``msg.first('PID').field(5).component(1)``.
"""
import re
from typing import List, Optional

import hl7

SEGMENT_ID = re.compile(r"^[A-Z][A-Z0-9]{2}$")


class Hl7v2ParseError(ValueError):
    """Error parsing HL7 v2.x message."""
    pass


class Hl7v2Field:
    """
    One field of a segment; components and repetitions are 1-based.

    Wraps the repetitions of an ``hl7.Field``. A repetition is either a
    plain string (no component separators) or an ``hl7.Repetition``.
    """

    def __init__(self, repetitions: list, message: "Hl7v2Message", literal: bool = False):
        self._repetitions = repetitions
        self._message = message
        self._literal = literal

    @property
    def raw(self) -> str:
        return self._message.repetition_separator.join(str(rep) for rep in self._repetitions)

    @property
    def value(self) -> str:
        """Whole field, unescaped."""
        if self._literal:
            return self.raw
        return self._message.unescape(self.raw)

    @property
    def repetitions(self) -> List["Hl7v2Field"]:
        return [
            Hl7v2Field([rep], self._message, self._literal)
            for rep in self._repetitions if str(rep)
        ]

    def component(self, index: int = 1, repetition: int = 1) -> str:
        """
        Get a component of the field.

        Args:
            index: Component number (HL7 numbering, starts at 1)
            repetition: Repetition number (starts at 1)

        Returns:
            Unescaped component text, '' when absent
        """
        if repetition < 1 or repetition > len(self._repetitions):
            return ""
        rep = self._repetitions[repetition - 1]

        if isinstance(rep, str):
            # hl7 leaves a repetition without separators unsplit
            text = rep if index == 1 else ""
        elif 1 <= index <= len(rep):
            text = str(rep[index - 1])
        else:
            text = ""

        if self._literal:
            return text
        return self._message.unescape(text)

    def __str__(self) -> str:
        return self.component(1)

    def __bool__(self) -> bool:
        return bool(self.raw)


class Hl7v2Segment:
    """
    One segment. field(n) follows HL7 numbering.

    ``hl7`` stores the segment id at index 0 and, for MSH, the field
    separator and encoding characters at 1 and 2, so indexes map 1:1.
    """

    def __init__(self, segment: Optional[hl7.Segment], segment_id: str, message: "Hl7v2Message"):
        self._segment = segment
        self.id = segment_id
        self._message = message

    @property
    def raw(self) -> str:
        return str(self._segment) if self._segment is not None else ""

    @property
    def present(self) -> bool:
        return self._segment is not None

    def field(self, index: int) -> Hl7v2Field:
        if self._segment is None or index < 1 or index >= len(self._segment):
            return Hl7v2Field([], self._message)

        node = self._segment[index]
        if self.id == "MSH" and index in (1, 2):
            # MSH-1 and MSH-2 hold the delimiters themselves
            return Hl7v2Field([str(node)], self._message, literal=True)
        repetitions = list(node) if isinstance(node, list) else [node]
        return Hl7v2Field(repetitions, self._message)

    def __getitem__(self, index: int) -> Hl7v2Field:
        return self.field(index)

    def __len__(self) -> int:
        return max(len(self._segment) - 1, 0) if self._segment is not None else 0


class Hl7v2Message:
    """Parsed HL7 v2.x message"""

    def __init__(self, text: str, parsed: hl7.Message, field_separator: str, encoding_characters: str):
        self.text = text
        self.parsed = parsed
        self.field_separator = field_separator
        self.component_separator = encoding_characters[0]
        self.repetition_separator = encoding_characters[1]
        self.escape_character = encoding_characters[2]
        self.subcomponent_separator = encoding_characters[3]
        self.segments = [self._wrap(segment) for segment in parsed]

    def _wrap(self, segment: hl7.Segment) -> Hl7v2Segment:
        return Hl7v2Segment(segment, str(segment[0]), self)

    def unescape(self, value: str) -> str:
        if not value or self.escape_character not in value:
            return value
        return self.parsed.unescape(value)

    def first(self, segment_id: str) -> Hl7v2Segment:
        """First segment with the id, or an empty segment (present == False)."""
        try:
            return self._wrap(self.parsed.segment(segment_id))
        except KeyError:
            return Hl7v2Segment(None, segment_id, self)

    def all(self, segment_id: str) -> List[Hl7v2Segment]:
        try:
            return [self._wrap(segment) for segment in self.parsed.segments(segment_id)]
        except KeyError:
            return []

    @property
    def header(self) -> Hl7v2Segment:
        return self.segments[0]

    @property
    def message_type(self) -> str:
        """Message type as used for template names, e.g. 'ADT_A01'."""
        msh9 = self.header.field(9)
        code, event = msh9.component(1), msh9.component(2)
        return f"{code}_{event}" if event else code

    @property
    def control_id(self) -> str:
        return self.header.field(10).component(1)

    @property
    def version(self) -> str:
        return self.header.field(12).component(1)


def normalize_segments(text: str) -> str:
    """Use carriage returns as segment terminators and drop blank lines."""
    lines = re.split(r"\r\n|\n|\r", text)
    return "\r".join(line for line in lines if line.strip())


def _validate_header(text: str) -> tuple:
    if not text.startswith("MSH"):
        raise Hl7v2ParseError("The message does not start with an MSH segment")
    if len(text) < 8:
        raise Hl7v2ParseError("The MSH segment is truncated")

    field_separator = text[3]
    if field_separator.isalnum() or field_separator.isspace():
        raise Hl7v2ParseError("Invalid field separator in MSH-1")

    end = text.find(field_separator, 4)
    if end == -1:
        raise Hl7v2ParseError("The MSH segment is truncated")

    encoding_characters = text[4:end]
    if not 4 <= len(encoding_characters) <= 5:
        raise Hl7v2ParseError("Invalid encoding characters in MSH-2")
    if any(c.isalnum() or c.isspace() for c in encoding_characters):
        raise Hl7v2ParseError("Invalid encoding characters in MSH-2")
    if len(set(encoding_characters)) != len(encoding_characters) or field_separator in encoding_characters:
        raise Hl7v2ParseError("Duplicate delimiters in MSH-1/MSH-2")

    return field_separator, encoding_characters


def parse_hl7v2(text: Optional[str]) -> Hl7v2Message:
    """
    Parse and validate an HL7 v2.x message.

    Args:
        text: Raw message; segments may be separated by CR, LF or CRLF

    Returns:
        Hl7v2Message view over the parsed message

    Raises:
        Hl7v2ParseError: If the message is empty or malformed
    """
    if not text or not text.strip():
        raise Hl7v2ParseError("Empty message")

    normalized = normalize_segments(text.strip())
    field_separator, encoding_characters = _validate_header(normalized)

    try:
        parsed = hl7.parse(normalized)
    except Exception as e:
        raise Hl7v2ParseError(f"Failed to parse HL7 message: {e}") from e

    for segment in parsed:
        segment_id = str(segment[0])
        if not SEGMENT_ID.match(segment_id):
            raise Hl7v2ParseError(f"Invalid segment id '{segment_id[:8]}'")

    message = Hl7v2Message(normalized, parsed, field_separator, encoding_characters[:4])
    if not message.header.field(9).component(1):
        raise Hl7v2ParseError("Missing message type in MSH-9")
    return message
