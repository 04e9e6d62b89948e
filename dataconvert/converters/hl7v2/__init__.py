"""HL7 v2.x converter"""
from .converter import Hl7v2Converter
from .parser import Hl7v2Message, Hl7v2ParseError, parse_hl7v2

__all__ = [
    "Hl7v2Converter",
    "Hl7v2Message",
    "Hl7v2ParseError",
    "parse_hl7v2",
]
