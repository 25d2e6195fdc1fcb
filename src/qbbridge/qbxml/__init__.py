"""qbXML codec - Request builder, payload normalization and response parser."""

from qbbridge.qbxml.builder import (
    QBXMLBuildError,
    build_request,
    escape_xml,
    format_qb_amount,
    format_qb_date,
    wrap_qbxml,
)
from qbbridge.qbxml.normalize import normalize_payload
from qbbridge.qbxml.parser import PARSE_ERROR, ParseResult, parse_response

__all__ = [
    # Builder
    "QBXMLBuildError",
    "build_request",
    "escape_xml",
    "format_qb_amount",
    "format_qb_date",
    "wrap_qbxml",
    # Normalization
    "normalize_payload",
    # Parser
    "PARSE_ERROR",
    "ParseResult",
    "parse_response",
]
