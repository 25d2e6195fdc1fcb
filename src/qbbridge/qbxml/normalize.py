"""Normalization of response payloads before parsing.

Web Connector versions and SOAP toolkits disagree on how the qbXML
response is embedded in receiveResponseXML: raw, wrapped in a CDATA
section, entity-escaped, or a combination of these. normalize_payload
peels those layers until the text is plain XML.
"""

from __future__ import annotations

import re
from xml.sax.saxutils import unescape

MAX_ROUNDS = 5

_CDATA_WRAPPED = re.compile(r"^<!\[CDATA\[(.*)\]\]>$", re.DOTALL)
_CDATA_AFTER_PROLOG = re.compile(r"^((?:<\?[^>]*\?>\s*)+)<!\[CDATA\[(.*)\]\]>$", re.DOTALL)
_ELEMENT_START = re.compile(r"<[A-Za-z?!/]")
_EXTRA_ENTITIES = {"&quot;": '"', "&apos;": "'"}
_ESCAPED_LT = ("&lt;", "&amp;lt;")


def is_entity_escaped(text: str) -> bool:
    """Check whether markup in text is entity-escaped.

    True when the payload starts with ``&lt;`` (or ``&amp;lt;`` when
    escaped twice) or carries one with no literal element start anywhere.
    """
    if text.startswith(_ESCAPED_LT):
        return True
    return any(lt in text for lt in _ESCAPED_LT) and _ELEMENT_START.search(text) is None


def _strip_cdata(text: str) -> str:
    match = _CDATA_WRAPPED.match(text)
    if match:
        return match.group(1).strip()
    # Document wrapped in CDATA after an XML declaration; CDATA in values stays
    match = _CDATA_AFTER_PROLOG.match(text)
    if match:
        return match.group(1) + match.group(2).strip()
    return text


def normalize_payload(payload: str | bytes | None) -> str:
    """Return the payload as plain XML text.

    Args:
        payload: Raw response text as received from the agent.

    Returns:
        The unwrapped, unescaped payload (empty string for empty input).
    """
    if payload is None:
        return ""
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")

    text = payload.lstrip("\ufeff").strip()
    for _ in range(MAX_ROUNDS):
        previous = text
        text = _strip_cdata(text)
        if is_entity_escaped(text):
            text = unescape(text, _EXTRA_ENTITIES).strip()
        if text == previous:
            break
    return text
