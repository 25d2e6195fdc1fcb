"""SOAP dispatcher for the QuickBooks Web Connector.

Detects which of the eight Web Connector methods an envelope invokes,
extracts its parameters, routes it to the session manager and wraps the
result in a SOAP 1.1 response envelope.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING
from xml.sax.saxutils import unescape

from lxml import etree

from qbbridge.server.wsdl import QBWC_NS

if TYPE_CHECKING:
    from qbbridge.core.config import BridgeConfig
    from qbbridge.server.sessions import SessionManager

logger = logging.getLogger(__name__)

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"

# Order matters for the substring fallback
METHODS = (
    "authenticate",
    "serverVersion",
    "clientVersion",
    "sendRequestXML",
    "receiveResponseXML",
    "connectionError",
    "closeConnection",
    "getLastError",
)

_METHODS_BY_LOWER = {method.lower(): method for method in METHODS}


@dataclass(frozen=True)
class SoapRequest:
    """A decoded inbound envelope."""

    method: str | None
    params: dict[str, str]


@dataclass(frozen=True)
class SoapReply:
    """Serialized envelope and the HTTP status to send it with."""

    content: bytes
    status_code: int = 200


# === Decoding ===


def _inner_text(el: etree._Element) -> str:
    """Text content of a parameter, keeping embedded markup as text."""
    if len(el) == 0:
        return el.text or ""
    parts = [el.text or ""]
    parts.extend(etree.tostring(child, encoding="unicode") for child in el)
    return "".join(parts)


def _parse_envelope(body: bytes) -> SoapRequest | None:
    parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)
    try:
        root = etree.fromstring(body, parser)
    except etree.XMLSyntaxError:
        return None

    body_el = next(
        (el for el in root.iter() if isinstance(el.tag, str) and etree.QName(el).localname == "Body"),
        None,
    )
    if body_el is None:
        return None

    for call in body_el:
        if not isinstance(call.tag, str):
            continue
        name = etree.QName(call).localname
        params = {
            etree.QName(param).localname: _inner_text(param)
            for param in call
            if isinstance(param.tag, str)
        }
        return SoapRequest(method=_METHODS_BY_LOWER.get(name.lower()), params=params)
    return None


def detect_method(text: str) -> str | None:
    """Find a method name anywhere in the text (case-insensitive)."""
    lowered = text.lower()
    for method in METHODS:
        if method.lower() in lowered:
            return method
    return None


def extract_value(text: str, name: str) -> str:
    """Value of a parameter element, prefixed or not.

    Used only when the envelope is not well-formed XML.
    """
    pattern = rf"<(?:[\w.-]+:)?{re.escape(name)}(?:\s[^>]*)?>(.*?)</(?:[\w.-]+:)?{re.escape(name)}>"
    match = re.search(pattern, text, re.DOTALL)
    if match is None:
        return ""
    return unescape(match.group(1), {"&quot;": '"', "&apos;": "'"})


def decode_request(body: bytes | str) -> SoapRequest:
    """Decode an inbound envelope.

    The envelope is parsed with lxml and the first Body child names the
    method. Malformed envelopes fall back to a substring scan.
    """
    raw = body.encode("utf-8") if isinstance(body, str) else body
    request = _parse_envelope(raw)
    if request is not None:
        return request

    text = raw.decode("utf-8", errors="replace")
    method = detect_method(text)
    names = ("ticket", "strUserName", "strPassword", "strVersion", "response", "hresult", "message")
    params = {name: extract_value(text, name) for name in names}
    return SoapRequest(method=method, params=params)


# === Encoding ===


def build_response(method: str, result: str | list[str]) -> bytes:
    """Wrap a method result in a SOAP response envelope.

    Args:
        method: Method name.
        result: A string, or a list of strings for ArrayOfString results.

    Returns:
        Serialized envelope.
    """
    envelope = etree.Element(f"{{{SOAP_NS}}}Envelope", nsmap={"soap": SOAP_NS})
    body = etree.SubElement(envelope, f"{{{SOAP_NS}}}Body")
    response = etree.SubElement(body, f"{{{QBWC_NS}}}{method}Response", nsmap={None: QBWC_NS})
    result_el = etree.SubElement(response, f"{{{QBWC_NS}}}{method}Result")

    if isinstance(result, list):
        for value in result:
            string_el = etree.SubElement(result_el, f"{{{QBWC_NS}}}string")
            string_el.text = value
    else:
        result_el.text = result

    return etree.tostring(envelope, xml_declaration=True, encoding="utf-8")


def build_fault(fault_code: str, fault_string: str) -> bytes:
    """Build a SOAP fault envelope."""
    envelope = etree.Element(f"{{{SOAP_NS}}}Envelope", nsmap={"soap": SOAP_NS})
    body = etree.SubElement(envelope, f"{{{SOAP_NS}}}Body")
    fault = etree.SubElement(body, f"{{{SOAP_NS}}}Fault")
    etree.SubElement(fault, "faultcode").text = fault_code
    etree.SubElement(fault, "faultstring").text = fault_string
    return etree.tostring(envelope, xml_declaration=True, encoding="utf-8")


# === Dispatch ===

# Result returned when a method handler fails unexpectedly
SAFE_RESULTS: dict[str, str | list[str]] = {
    "serverVersion": "",
    "clientVersion": "",
    "authenticate": ["", "nvu"],
    "sendRequestXML": "",
    "receiveResponseXML": "-1",
    "connectionError": "done",
    "closeConnection": "OK",
    "getLastError": "",
}


class QBWCDispatcher:
    """Route Web Connector calls to the session manager.

    Args:
        sessions: Session manager.
        config: Bridge configuration (server version).
    """

    def __init__(self, sessions: SessionManager, config: BridgeConfig) -> None:
        self._sessions = sessions
        self._config = config
        self._handlers: dict[str, Callable[[dict[str, str]], str | list[str]]] = {
            "serverVersion": self._server_version,
            "clientVersion": self._client_version,
            "authenticate": self._authenticate,
            "sendRequestXML": self._send_request_xml,
            "receiveResponseXML": self._receive_response_xml,
            "connectionError": self._connection_error,
            "closeConnection": self._close_connection,
            "getLastError": self._get_last_error,
        }

    def handle(self, body: bytes | str) -> SoapReply:
        """Answer one SOAP call.

        Unknown methods get a client fault. A failing handler still
        answers with a well-formed envelope carrying a safe result.
        """
        try:
            request = decode_request(body)
            if request.method is None:
                logger.warning("Unknown SOAP method")
                return SoapReply(build_fault("soap:Client", "Unknown method"), 500)

            logger.info("QBWC method: %s", request.method)
            try:
                result = self._handlers[request.method](request.params)
            except Exception:
                logger.exception("Error handling %s", request.method)
                result = SAFE_RESULTS[request.method]
            return SoapReply(build_response(request.method, result))
        except Exception as e:
            logger.exception("Error processing SOAP request")
            return SoapReply(build_fault("soap:Server", f"Internal error: {e}"), 500)

    def _server_version(self, params: dict[str, str]) -> str:
        return self._config.server_version

    def _client_version(self, params: dict[str, str]) -> str:
        # Accept every client version
        logger.info("Web Connector version %s", params.get("strVersion", ""))
        return ""

    def _authenticate(self, params: dict[str, str]) -> list[str]:
        username = params.get("strUserName", "")
        password = params.get("strPassword", "")
        logger.info("Authentication attempt for %s", username)
        result = self._sessions.authenticate(username, password)
        return [result.ticket, result.status]

    def _send_request_xml(self, params: dict[str, str]) -> str:
        return self._sessions.request_xml(params.get("ticket", ""))

    def _receive_response_xml(self, params: dict[str, str]) -> str:
        percent = self._sessions.receive_response(
            params.get("ticket", ""),
            params.get("response", ""),
            params.get("hresult", "").strip(),
            params.get("message", ""),
        )
        return str(percent)

    def _connection_error(self, params: dict[str, str]) -> str:
        self._sessions.connection_error(
            params.get("ticket", ""),
            params.get("hresult", "").strip(),
            params.get("message", ""),
        )
        # Never prompt the user to retry
        return "done"

    def _close_connection(self, params: dict[str, str]) -> str:
        self._sessions.close(params.get("ticket", ""))
        return "OK"

    def _get_last_error(self, params: dict[str, str]) -> str:
        return self._sessions.last_error(params.get("ticket", ""))
