"""WSDL of the QBWebConnectorSvc service.

The document is fixed apart from the service address. Web Connector only
needs it to self-configure; it advertises exactly the eight methods the
dispatcher answers.
"""

from __future__ import annotations

from xml.sax.saxutils import quoteattr

QBWC_NS = "http://developer.intuit.com/"

# Request parameters per method: (name, xsd type, minOccurs)
METHOD_PARAMETERS: dict[str, list[tuple[str, str, int]]] = {
    "serverVersion": [],
    "clientVersion": [("strVersion", "s:string", 0)],
    "authenticate": [("strUserName", "s:string", 0), ("strPassword", "s:string", 0)],
    "sendRequestXML": [
        ("ticket", "s:string", 0),
        ("strHCPResponse", "s:string", 0),
        ("strCompanyFileName", "s:string", 0),
        ("qbXMLCountry", "s:string", 0),
        ("qbXMLMajorVers", "s:int", 1),
        ("qbXMLMinorVers", "s:int", 1),
    ],
    "receiveResponseXML": [
        ("ticket", "s:string", 0),
        ("response", "s:string", 0),
        ("hresult", "s:string", 0),
        ("message", "s:string", 0),
    ],
    "connectionError": [
        ("ticket", "s:string", 0),
        ("hresult", "s:string", 0),
        ("message", "s:string", 0),
    ],
    "closeConnection": [("ticket", "s:string", 0)],
    "getLastError": [("ticket", "s:string", 0)],
}

# Result element type and minOccurs per method
METHOD_RESULTS: dict[str, tuple[str, int]] = {
    "serverVersion": ("s:string", 0),
    "clientVersion": ("s:string", 0),
    "authenticate": ("tns:ArrayOfString", 0),
    "sendRequestXML": ("s:string", 0),
    "receiveResponseXML": ("s:int", 1),
    "connectionError": ("s:string", 0),
    "closeConnection": ("s:string", 0),
    "getLastError": ("s:string", 0),
}


def _element(name: str, fields: list[tuple[str, str, int]]) -> str:
    if not fields:
        return f'      <s:element name="{name}">\n        <s:complexType />\n      </s:element>'
    rows = "\n".join(
        f'            <s:element minOccurs="{min_occurs}" maxOccurs="1" name="{field}" type="{xsd}" />'
        for field, xsd, min_occurs in fields
    )
    return (
        f'      <s:element name="{name}">\n'
        "        <s:complexType>\n"
        "          <s:sequence>\n"
        f"{rows}\n"
        "          </s:sequence>\n"
        "        </s:complexType>\n"
        "      </s:element>"
    )


def _schema() -> str:
    elements = []
    for method, params in METHOD_PARAMETERS.items():
        result_type, result_min = METHOD_RESULTS[method]
        elements.append(_element(method, params))
        elements.append(_element(f"{method}Response", [(f"{method}Result", result_type, result_min)]))
    elements.append(
        '      <s:complexType name="ArrayOfString">\n'
        "        <s:sequence>\n"
        '          <s:element minOccurs="0" maxOccurs="unbounded" name="string" nillable="true" type="s:string" />\n'
        "        </s:sequence>\n"
        "      </s:complexType>"
    )
    return "\n".join(elements)


def _messages() -> str:
    return "\n".join(
        f'  <message name="{method}Soap{direction}">\n'
        f'    <part name="parameters" element="tns:{method}{suffix}" />\n'
        "  </message>"
        for method in METHOD_PARAMETERS
        for direction, suffix in (("In", ""), ("Out", "Response"))
    )


def _port_type() -> str:
    return "\n".join(
        f'    <operation name="{method}">\n'
        f'      <input message="tns:{method}SoapIn" />\n'
        f'      <output message="tns:{method}SoapOut" />\n'
        "    </operation>"
        for method in METHOD_PARAMETERS
    )


def _binding() -> str:
    return "\n".join(
        f'    <operation name="{method}">\n'
        f'      <soap:operation soapAction="{QBWC_NS}{method}" style="document" />\n'
        '      <input><soap:body use="literal" /></input>\n'
        '      <output><soap:body use="literal" /></output>\n'
        "    </operation>"
        for method in METHOD_PARAMETERS
    )


def render_wsdl(service_url: str) -> str:
    """Render the WSDL with the given service address.

    Args:
        service_url: Absolute URL of the SOAP endpoint.

    Returns:
        The WSDL document.
    """
    return f"""<?xml version="1.0" encoding="utf-8"?>
<definitions xmlns="http://schemas.xmlsoap.org/wsdl/"
             xmlns:soap="http://schemas.xmlsoap.org/wsdl/soap/"
             xmlns:s="http://www.w3.org/2001/XMLSchema"
             xmlns:tns="{QBWC_NS}"
             targetNamespace="{QBWC_NS}">
  <types>
    <s:schema elementFormDefault="qualified" targetNamespace="{QBWC_NS}">
{_schema()}
    </s:schema>
  </types>

{_messages()}

  <portType name="QBWebConnectorSvcSoap">
{_port_type()}
  </portType>

  <binding name="QBWebConnectorSvcSoap" type="tns:QBWebConnectorSvcSoap">
    <soap:binding transport="http://schemas.xmlsoap.org/soap/http" />
{_binding()}
  </binding>

  <service name="QBWebConnectorSvc">
    <port name="QBWebConnectorSvcSoap" binding="tns:QBWebConnectorSvcSoap">
      <soap:address location={quoteattr(service_url)} />
    </port>
  </service>
</definitions>
"""
