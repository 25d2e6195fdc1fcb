"""Web Connector SOAP endpoint."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.concurrency import run_in_threadpool

from qbbridge.core.config import BridgeConfig
from qbbridge.server.api.deps import get_config, get_dispatcher
from qbbridge.server.soap import METHODS, QBWCDispatcher
from qbbridge.server.wsdl import render_wsdl

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/qbwc", tags=["qbwc"])

XML_CONTENT_TYPES = ("text/xml", "application/soap+xml", "application/xml")
XML_MEDIA_TYPE = "text/xml; charset=utf-8"


def _service_url(request: Request, config: BridgeConfig) -> str:
    if config.public_url:
        return f"{config.public_url}/qbwc"
    return f"{str(request.base_url).rstrip('/')}/qbwc"


@router.post("")
async def soap_endpoint(
    request: Request,
    dispatcher: QBWCDispatcher = Depends(get_dispatcher),
) -> Response:
    """Answer one Web Connector SOAP call."""
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type not in XML_CONTENT_TYPES:
        logger.warning("Rejected SOAP call with content type %r", content_type)
        return Response(
            content="Content-Type must be text/xml or application/soap+xml",
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            media_type="text/plain",
        )

    body = await request.body()
    if not body.strip():
        return Response(
            content="Empty request body",
            status_code=status.HTTP_400_BAD_REQUEST,
            media_type="text/plain",
        )

    reply = await run_in_threadpool(dispatcher.handle, body)
    return Response(content=reply.content, status_code=reply.status_code, media_type=XML_MEDIA_TYPE)


@router.get("", response_model=None)
def service_description(
    request: Request,
    config: BridgeConfig = Depends(get_config),
) -> Response | dict[str, Any]:
    """Serve the WSDL (?wsdl) or a JSON description of the service."""
    service_url = _service_url(request, config)
    if "wsdl" in {key.lower() for key in request.query_params}:
        return Response(content=render_wsdl(service_url), media_type=XML_MEDIA_TYPE)

    return {
        "service": "QBWebConnectorSvc",
        "version": config.server_version,
        "endpoint": service_url,
        "wsdl": f"{service_url}?wsdl",
        "methods": list(METHODS),
        "secure": config.is_secure,
    }
