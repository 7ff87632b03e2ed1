"""Sending recorded requests through a fetcher."""

import logging

from ..proxy.client import Fetcher
from ..utils.errors import ProxyTransportError
from .history import History, fill_response, prepare_retry
from .state import HttpRequest, HttpResponse
from .steps import FlowStep

logger = logging.getLogger(__name__)


def network_error_response(error: Exception) -> HttpResponse:
    """Response recorded when a request never reached its target."""
    return HttpResponse(status=0, status_text="Network Error", body={"error": str(error)})


async def send_request(fetcher: Fetcher, request: HttpRequest) -> HttpResponse:
    """Send a request and convert the fetcher's response for the history.

    Raises:
        ProxyTransportError: If the request could not be completed
    """
    response = await fetcher.fetch(
        request.url,
        method=request.method,
        headers=dict(request.headers),
        body=request.body,
    )
    return HttpResponse(
        status=response.status,
        status_text=response.status_text,
        headers=dict(response.headers),
        body=response.body,
    )


async def execute_recorded(
    fetcher: Fetcher,
    history: History,
    step: FlowStep,
    request: HttpRequest,
) -> tuple[HttpResponse, History, ProxyTransportError | None]:
    """Execute a request whose pending entry sits at the end of the history.

    Transport failures are recorded as a status 0 response and returned
    instead of raised, so callers can decide how to surface them.

    Returns:
        Tuple of (response, updated history, transport error or None)
    """
    history = prepare_retry(history, step, request)
    try:
        response = await send_request(fetcher, request)
        error = None
    except ProxyTransportError as e:
        logger.warning(f"{request.method} {request.url} failed: {e}")
        response = network_error_response(e)
        error = e
    return response, fill_response(history, response), error
