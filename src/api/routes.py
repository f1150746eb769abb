"""HTTP and WebSocket routes for the Twilio media stream relay."""

from __future__ import annotations

import logging
from xml.sax.saxutils import quoteattr

from fastapi import APIRouter, Depends, Request, Response, WebSocket

from api.dependencies import get_session_connector, get_tool_router
from api.schemas import RootResponse
from config.settings import Settings, get_settings
from prompts.loader import load_prompt
from realtime.translator import Connector
from relay.orchestrator import CallRelay
from tools.router import ToolRouter

LOGGER = logging.getLogger(__name__)

router = APIRouter()

GREETING = (
    "Please wait while we connect your call to the Starbucks AI. voice assistant, "
    "powered by Twilio and the Azure Open-AI Realtime API."
)
READY = "O.K. you can start talking!"


def _twiml_response(xml: str) -> Response:
    return Response(content=xml, media_type="application/xml")


def _twiml_connect_stream(*, stream_url: str) -> str:
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        f"<Say>{GREETING}</Say>"
        "<Pause length=\"1\"/>"
        f"<Say>{READY}</Say>"
        "<Connect>"
        f"<Stream url={quoteattr(stream_url)} />"
        "</Connect>"
        "</Response>"
    )


@router.get("/", response_model=RootResponse)
async def index() -> RootResponse:
    return RootResponse(message="Twilio Media Stream Server is running!")


@router.api_route("/incoming-call", methods=["GET", "POST"])
async def incoming_call(request: Request) -> Response:
    host = request.headers.get("host") or request.url.netloc
    stream_url = f"wss://{host}/media-stream"
    LOGGER.info("Incoming call; directing media stream to %s", stream_url)
    return _twiml_response(_twiml_connect_stream(stream_url=stream_url))


@router.websocket("/media-stream")
async def media_stream(
    websocket: WebSocket,
    settings: Settings = Depends(get_settings),
    tool_router: ToolRouter = Depends(get_tool_router),
    connector: Connector | None = Depends(get_session_connector),
) -> None:
    await websocket.accept()
    relay = CallRelay(
        websocket,
        settings,
        tool_router,
        instructions=load_prompt(settings.system_prompt_file),
        connector=connector,
    )
    await relay.run()
