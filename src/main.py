"""Entry point for the Twilio to Azure OpenAI realtime relay."""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from api.routes import router
from config.settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Realtime Barista Relay",
    description="Bridges Twilio media streams to an Azure OpenAI realtime session with knowledge-base tools.",
)
app.include_router(router)


def run() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
