from fastapi import FastAPI

from line_relay.config import settings
from line_relay.logging_config import setup_logging
from line_relay.routers import push, webhook

setup_logging(settings.log_level)

app = FastAPI(
    title="LINE Relay",
    description="Inbound event orchestrator for the LINE bot",
    version="0.1.0",
)

app.include_router(webhook.router)
app.include_router(push.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
