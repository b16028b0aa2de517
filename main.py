# ─────────────────────────────────────────────────────────────────
# main.py - Application Entry Point
#
# Builds the FastAPI app, plugs in the routers and starts the online
# sweep in the background for as long as the app is running.
#
# Run with:  uvicorn main:app --reload
# ─────────────────────────────────────────────────────────────────

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from config import settings
from handlers import dispatcher
from routes import devices, notifications, registrations
from timer import run_online_sweep

logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(
        run_online_sweep(dispatcher, settings.sweep_interval_seconds)
    )
    logger.info("🚀 Safety Pulse API started")
    try:
        yield
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


app = FastAPI(
    title="Safety Pulse API",
    description="Live alert and online status tracking for smoke, gas and climate sensors",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(devices.router)
app.include_router(registrations.router)
app.include_router(notifications.router)


# ─────────────────────────────────────────────────────────────────
# GET / - Health check
# ─────────────────────────────────────────────────────────────────

@app.get("/")
def root():
    return {
        "message": "Safety Pulse API is running",
        "version": "1.0.0",
        "docs": "/docs"
    }
