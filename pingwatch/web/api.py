from __future__ import annotations

import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from pingwatch.config import load_settings
from pingwatch.engine import Monitor
from pingwatch.log import get_logger, setup_logging
from pingwatch.models import DATE_FORMAT, NotificationToggle

logger = get_logger("api")

NO_DATA = "No data available for this device and date."


def create_app(monitor: Optional[Monitor] = None, run_loop: bool = True) -> FastAPI:
    """Build the HTTP API around ``monitor``.

    With ``run_loop`` the scan loop is started and stopped with the app.
    Called without a monitor (``uvicorn --factory``) it loads the settings
    from the usual config files.
    """
    if monitor is None:
        setup_logging()
        monitor = Monitor.from_settings(load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if run_loop:
            monitor.start()
        try:
            yield
        finally:
            if run_loop:
                monitor.stop()

    app = FastAPI(title="pingwatch", docs_url="/docs", redoc_url="/redoc", lifespan=lifespan)
    app.state.monitor = monitor

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        elapsed = (time.monotonic() - start) * 1000
        logger.info("%s %s %d (%.1fms)", request.method, request.url.path,
                    response.status_code, elapsed)
        return response

    # --- Devices & status ---

    @app.get("/devices")
    def get_devices():
        return {ip: device.model_dump() for ip, device in monitor.devices.items()}

    @app.get("/status")
    def get_status():
        return {ip: status.model_dump() for ip, status in monitor.scanner.get_statuses().items()}

    # --- Uptime ---

    @app.get("/uptime/{ip}/{date}")
    def get_uptime(ip: str, date: str):
        try:
            datetime.strptime(date, DATE_FORMAT)
        except ValueError:
            raise HTTPException(status_code=400, detail="date must be YYYY-MM-DD")
        report = monitor.uptime_report(ip, date)
        if report is None:
            return {"error": NO_DATA}
        return report.model_dump()

    @app.get("/weekly/{ip}")
    def get_weekly(ip: str):
        return monitor.weekly(ip)

    # --- Notifications ---

    @app.get("/notifications")
    def get_notifications():
        return {"enabled": monitor.notifications_enabled}

    @app.post("/notifications")
    async def set_notifications(request: Request):
        try:
            toggle = NotificationToggle.model_validate(await request.json())
        except (ValueError, ValidationError):
            return JSONResponse(status_code=400, content={"error": "enabled must be a boolean value."})
        return {"enabled": monitor.set_notifications_enabled(toggle.enabled)}

    return app
