from __future__ import annotations

import logging
import os
from typing import Any, Callable

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from notioncal.config_manager import SECRET_FIELDS, ConfigManager
from notioncal.models import AppConfig
from notioncal.scheduler import SyncScheduler
from notioncal.sync_engine import SyncEngine

logger = logging.getLogger(__name__)


class ConfigUpdateRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


class AppContext:
    def __init__(
        self,
        config_path: str,
        engine_factory: Callable[[AppConfig], SyncEngine] = SyncEngine,
    ) -> None:
        self.config_manager = ConfigManager(config_path)
        self.engine_factory = engine_factory
        self.scheduler = SyncScheduler(self.config_manager, engine_factory)


def _sanitize_config_payload(payload: dict[str, Any], current: dict[str, Any]) -> dict[str, Any]:
    sanitized = dict(payload)
    for section_name, key in SECRET_FIELDS:
        section = sanitized.get(section_name)
        if not isinstance(section, dict):
            continue
        secret = section.get(key)
        if secret is not None:
            secret_text = str(secret).strip()
            if secret_text in {"", "***"}:
                if str(current.get(section_name, {}).get(key, "")):
                    section.pop(key, None)
                else:
                    section[key] = ""
        if not section:
            sanitized.pop(section_name, None)
    return sanitized


def create_app(engine_factory: Callable[[AppConfig], SyncEngine] = SyncEngine) -> FastAPI:
    config_path = os.getenv("NOTIONCAL_CONFIG_PATH", "config.yaml")
    context = AppContext(config_path=config_path, engine_factory=engine_factory)

    app = FastAPI(title="notioncal", version="0.1.0")
    app.state.context = context

    @app.on_event("startup")
    def _startup() -> None:
        app.state.context.scheduler.start()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        app.state.context.scheduler.stop()

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        return app.state.context.config_manager.masked()

    @app.put("/api/config")
    def put_config(request: ConfigUpdateRequest) -> dict[str, Any]:
        if not isinstance(request.payload, dict):
            raise HTTPException(status_code=400, detail="payload must be an object")
        current = app.state.context.config_manager.load().to_dict()
        sanitized_payload = _sanitize_config_payload(request.payload, current)
        app.state.context.config_manager.update(sanitized_payload)
        return {
            "message": "config updated",
            "config": app.state.context.config_manager.masked(),
        }

    @app.post("/api/sync/run")
    def trigger_sync() -> dict[str, str]:
        app.state.context.scheduler.trigger_manual()
        return {"message": "sync triggered"}

    @app.get("/api/sync/plan")
    def sync_plan() -> dict[str, Any]:
        config = app.state.context.config_manager.load()
        engine = app.state.context.engine_factory(config)
        try:
            plan = engine.plan()
        except Exception as exc:
            logger.exception("Dry run failed")
            raise HTTPException(status_code=502, detail=f"{type(exc).__name__}: {exc}") from exc
        return plan.to_dict()

    @app.get("/api/sync/status")
    def sync_status() -> dict[str, Any]:
        last_result = app.state.context.scheduler.last_result
        return {"last_result": last_result.to_dict() if last_result is not None else None}

    return app
