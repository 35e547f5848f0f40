from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from streamcal.config_manager import ConfigManager
from streamcal.discord_client import DiscordEventsClient
from streamcal.models import AppConfig
from streamcal.scheduler import SyncScheduler
from streamcal.sync_engine import SyncEngine
from streamcal.twitch_client import TwitchScheduleClient


def _default_location(config: AppConfig) -> str:
    return config.discord.location or config.twitch.channel_url or "https://twitch.tv"


class AppContext:
    def __init__(self, config_manager: ConfigManager, config: AppConfig) -> None:
        self.config_manager = config_manager
        self.config = config
        self.source = TwitchScheduleClient(config.twitch)
        self.mirror = DiscordEventsClient(config.discord, location=_default_location(config))
        self.sync_engine = SyncEngine(config, self.source, self.mirror)
        self.scheduler = SyncScheduler(self.sync_engine, config.sync)


def create_app(context: AppContext) -> FastAPI:
    app = FastAPI(title="streamcal", version="0.1.0")
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
        return app.state.context.config_manager.masked(app.state.context.config)

    @app.get("/api/sync/status")
    def sync_status() -> dict[str, Any]:
        last_result = app.state.context.sync_engine.last_result
        return {
            "scheduler_running": app.state.context.scheduler.is_running(),
            "last_result": last_result.to_dict() if last_result else None,
        }

    @app.post("/api/sync/run")
    def trigger_sync() -> dict[str, str]:
        app.state.context.scheduler.trigger_manual()
        return {"message": "sync triggered"}

    return app
