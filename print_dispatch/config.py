from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PD_", env_file=".env", extra="ignore")

    # Deployment topology: "local" talks to CUPS, "remote" forwards to a gateway
    mode: Literal["local", "remote"] = "local"

    # Device registry
    registry_path: Path = Path("config") / "printers.json"

    # Renditions
    upload_dir: Path = Path("uploads")
    keep_renditions: bool = False

    # Timeouts (seconds)
    submit_timeout_s: float = 30.0
    fetch_timeout_s: float = 30.0

    # Remote gateway
    gateway_url: str = "http://localhost:3001"
    gateway_token: Optional[str] = None
    public_base_url: Optional[str] = None

    # CUPS
    cups_server: Optional[str] = None
    cups_user: Optional[str] = None
    cups_password: Optional[str] = None
    reconcile_on_startup: bool = True

    # Server
    auth_token: Optional[str] = None
    idempotency_cache_size: int = 200
    host: str = "0.0.0.0"
    port: int = 3001

    @property
    def is_local(self) -> bool:
        return self.mode == "local"


def get_settings() -> Settings:
    return Settings()
