"""Data model shared by the registry, resolver and dispatch executor."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DeviceProfile(BaseModel):
    """A named printer profile. Higher priority wins ties."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    display_name: str = Field(default="", alias="displayName")
    options: dict[str, str] = Field(default_factory=dict)
    priority: int = 0


class RegistryState(BaseModel):
    """The persisted registry document.

    ``default_device_name`` may reference a profile that no longer exists;
    resolution falls through in that case.
    """

    model_config = ConfigDict(populate_by_name=True)

    version: str = "1.0"
    last_updated: str = Field(default_factory=utc_now_iso, alias="lastUpdated")
    default_device_name: Optional[str] = Field(
        default=None,
        alias="defaultDeviceName",
        # documents written by the first print server used "defaultPrinterName"
        validation_alias=AliasChoices("defaultDeviceName", "defaultPrinterName", "default_device_name"),
    )
    profiles: list[DeviceProfile] = Field(
        default_factory=list,
        alias="profiles",
        # the first print server kept profiles under "printers"
        validation_alias=AliasChoices("profiles", "printers"),
    )

    def get_profile(self, name: str) -> Optional[DeviceProfile]:
        for profile in self.profiles:
            if profile.name == name:
                return profile
        return None

    def by_priority(self) -> list[DeviceProfile]:
        return sorted(self.profiles, key=lambda p: p.priority, reverse=True)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class RenditionPair(BaseModel):
    """Fast (JPEG) and archival (TIFF) renditions of one source image."""

    fast_path: Path
    archival_path: Path

    def cleanup(self) -> None:
        for path in (self.fast_path, self.archival_path):
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not remove rendition %s", path, exc_info=True)


class SubmissionRequest(BaseModel):
    device_name: str
    options: dict[str, str] = Field(default_factory=dict)
    source_path: Path
    archival_path: Optional[Path] = None
    prefer_high_fidelity: bool = True
    idempotency_key: Optional[str] = None


class JobResult(BaseModel):
    success: bool
    device_name: Optional[str] = None
    job_id: Optional[str] = None
    high_fidelity_used: bool = False
    high_fidelity_requested: bool = False
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    idempotency_key: Optional[str] = None

    def to_gateway_response(self) -> dict:
        """Shape used by the ``/print-url`` gateway contract."""
        if not self.success:
            return {"error": self.error_message or "Unknown error", "printer": self.device_name}
        return {
            "success": True,
            "printer": self.device_name,
            "jobId": self.job_id,
            "highQuality": self.high_fidelity_used,
        }
