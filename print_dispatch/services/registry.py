"""Durable store of printer profiles and the default device pointer."""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from print_dispatch.errors import ConfigUnavailable
from print_dispatch.models import DeviceProfile, RegistryState, utc_now_iso

logger = logging.getLogger(__name__)

_CANON_PRO_OPTIONS = {
    "PageSize": "13x19",
    "InputSlot": "by-pass-tray",
    "MediaType": "photographic",
    "ColorModel": "RGB",
    "cupsPrintQuality": "High",
    "CNIJInkWarning": "0",
}


def default_state() -> RegistryState:
    """Built-in registry used on first run and when the document is unreadable.

    Always contains the generic ``default`` profile so resolution has
    conservative options to fall back on.
    """
    return RegistryState(
        default_device_name="Canon_PRO_1000_USB",
        profiles=[
            DeviceProfile(
                name="Canon_PRO_1000_USB",
                display_name="Canon Pro 1000 (Direct USB)",
                priority=200,
                options={**_CANON_PRO_OPTIONS, "CNIJInkCartridgeSettings": "0"},
            ),
            DeviceProfile(
                name="Canon_PRO_1000_series_3",
                display_name="Canon Pro 1000 (USB Fallback)",
                priority=100,
                options=dict(_CANON_PRO_OPTIONS),
            ),
            DeviceProfile(
                name="default",
                display_name="Default Printer",
                priority=10,
                options={
                    "PageSize": "Letter",
                    "InputSlot": "Auto",
                    "MediaType": "Auto",
                    "ColorModel": "RGB",
                    "cupsPrintQuality": "Normal",
                },
            ),
        ],
    )


class DeviceRegistry:
    """Load/save the registry document at *path*.

    The registry is an explicit value handed to the resolver; nothing here
    talks to CUPS.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read(self) -> RegistryState:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return RegistryState.model_validate(raw)
        except (OSError, ValueError, ValidationError) as exc:
            raise ConfigUnavailable(f"Cannot read registry {self.path}: {exc}") from exc

    def load(self) -> RegistryState:
        if not self.path.is_file():
            state = default_state()
            try:
                self.save(state)
                logger.info("Created default printer configuration at %s", self.path)
            except OSError:
                logger.exception("Could not persist default printer configuration to %s", self.path)
            return state

        try:
            state = self._read()
        except ConfigUnavailable:
            logger.exception("Error loading printer configuration, using built-in defaults")
            return default_state()

        logger.info(
            "Loaded %d printer profile(s) from %s (default=%r)",
            len(state.profiles), self.path, state.default_device_name,
        )
        return state

    def save(self, state: RegistryState) -> None:
        """Persist *state* atomically and refresh ``last_updated``.

        Writes to a temporary file next to the target and swaps it in with
        os.replace(), so readers never see a half-written document.
        Raises OSError on I/O failures.
        """
        state.last_updated = utc_now_iso()
        self.path.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp_path = Path(f.name)
            try:
                json.dump(state.to_document(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            except Exception:
                f.close()
                tmp_path.unlink(missing_ok=True)
                raise
        os.replace(tmp_path, self.path)
        logger.info("Saved printer configuration to %s", self.path)

    def upsert(self, profile: DeviceProfile) -> RegistryState:
        state = self.load()
        for i, existing in enumerate(state.profiles):
            if existing.name == profile.name:
                state.profiles[i] = profile
                logger.info("Updated printer profile %s", profile.name)
                break
        else:
            state.profiles.append(profile)
            logger.info("Added printer profile %s", profile.name)
        self.save(state)
        return state

    def set_default(self, name: Optional[str]) -> RegistryState:
        state = self.load()
        state.default_device_name = name
        self.save(state)
        logger.info("Default printer set to %r", name)
        return state

    def print_params(self, device_name: str) -> Optional[dict[str, str]]:
        """Options configured for *device_name*, or None when it has no profile."""
        profile = self.load().get_profile(device_name)
        if profile is None:
            logger.info("No configuration found for printer: %s", device_name)
            return None
        return dict(profile.options)
