from __future__ import annotations

import io
import struct
import zlib

import pytest
from PIL import Image

from print_dispatch.config import Settings
from print_dispatch.models import DeviceProfile, RegistryState


@pytest.fixture
def sample_image() -> Image.Image:
    """A simple 200x300 test image with a black rectangle."""
    img = Image.new("RGB", (200, 300), (255, 255, 255))
    for x in range(50, 150):
        for y in range(75, 225):
            img.putpixel((x, y), (0, 0, 0))
    return img


@pytest.fixture
def png_bytes(sample_image) -> bytes:
    buf = io.BytesIO()
    sample_image.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def rgba_png_bytes() -> bytes:
    """A half-transparent RGBA PNG."""
    img = Image.new("RGBA", (64, 48), (255, 0, 0, 128))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def oversized_png() -> bytes:
    """Headers of a 30000x30000 PNG with an empty IDAT; far past Pillow's pixel limit."""
    def chunk(cid: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + cid + data + struct.pack(">I", zlib.crc32(cid + data))

    ihdr = struct.pack(">IIBBBBB", 30000, 30000, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", b"")


@pytest.fixture
def canon_state() -> RegistryState:
    """Two Canon profiles with Canon_A as the configured default."""
    return RegistryState(
        default_device_name="Canon_A",
        profiles=[
            DeviceProfile(name="Canon_A", display_name="Canon A", priority=200,
                          options={"PageSize": "13x19"}),
            DeviceProfile(name="Canon_B", display_name="Canon B", priority=100,
                          options={"PageSize": "A3plus"}),
        ],
    )


@pytest.fixture
def generic_state() -> RegistryState:
    """No default, no device-specific profile, only generic options."""
    return RegistryState(
        profiles=[
            DeviceProfile(name="default", display_name="Default Printer", priority=10,
                          options={"PageSize": "Letter", "cupsPrintQuality": "Normal"}),
        ],
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        mode="local",
        registry_path=tmp_path / "config" / "printers.json",
        upload_dir=tmp_path / "uploads",
        submit_timeout_s=5.0,
        reconcile_on_startup=False,
        auth_token=None,
        gateway_token=None,
    )
