"""Orchestrate a print: fetch -> render -> resolve -> submit -> clean up."""
from __future__ import annotations

import asyncio
import io
import logging
import time
from typing import Optional

from PIL import Image

from print_dispatch.errors import NoDeviceAvailable, SubmissionTimeout
from print_dispatch.models import JobResult, RegistryState, RenditionPair
from print_dispatch.services import spooler as default_spooler
from print_dispatch.services.executor import DispatchExecutor, build_request, new_idempotency_key
from print_dispatch.services.renderer import FormatRenderer
from print_dispatch.services.resolver import resolve
from print_dispatch.services.source import ImageSource, absolute_url, describe, fetch_source, to_data_url

logger = logging.getLogger(__name__)


async def dispatch_print(
    source: ImageSource,
    state: RegistryState,
    renderer: FormatRenderer,
    executor: DispatchExecutor,
    prefer_high_fidelity: bool = True,
    idempotency_key: Optional[str] = None,
    binding=default_spooler,
    fetch_timeout_s: float = 30.0,
    public_base_url: Optional[str] = None,
    keep_renditions: bool = False,
) -> dict:
    """Run one print request end to end and report every stage."""
    stages: list[dict] = []
    t0 = time.monotonic()
    key = idempotency_key or new_idempotency_key()

    def stage(name: str, detail: str = ""):
        elapsed = round(time.monotonic() - t0, 2)
        stages.append({"name": name, "detail": detail, "elapsed_s": elapsed})
        logger.info("Stage: %s %s (%.2fs)", name, detail, elapsed)

    def finish(result: JobResult) -> dict:
        return {
            "success": result.success,
            "stages": stages,
            "result": result.model_dump(),
            "total_time_s": round(time.monotonic() - t0, 2),
        }

    logger.info(
        "Print request received: %s (high quality: %s, mode: %s)",
        describe(source), prefer_high_fidelity, executor.mode,
    )

    if executor.mode == "remote":
        if isinstance(source, bytes):
            url = to_data_url(source)
        else:
            url = absolute_url(source, public_base_url)
        stage("forward", describe(url))
        forwarded = await executor.submit_url(url, prefer_high_fidelity, key)
        stage("print", f"job {forwarded.job_id}" if forwarded.success else f"FAILED: {forwarded.error_message}")
        return finish(forwarded)

    device_name: Optional[str] = None
    renditions: Optional[RenditionPair] = None
    result: Optional[JobResult] = None
    try:
        data = await fetch_source(source, timeout=fetch_timeout_s)
        stage("fetch", f"{len(data)} bytes")

        renditions = await asyncio.to_thread(renderer.render, data)
        stage("render", f"{renditions.fast_path.name}, {renditions.archival_path.name}")

        available = await asyncio.to_thread(binding.list_device_names)
        stage("discover", f"{len(available)} printer(s)")

        resolution = resolve(available, state)
        if resolution is None:
            raise NoDeviceAvailable("No printers found")
        device_name = resolution.device_name
        stage("resolve", f"{device_name} ({resolution.rule})")

        request = build_request(resolution, renditions, prefer_high_fidelity, key)
        result = await executor.submit(request)
        if result.success:
            stage("print", f"job {result.job_id} on {device_name}")
        else:
            stage("print", f"FAILED on {device_name}: {result.error_message}")
        return finish(result)

    except Exception as e:
        logger.exception("Print pipeline failed")
        stage("error", str(e))
        return finish(
            JobResult(
                success=False,
                device_name=device_name,
                high_fidelity_requested=prefer_high_fidelity,
                error_message=str(e),
                error_kind=getattr(e, "kind", type(e).__name__),
                idempotency_key=key,
            )
        )
    finally:
        if renditions is not None and not keep_renditions:
            if result is not None and result.error_kind == SubmissionTimeout.__name__:
                # The abandoned spooler call may still be reading the file
                logger.warning("Keeping renditions of timed-out job: %s", renditions.fast_path.stem)
            else:
                renditions.cleanup()


def _test_page() -> bytes:
    img = Image.new("RGB", (1000, 1000), (255, 200, 200))
    buf = io.BytesIO()
    img.save(buf, format="JPEG")
    return buf.getvalue()


async def dispatch_test_page(
    state: RegistryState,
    renderer: FormatRenderer,
    executor: DispatchExecutor,
    binding=default_spooler,
    options: Optional[dict[str, str]] = None,
) -> JobResult:
    """Print a plain 1000x1000 test image with minimal options.

    Uses the resolved device but ignores its profile options, which helps to
    tell a bad option map apart from a broken printer.
    """
    available = await asyncio.to_thread(binding.list_device_names)
    resolution = resolve(available, state)
    if resolution is None:
        exc = NoDeviceAvailable("No printers found")
        return JobResult(success=False, error_message=str(exc), error_kind=exc.kind)

    renditions = await asyncio.to_thread(renderer.render, _test_page())
    try:
        minimal = resolution._replace(options=dict(options or {"media": "Letter"}))
        logger.info("Sending minimal print job to %s with options %s", minimal.device_name, minimal.options)
        return await executor.submit(build_request(minimal, renditions, prefer_high_fidelity=False))
    finally:
        renditions.cleanup()
