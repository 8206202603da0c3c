"""Submit print jobs to the local CUPS spooler or to a remote print gateway."""
from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Optional

import httpx

from print_dispatch.config import Settings
from print_dispatch.errors import SubmissionFailed, SubmissionTimeout, TransportFailure
from print_dispatch.models import JobResult, RenditionPair, SubmissionRequest
from print_dispatch.services import spooler as default_spooler
from print_dispatch.services.resolver import Resolution
from print_dispatch.services.supervisor import QueueSupervisor

logger = logging.getLogger(__name__)


def new_idempotency_key() -> str:
    return uuid.uuid4().hex


def build_request(
    resolution: Resolution,
    renditions: RenditionPair,
    prefer_high_fidelity: bool,
    idempotency_key: Optional[str] = None,
) -> SubmissionRequest:
    return SubmissionRequest(
        device_name=resolution.device_name,
        options=resolution.options,
        source_path=renditions.fast_path,
        archival_path=renditions.archival_path,
        prefer_high_fidelity=prefer_high_fidelity,
        idempotency_key=idempotency_key or new_idempotency_key(),
    )


def choose_rendition(request: SubmissionRequest) -> tuple[Path, bool]:
    """Return the file to print and whether it is the archival rendition.

    A missing archival file downgrades to the fast rendition instead of
    failing the submission.
    """
    if request.prefer_high_fidelity:
        archival = request.archival_path
        if archival is not None and archival.is_file():
            return archival, True
        logger.warning("Archival rendition %s not found, falling back to fast rendition", archival)
    return request.source_path, False


class DispatchExecutor:
    """Dispatch strategy picked once per process from ``settings.mode``."""

    def __init__(
        self,
        settings: Settings,
        supervisor: Optional[QueueSupervisor] = None,
        binding=default_spooler,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.mode = settings.mode
        self.timeout_s = settings.submit_timeout_s
        self.gateway_url = settings.gateway_url.rstrip("/")
        self.gateway_token = settings.gateway_token
        self.fetch_timeout_s = settings.fetch_timeout_s
        self.supervisor = supervisor
        self._spooler = binding
        self._client = client

    # -- local mode -------------------------------------------------------

    async def submit(self, request: SubmissionRequest) -> JobResult:
        """Hand *request* to CUPS, giving up after ``timeout_s`` seconds.

        A timeout only stops the wait: the job may still print. Both a
        timeout and a spooler error trigger one reconciliation of the device.
        """
        device = request.device_name
        if self.supervisor is not None:
            await self.supervisor.wait_idle(device)

        path, high_fidelity = choose_rendition(request)
        logger.info(
            "Using %s for printing on %s: %s",
            "TIFF" if high_fidelity else "JPEG", device, path,
        )

        def failed(exc: Exception, kind: str) -> JobResult:
            return JobResult(
                success=False,
                device_name=device,
                high_fidelity_used=high_fidelity,
                high_fidelity_requested=request.prefer_high_fidelity,
                error_message=str(exc),
                error_kind=kind,
                idempotency_key=request.idempotency_key,
            )

        try:
            job_id = await asyncio.wait_for(
                asyncio.to_thread(
                    self._spooler.submit_job,
                    str(path),
                    device,
                    request.options,
                    f"print-dispatch-{request.idempotency_key}",
                ),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            exc = SubmissionTimeout(
                f"Printer {device} did not accept the job within {self.timeout_s:g}s; "
                "it may still print",
                device,
            )
            logger.error("%s", exc)
            await self._reconcile_after_failure(device)
            return failed(exc, exc.kind)
        except SubmissionTimeout as exc:
            logger.error("%s", exc)
            await self._reconcile_after_failure(device)
            return failed(exc, exc.kind)
        except SubmissionFailed as exc:
            logger.error("Submission to %s failed: %s", device, exc)
            await self._reconcile_after_failure(device)
            return failed(exc, exc.kind)

        logger.info("Print job submitted to %s: %s", device, job_id)
        return JobResult(
            success=True,
            device_name=device,
            job_id=job_id,
            high_fidelity_used=high_fidelity,
            high_fidelity_requested=request.prefer_high_fidelity,
            idempotency_key=request.idempotency_key,
        )

    async def _reconcile_after_failure(self, device_name: str) -> None:
        if self.supervisor is None:
            return
        await self.supervisor.reconcile([device_name])

    # -- remote mode ------------------------------------------------------

    def _headers(self, idempotency_key: Optional[str] = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.gateway_token:
            headers["Authorization"] = f"Bearer {self.gateway_token}"
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.gateway_url}{path}"
        kwargs.setdefault("timeout", self.timeout_s + self.fetch_timeout_s)
        try:
            if self._client is not None:
                return await self._client.request(method, url, **kwargs)
            async with httpx.AsyncClient() as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportFailure(f"Print server unreachable: {exc}") from exc

    @staticmethod
    def _error_from(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return f"Print server error: {response.status_code}"

    async def submit_url(
        self,
        image_url: str,
        prefer_high_fidelity: bool = True,
        idempotency_key: Optional[str] = None,
    ) -> JobResult:
        """Forward a print to the gateway, which resolves its own device."""
        key = idempotency_key or new_idempotency_key()
        logger.info("Using print server at: %s", self.gateway_url)

        def failed(message: str) -> JobResult:
            return JobResult(
                success=False,
                high_fidelity_requested=prefer_high_fidelity,
                error_message=message,
                error_kind=TransportFailure.__name__,
                idempotency_key=key,
            )

        try:
            response = await self._request(
                "POST",
                "/print-url",
                json={"imageUrl": image_url, "useHighQuality": prefer_high_fidelity},
                headers=self._headers(key),
            )
        except TransportFailure as exc:
            logger.error("%s", exc)
            return failed(str(exc))

        if not response.is_success:
            message = self._error_from(response)
            logger.error("Print server error: %s %s", response.status_code, message)
            return failed(message)

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            logger.error("Print server sent an unreadable reply: %.200s", response.text)
            return failed(f"Print server sent an invalid response ({response.status_code})")
        logger.info("Print server response: %s", body)
        job_id = body.get("jobId")
        return JobResult(
            success=bool(body.get("success", True)),
            device_name=body.get("printer"),
            job_id=str(job_id) if job_id is not None else None,
            high_fidelity_used=bool(body.get("highQuality", False)),
            high_fidelity_requested=prefer_high_fidelity,
            idempotency_key=key,
        )

    async def list_remote_printers(self) -> list[str]:
        """Printer names visible to the gateway. Raises TransportFailure."""
        response = await self._request("GET", "/printers", headers=self._headers())
        if not response.is_success:
            raise TransportFailure(self._error_from(response), status_code=response.status_code)
        return list(response.json().get("printers", []))
