"""Talk to the CUPS spooler: list printers, submit jobs, flush and re-enable queues."""
from __future__ import annotations

import logging
import os
import re
import subprocess
from typing import Mapping, Optional

from print_dispatch.errors import DispatchError, ReconcileFailure, SubmissionFailed, SubmissionTimeout

logger = logging.getLogger(__name__)

# pycups is optional, requires libcups2-dev at build time
try:
    import cups

    _HAS_PYCUPS = True
except ImportError:
    _HAS_PYCUPS = False
    logger.info("pycups not available, will use lp/lpstat commands as fallback")

_REQUEST_ID = re.compile(r"request id is (\S+)")
_CLI_TIMEOUT_S = 10


def configure(
    server: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None,
) -> None:
    """Point both pycups and the CUPS command-line tools at *server*."""
    if server:
        # Read by libcups and by lp/lpstat/cancel
        os.environ["CUPS_SERVER"] = server
        if _HAS_PYCUPS:
            cups.setServer(server)
        logger.info("CUPS server set to %s", server)
    if user:
        os.environ["CUPS_USER"] = user
        if _HAS_PYCUPS:
            cups.setUser(user)
            if password:
                cups.setPasswordCB(lambda _prompt: password)
        logger.info("CUPS user set to %s", user)


def _run(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(args, capture_output=True, text=True, timeout=_CLI_TIMEOUT_S)


def get_available_printers() -> list[dict]:
    """List printers from CUPS with their info, state and device URI."""
    if _HAS_PYCUPS:
        try:
            conn = cups.Connection()
            raw = conn.getPrinters()
            return [
                {
                    "name": name,
                    "info": info.get("printer-info", ""),
                    "state": info.get("printer-state", 0),
                    "uri": info.get("device-uri", ""),
                }
                for name, info in raw.items()
            ]
        except Exception:
            logger.exception("Failed to list printers from CUPS")
            return []

    # Fallback: parse lpstat output
    try:
        result = _run(["lpstat", "-p"])
        printers = []
        for line in result.stdout.splitlines():
            if line.startswith("printer "):
                parts = line.split()
                name = parts[1] if len(parts) > 1 else "unknown"
                state = 5 if "disabled" in line else 3
                printers.append({"name": name, "info": "", "state": state, "uri": ""})
        return printers
    except Exception:
        logger.exception("Failed to list printers via lpstat")
        return []


def list_device_names() -> list[str]:
    """Printer names in the order CUPS reports them; empty on any error."""
    names = [p["name"] for p in get_available_printers()]
    logger.info("Found %d printer(s): %s", len(names), names)
    return names


def submit_job(
    path: str,
    device_name: str,
    options: Mapping[str, str],
    title: str = "print-dispatch",
) -> str:
    """Submit *path* to *device_name* and return the CUPS job id.

    Raises SubmissionFailed when CUPS rejects the job and SubmissionTimeout
    when `lp` hangs past its own timeout.
    """
    logger.info(
        "Submitting %s to %s via %s with options %s",
        path, device_name, "pycups" if _HAS_PYCUPS else "lp", dict(options),
    )

    if _HAS_PYCUPS:
        try:
            conn = cups.Connection()
            job_id = conn.printFile(device_name, path, title, dict(options))
        except Exception as e:
            logger.exception("CUPS print failed")
            raise SubmissionFailed(f"Print operation failed: {e}", device_name) from e
        logger.info("CUPS job %d submitted to %s", job_id, device_name)
        return str(job_id)

    args = ["lp", "-d", device_name, "-t", title]
    for key, value in options.items():
        args += ["-o", f"{key}={value}"]
    args.append(path)
    logger.info("CUPS equivalent: %s", " ".join(args))
    try:
        result = _run(args)
    except subprocess.TimeoutExpired as e:
        raise SubmissionTimeout(
            f"lp did not return within {e.timeout:g}s; the job may still print", device_name
        ) from e
    except (OSError, subprocess.SubprocessError) as e:
        logger.exception("lp print failed")
        raise SubmissionFailed(f"Print operation failed: {e}", device_name) from e

    if result.returncode != 0:
        logger.error("lp failed: %s", result.stderr.strip())
        raise SubmissionFailed(
            f"Print operation failed: {result.stderr.strip() or 'lp exited with ' + str(result.returncode)}",
            device_name,
        )
    match = _REQUEST_ID.search(result.stdout)
    job_id = match.group(1) if match else result.stdout.strip()
    logger.info("lp job submitted to %s: %s", device_name, job_id)
    return job_id


def cancel_all(device_name: str) -> None:
    """Cancel every queued job on *device_name*. Raises ReconcileFailure."""
    if _HAS_PYCUPS:
        try:
            conn = cups.Connection()
            conn.cancelAllJobs(name=device_name)
        except Exception as e:
            raise ReconcileFailure(f"Cancel failed: {e}", device_name) from e
        logger.info("Cleared all jobs on %s", device_name)
        return

    _run_or_raise(["cancel", "-a", device_name], device_name, "Cancel")
    logger.info("Cleared all jobs on %s", device_name)


def enable(device_name: str) -> None:
    """Re-enable *device_name* and make it accept jobs. Raises ReconcileFailure."""
    if _HAS_PYCUPS:
        try:
            conn = cups.Connection()
            conn.enablePrinter(device_name)
            conn.acceptJobs(device_name)
        except Exception as e:
            raise ReconcileFailure(f"Enable failed: {e}", device_name) from e
        logger.info("Enabled %s", device_name)
        return

    _run_or_raise(["cupsenable", device_name], device_name, "Enable")
    _run_or_raise(["cupsaccept", device_name], device_name, "Accept")
    logger.info("Enabled %s", device_name)


def _run_or_raise(args: list[str], device_name: str, action: str) -> None:
    try:
        result = _run(args)
    except (OSError, subprocess.SubprocessError) as e:
        raise ReconcileFailure(f"{action} failed: {e}", device_name) from e
    if result.returncode != 0:
        raise ReconcileFailure(f"{action} failed: {result.stderr.strip()}", device_name)


def get_printer_details(device_name: str) -> str:
    """Return ``lpoptions -l`` output: the options and values the driver accepts."""
    try:
        result = _run(["lpoptions", "-p", device_name, "-l"])
    except (OSError, subprocess.SubprocessError) as e:
        raise DispatchError(f"Failed to get printer details: {e}", device_name) from e
    if result.returncode != 0 or result.stderr.strip():
        raise DispatchError(
            f"Failed to get printer details: {result.stderr.strip()}", device_name
        )
    return result.stdout
