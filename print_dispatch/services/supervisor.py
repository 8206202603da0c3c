"""Best-effort queue maintenance: flush stuck jobs and re-enable printers."""
from __future__ import annotations

import asyncio
import enum
import logging
from typing import Iterable

from print_dispatch.services import spooler as default_spooler

logger = logging.getLogger(__name__)


class DeviceState(str, enum.Enum):
    UNKNOWN = "unknown"
    RECONCILING = "reconciling"
    ENABLED = "enabled"
    RECONCILE_FAILED = "reconcile_failed"


class QueueSupervisor:
    """Cancel outstanding jobs on a device, then re-enable it.

    Devices are reconciled concurrently; for a single device cancellation
    always finishes before the printer is re-enabled. Failures are logged
    and recorded, never raised, so one broken printer cannot block the rest.
    """

    def __init__(self, binding=default_spooler) -> None:
        self._spooler = binding
        self._locks: dict[str, asyncio.Lock] = {}
        self._states: dict[str, DeviceState] = {}

    def _lock(self, device_name: str) -> asyncio.Lock:
        lock = self._locks.get(device_name)
        if lock is None:
            lock = self._locks[device_name] = asyncio.Lock()
        return lock

    def state(self, device_name: str) -> DeviceState:
        return self._states.get(device_name, DeviceState.UNKNOWN)

    def states(self) -> dict[str, str]:
        return {name: state.value for name, state in self._states.items()}

    def is_reconciling(self, device_name: str) -> bool:
        lock = self._locks.get(device_name)
        return lock is not None and lock.locked()

    async def wait_idle(self, device_name: str) -> None:
        """Block until no reconciliation is running for *device_name*."""
        if self.is_reconciling(device_name):
            logger.info("Waiting for queue reconciliation of %s to finish", device_name)
            async with self._lock(device_name):
                pass

    async def reconcile(self, device_names: Iterable[str]) -> dict[str, str]:
        names = list(dict.fromkeys(device_names))
        if not names:
            return {}
        logger.info("Reconciling print queues: %s", names)
        await asyncio.gather(*(self._reconcile_one(name) for name in names))
        return {name: self.state(name).value for name in names}

    async def reconcile_all(self) -> dict[str, str]:
        """Reconcile every device CUPS currently reports."""
        names = await asyncio.to_thread(self._spooler.list_device_names)
        return await self.reconcile(names)

    async def _reconcile_one(self, device_name: str) -> None:
        async with self._lock(device_name):
            self._states[device_name] = DeviceState.RECONCILING
            ok = True

            try:
                await asyncio.to_thread(self._spooler.cancel_all, device_name)
            except Exception:
                logger.exception("Error cancelling jobs on %s", device_name)
                ok = False

            try:
                await asyncio.to_thread(self._spooler.enable, device_name)
            except Exception:
                logger.exception("Error re-enabling %s", device_name)
                ok = False

            self._states[device_name] = (
                DeviceState.ENABLED if ok else DeviceState.RECONCILE_FAILED
            )
            logger.info("Queue for %s: %s", device_name, self._states[device_name].value)
