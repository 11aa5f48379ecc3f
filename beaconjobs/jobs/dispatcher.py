"""Dual-path job dispatch: durable hand-off first, inline execution on failure.

One invocation runs this state machine::

    auth guard -> kill switch -> run log start
        -> primary (send event to the durable bus)   -> run log complete
        -> on any primary error: fallback (run body) -> run log complete / failed

Exactly one of the two paths does the work. There is no locking: two
overlapping invocations of the same job both run, and a job that needs
at-most-once behaviour must enforce it in its own body.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from beaconjobs.errors import AuthorizationError, DispatchError, ExecutionError
from beaconjobs.jobs.auth import BearerSecretGuard
from beaconjobs.jobs.killswitch import EnvKillSwitch
from beaconjobs.jobs.registry import Job
from beaconjobs.runs.logger import RunLogger

logger = logging.getLogger(__name__)


class EventBus(Protocol):
    """Durable async event bus: returns once the event is accepted, raises otherwise."""

    async def send(self, event_name: str, payload: dict[str, Any]) -> None: ...


class ExecutionStrategy(Protocol):
    """One way of getting a job's work done."""

    name: str

    async def run(self, job: Job, payload: dict[str, Any]) -> dict[str, Any]: ...


class DurableDispatchStrategy:
    """Hand the job to the event bus. Acceptance is success; processing happens elsewhere."""

    name = "durable"

    def __init__(self, bus: EventBus | None) -> None:
        self._bus = bus

    async def run(self, job: Job, payload: dict[str, Any]) -> dict[str, Any]:
        if self._bus is None:
            raise DispatchError(job.event_name, "event bus not configured")
        try:
            await self._bus.send(job.event_name, payload)
        except DispatchError:
            raise
        except Exception as exc:
            raise DispatchError(job.event_name, str(exc)) from exc
        return {"dispatched": True}


class InlineStrategy:
    """Run the job body in-process and return its summary."""

    name = "inline"

    async def run(self, job: Job, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            summary = await job.body(dict(payload))
        except Exception as exc:
            raise ExecutionError(job.name, str(exc) or exc.__class__.__name__) from exc
        return dict(summary or {})


class DispatchOutcome(str, Enum):
    UNAUTHORIZED = "unauthorized"
    SKIPPED = "skipped"
    DISPATCHED = "dispatched"
    INLINE = "inline"
    FAILED = "failed"


@dataclass
class DispatchResult:
    """HTTP-shaped result of one invocation."""

    outcome: DispatchOutcome
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)
    log_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200


class DualPathDispatcher:
    """Runs one job invocation through auth, kill switch, and the two paths."""

    def __init__(
        self,
        run_logger: RunLogger,
        *,
        guard: BearerSecretGuard,
        primary: ExecutionStrategy,
        fallback: ExecutionStrategy | None = None,
        kill_switch: EnvKillSwitch | None = None,
    ) -> None:
        self._run_logger = run_logger
        self._guard = guard
        self._primary = primary
        self._fallback = fallback or InlineStrategy()
        self._kill_switch = kill_switch or EnvKillSwitch()

    @classmethod
    def build(
        cls,
        run_logger: RunLogger,
        event_bus: EventBus | None,
        *,
        secret: str | None,
        kill_switch: EnvKillSwitch | None = None,
    ) -> DualPathDispatcher:
        """Standard wiring: durable bus first, inline body as fallback."""
        return cls(
            run_logger,
            guard=BearerSecretGuard(secret),
            primary=DurableDispatchStrategy(event_bus),
            fallback=InlineStrategy(),
            kill_switch=kill_switch,
        )

    @property
    def kill_switch(self) -> EnvKillSwitch:
        return self._kill_switch

    def authorize(self, authorization: str | None, job_name: str) -> DispatchResult | None:
        """Return the 401 result when the bearer header is rejected, else None."""
        try:
            self._guard.check(authorization)
        except AuthorizationError as exc:
            logger.warning("job_unauthorized job_name=%s reason=%s", job_name, exc.reason)
            return DispatchResult(DispatchOutcome.UNAUTHORIZED, 401, {"error": "Unauthorized"})
        return None

    async def dispatch(
        self,
        job: Job,
        authorization: str | None,
        payload: dict[str, Any] | None = None,
    ) -> DispatchResult:
        denied = self.authorize(authorization, job.name)
        if denied is not None:
            return denied

        if self._kill_switch.is_engaged(job.name):
            reason = self._kill_switch.reason(job.name)
            logger.warning("job_skipped job_name=%s reason=%s", job.name, reason)
            return DispatchResult(
                DispatchOutcome.SKIPPED, 200, {"ok": True, "skipped": True, "reason": reason}
            )

        event_payload = dict(job.payload)
        event_payload.update(payload or {})
        handle = await self._run_logger.start(job.name)

        try:
            await self._primary.run(job, event_payload)
        except Exception as exc:
            logger.warning(
                "job_dispatch_fallback job_name=%s strategy=%s error=%s",
                job.name,
                self._primary.name,
                exc,
            )
        else:
            await self._run_logger.complete(handle, {"dispatched": True})
            logger.info("job_dispatched job_name=%s event_name=%s", job.name, job.event_name)
            return DispatchResult(
                DispatchOutcome.DISPATCHED, 200, {"ok": True, "dispatched": True}, handle.log_id
            )

        try:
            summary = await self._fallback.run(job, event_payload)
        except Exception as exc:
            message = exc.message if isinstance(exc, ExecutionError) else str(exc)
            await self._run_logger.failed(handle, message)
            logger.error("job_failed job_name=%s strategy=%s error=%s", job.name, self._fallback.name, message)
            return DispatchResult(DispatchOutcome.FAILED, 500, {"error": message}, handle.log_id)

        summary.pop("dispatched", None)
        await self._run_logger.complete(handle, summary)
        logger.info("job_completed job_name=%s strategy=%s summary=%s", job.name, self._fallback.name, summary)
        return DispatchResult(DispatchOutcome.INLINE, 200, {**summary, "ok": True}, handle.log_id)
