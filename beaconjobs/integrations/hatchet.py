"""
Hatchet integration: the durable event bus behind job dispatch.

Every hatchet_sdk import lives in this module. Callers see HatchetConfig,
HatchetClient and HatchetEventBus; the dispatcher only sees the bus.
"""

import logging
import os
import re
import signal
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, field_validator, model_validator

from beaconjobs.errors import DispatchError
from beaconjobs.jobs.registry import Job

logger = logging.getLogger(__name__)

_ENV_REF = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")

# Environment variables the Hatchet CLI and SDK already understand.
_ENV_DEFAULTS = (
    ("server_url", "HATCHET_SERVER_URL"),
    ("grpc_host_port", "HATCHET_GRPC_HOST_PORT"),
    ("grpc_tls_strategy", "HATCHET_GRPC_TLS_STRATEGY"),
)


def _load_sdk() -> tuple[Any, Any, Any]:
    # Deferred so that inline-only deployments never import hatchet_sdk.
    from hatchet_sdk import Hatchet
    from hatchet_sdk.config import ClientConfig, ClientTLSConfig

    return Hatchet, ClientConfig, ClientTLSConfig


def _substitute_env(value: Any) -> Any:
    """Expand ``${VAR}`` and ``$VAR``; unknown variables become empty strings."""
    if not isinstance(value, str):
        return value
    return _ENV_REF.sub(lambda m: os.environ.get(m.group(1) or m.group(2), ""), value)


def _substitute_env_dict(data: dict[str, Any]) -> dict[str, Any]:
    return {
        key: _substitute_env_dict(value) if isinstance(value, dict) else _substitute_env(value)
        for key, value in data.items()
    }


def _event_payload(event_input: Any) -> dict[str, Any]:
    # Task input arrives as a pydantic model (extra fields allowed) or a plain dict.
    if isinstance(event_input, BaseModel):
        return event_input.model_dump()
    return dict(event_input or {})


class HatchetConfig(BaseModel):
    """Connection and worker settings (the ``hatchet`` section of beaconjobs.yaml)."""

    server_url: str = "http://localhost:7077"
    api_token: str | None = None
    grpc_host_port: str | None = None
    grpc_tls_strategy: str = "tls"
    namespace: str = "beaconjobs"
    max_concurrent_tasks: int = 5
    worker_name: str | None = None
    default_timeout_seconds: int = 300

    @model_validator(mode="before")
    @classmethod
    def fill_from_env(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        filled = dict(data)
        for field_name, env_name in _ENV_DEFAULTS:
            env_value = os.environ.get(env_name, "").strip()
            if field_name not in filled and env_value:
                filled[field_name] = env_value
        return filled

    @field_validator("server_url")
    @classmethod
    def _http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("server_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("grpc_tls_strategy")
    @classmethod
    def _tls_strategy(cls, v: str) -> str:
        strategy = v.strip().lower()
        if not strategy:
            raise ValueError("grpc_tls_strategy cannot be empty")
        return strategy

    @field_validator("max_concurrent_tasks", "default_timeout_seconds")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @property
    def grpc_target(self) -> str:
        """gRPC ``host:port``; derived from server_url when not set explicitly."""
        if self.grpc_host_port:
            return self.grpc_host_port
        authority = self.server_url.split("://", 1)[-1].split("/", 1)[0]
        return authority if ":" in authority else f"{authority}:7077"

    @classmethod
    def from_yaml(cls, config_path: Path | str) -> "HatchetConfig":
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        document = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return cls.model_validate(_substitute_env_dict(document.get("hatchet") or {}))


class HatchetClient:
    """Owns the SDK handle and the event-triggered tasks registered on it."""

    def __init__(self, config: HatchetConfig) -> None:
        self.config = config
        self._hatchet: Any = None
        self._tasks: dict[str, Any] = {}

    @property
    def connected(self) -> bool:
        return self._hatchet is not None

    @property
    def hatchet(self) -> Any:
        return self._hatchet

    def connect(self) -> None:
        """Build the SDK client.

        Raises:
            ValueError: No API token in config or ``HATCHET_API_TOKEN``.
            ConnectionError: The SDK rejected the configuration.
        """
        token = self.config.api_token or os.environ.get("HATCHET_API_TOKEN", "")
        if not token:
            raise ValueError("Hatchet API token required: set hatchet.api_token or HATCHET_API_TOKEN")
        hatchet_cls, client_config_cls, tls_config_cls = _load_sdk()
        try:
            self._hatchet = hatchet_cls(
                config=client_config_cls(
                    host_port=self.config.grpc_target,
                    server_url=self.config.server_url,
                    token=token,
                    namespace=self.config.namespace,
                    tls_config=tls_config_cls(strategy=self.config.grpc_tls_strategy),
                )
            )
        except Exception as exc:
            logger.exception("hatchet_connect_failed server_url=%s", self.config.server_url)
            raise ConnectionError(f"Failed to connect to Hatchet Server: {exc}") from exc
        logger.info("hatchet_connected server_url=%s namespace=%s", self.config.server_url, self.config.namespace)

    def disconnect(self) -> None:
        if self._hatchet is not None:
            self._hatchet = None
            logger.info("hatchet_disconnected")

    def event_task(
        self,
        name: str,
        event_name: str,
        retries: int = 3,
        timeout: int | None = None,
    ) -> Callable:
        """Decorator: run ``func`` on the worker whenever ``event_name`` is pushed."""

        def decorator(func: Callable) -> Callable:
            if self._hatchet is None:
                raise RuntimeError("Must call connect() before registering tasks")
            self._tasks[name] = self._hatchet.task(
                name=name,
                on_events=[event_name],
                retries=retries,
                execution_timeout=timedelta(seconds=timeout or self.config.default_timeout_seconds),
            )(func)
            return func

        return decorator

    def start_worker(self) -> None:
        """Run the worker for every registered task. Blocks until shutdown."""
        if self._hatchet is None:
            raise RuntimeError("Must call connect() before start_worker()")
        if not self._tasks:
            raise RuntimeError("No jobs registered; call HatchetEventBus.register_job() first")
        if not hasattr(signal, "SIGQUIT"):
            # hatchet_sdk installs a SIGQUIT handler; Windows has none.
            signal.SIGQUIT = signal.SIGTERM  # type: ignore[attr-defined,misc]
        worker = self._hatchet.worker(
            name=self.config.worker_name or f"beaconjobs-worker-{os.getpid()}",
            slots=self.config.max_concurrent_tasks,
            workflows=list(self._tasks.values()),
        )
        worker.start()


class HatchetEventBus:
    """Event bus backed by Hatchet events.

    ``send`` returns once Hatchet has accepted the event. The worker side
    runs the same job body the inline fallback would, via ``register_job``.
    """

    def __init__(self, client: HatchetClient) -> None:
        self._client = client

    @property
    def client(self) -> HatchetClient:
        return self._client

    async def send(self, event_name: str, payload: dict[str, Any]) -> None:
        if not self._client.connected:
            raise DispatchError(event_name, "hatchet client not connected")
        try:
            await self._client.hatchet.event.aio_push(event_name, payload)
        except Exception as exc:
            raise DispatchError(event_name, str(exc)) from exc
        logger.debug("hatchet_event_pushed event_name=%s", event_name)

    def register_job(self, job: Job) -> None:
        async def _run(event_input: Any, _ctx: Any) -> dict[str, Any]:
            return dict(await job.body(_event_payload(event_input)) or {})

        _run.__name__ = f"{job.name.replace('-', '_')}_job"
        self._client.event_task(
            name=f"{job.name}-job",
            event_name=job.event_name,
            retries=job.entry.retries,
        )(_run)


def connect_event_bus(config: HatchetConfig) -> HatchetEventBus | None:
    """Connect to Hatchet, or return None so dispatch goes straight to the inline path."""
    client = HatchetClient(config)
    try:
        client.connect()
    except (ValueError, ConnectionError) as exc:
        logger.warning("hatchet_unavailable error=%s", exc)
        return None
    return HatchetEventBus(client)
