"""Per-job kill switches read from environment flags."""

from __future__ import annotations

import os
from collections.abc import Mapping


class EnvKillSwitch:
    """Job ``sov`` is disabled when ``STOP_SOV_CRON=true``."""

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        *,
        prefix: str = "STOP_",
        suffix: str = "_CRON",
    ) -> None:
        self._environ = environ
        self._prefix = prefix
        self._suffix = suffix

    def variable_for(self, job_name: str) -> str:
        return f"{self._prefix}{job_name.upper().replace('-', '_')}{self._suffix}"

    def is_engaged(self, job_name: str) -> bool:
        environ = self._environ if self._environ is not None else os.environ
        return environ.get(self.variable_for(job_name), "").strip().lower() == "true"

    def reason(self, job_name: str) -> str:
        return f"kill switch {self.variable_for(job_name)} is engaged"
