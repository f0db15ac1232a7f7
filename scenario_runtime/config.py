"""Runtime settings resolved from explicit values, the environment and defaults."""

from __future__ import annotations

import os
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .status import DEFAULT_SEVERITY_ORDER, SeverityOrder, Status

DEFAULT_TIMEOUT = 5.0

ENV_STEP_TIMEOUT = "SCENARIO_RUNTIME_STEP_TIMEOUT"
ENV_HOOK_TIMEOUT = "SCENARIO_RUNTIME_HOOK_TIMEOUT"
ENV_SEVERITY_ORDER = "SCENARIO_RUNTIME_SEVERITY_ORDER"
ENV_LOG_LEVEL = "SCENARIO_RUNTIME_LOG_LEVEL"
ENV_LOG_FORMAT = "CONSOLE_OUTPUT_FORMAT"

LogFormat = Literal["json", "console", "plain"]

# Console output names accepted from the environment.
_LOG_FORMAT_ALIASES: dict[str, LogFormat] = {
    "json": "json",
    "plain": "plain",
    "console": "console",
    "rich": "console",
    "auto": "console",
}


class RuntimeSettings(BaseModel):
    """Knobs shared by every scenario run of a process.

    Timeouts are in seconds; zero or a negative value disables the deadline.
    ``severity_order`` lists statuses best first.
    """

    model_config = ConfigDict(frozen=True)

    step_timeout: Optional[float] = DEFAULT_TIMEOUT
    hook_timeout: Optional[float] = DEFAULT_TIMEOUT
    severity_order: tuple[Status, ...] = Field(default=DEFAULT_SEVERITY_ORDER)
    log_level: str = "INFO"
    log_format: LogFormat = "console"

    @field_validator("severity_order")
    @classmethod
    def _check_order(cls, value: tuple[Status, ...]) -> tuple[Status, ...]:
        SeverityOrder(value)
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper()

    @property
    def severity(self) -> SeverityOrder:
        return SeverityOrder(self.severity_order)

    @classmethod
    def from_env(cls, **overrides: Any) -> "RuntimeSettings":
        """Resolve each field: explicit override > environment variable > default."""

        values: dict[str, Any] = {}
        env = os.environ
        if env.get(ENV_STEP_TIMEOUT):
            values["step_timeout"] = env[ENV_STEP_TIMEOUT]
        if env.get(ENV_HOOK_TIMEOUT):
            values["hook_timeout"] = env[ENV_HOOK_TIMEOUT]
        if env.get(ENV_SEVERITY_ORDER):
            names = [name for name in env[ENV_SEVERITY_ORDER].split(",") if name.strip()]
            values["severity_order"] = SeverityOrder.worst_first(names).ranking
        if env.get(ENV_LOG_LEVEL):
            values["log_level"] = env[ENV_LOG_LEVEL]
        values["log_format"] = resolve_log_format(overrides.pop("log_format", None))
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)


def effective_timeout(timeout: Optional[float]) -> Optional[float]:
    """``None`` for a missing, zero or negative timeout, meaning no deadline."""

    if timeout is None or timeout <= 0:
        return None
    return timeout


def resolve_log_format(value: Optional[str] = None) -> LogFormat:
    """Pick the log format: a known explicit value, then the environment, then ``console``."""

    if value and value.lower() in ("json", "console", "plain"):
        return value.lower()  # type: ignore[return-value]
    env_value = os.environ.get(ENV_LOG_FORMAT, "").lower()
    return _LOG_FORMAT_ALIASES.get(env_value, "console")
