"""Configuration primitives for the project."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

DEFAULT_PORT = 3001
DEFAULT_ENDPOINT = f"http://localhost:{DEFAULT_PORT}/api/stackframes"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {key} must be an integer, got {raw!r}") from exc


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {key} must be a number, got {raw!r}") from exc


@dataclass(slots=True)
class ServerConfig:
    """Settings for the viewer process hosting the gateway and the Dash UI."""

    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    debug: bool = False
    poll_interval_ms: int = 1000
    trace_window: int = 10_000
    stream_queue_size: int = 256

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"Port out of range: {self.port}")
        if self.poll_interval_ms <= 0:
            raise ValueError("poll_interval_ms must be positive")
        if self.trace_window < 0:
            raise ValueError("trace_window must not be negative")
        if self.stream_queue_size <= 0:
            raise ValueError("stream_queue_size must be positive")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **overrides) -> "ServerConfig":
        """Build a config from ``CALLGRAPH_*`` variables (and ``PORT``), then apply overrides."""

        env = os.environ if env is None else env
        values = {
            "host": env.get("CALLGRAPH_HOST") or "127.0.0.1",
            "port": _env_int(env, "PORT", DEFAULT_PORT),
            "debug": env.get("CALLGRAPH_DEBUG", "").strip().lower() in _TRUTHY,
            "poll_interval_ms": _env_int(env, "CALLGRAPH_POLL_MS", 1000),
            "trace_window": _env_int(env, "CALLGRAPH_TRACE_WINDOW", 10_000),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


@dataclass(slots=True)
class ClientConfig:
    """Settings used by instrumented producers when posting call sequences."""

    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = 5.0

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "ClientConfig":
        env = os.environ if env is None else env
        return cls(
            endpoint=env.get("CALLGRAPH_ENDPOINT") or DEFAULT_ENDPOINT,
            timeout=_env_float(env, "CALLGRAPH_TIMEOUT", 5.0),
        )
