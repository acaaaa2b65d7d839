"""Application configuration utilities for tunequeue."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any, Literal
from urllib.parse import quote

from tunequeue.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ENV_FILE = Path(".env")
DEFAULT_APP_PORT = 3000
DEFAULT_KEY_PREFIX = "tunequeue"
DEFAULT_CORS_ORIGINS: tuple[str, ...] = ("http://localhost:5173",)

DEFAULT_TICK_MS = 1_000
DEFAULT_STALE_AFTER_S = 5 * 60
DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_RECOVERY_INTERVAL_S = 10 * 60
MIN_RECOVERY_INTERVAL_S = 5 * 60
MAX_RECOVERY_INTERVAL_S = 15 * 60
DEFAULT_RETENTION_TTL_S = 24 * 60 * 60
DEFAULT_RETENTION_INTERVAL_S = 60 * 60

DEFAULT_HEARTBEAT_S = 30.0
DEFAULT_CLOSE_GRACE_MS = 1_000

StoreBackendName = Literal["redis", "memory"]
_SUPPORTED_BACKENDS: frozenset[str] = frozenset({"redis", "memory"})

_RUNTIME_ENV_CACHE: dict[str, str] | None = None


def _load_env_file(path: Path) -> dict[str, str]:
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    env_values: dict[str, str] = {}
    for line in contents.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition("=")
        if not sep:
            continue
        env_values[key.strip()] = value.strip().strip('"').strip("'")
    return env_values


def load_runtime_env(
    *,
    base_env: Mapping[str, str] | None = None,
    env_file: Path | None = None,
) -> dict[str, str]:
    """Merge ``.env`` values with the process environment (environment wins)."""

    source = dict(base_env) if base_env is not None else dict(os.environ)
    path = env_file
    if path is None:
        raw_path = source.get("TUNEQUEUE_ENV_FILE")
        path = Path(raw_path).expanduser() if raw_path else DEFAULT_ENV_FILE
    merged = _load_env_file(path)
    merged.update(source)
    return merged


def get_runtime_env() -> Mapping[str, str]:
    global _RUNTIME_ENV_CACHE
    if _RUNTIME_ENV_CACHE is None:
        _RUNTIME_ENV_CACHE = load_runtime_env()
    return _RUNTIME_ENV_CACHE


def override_runtime_env(runtime_env: Mapping[str, str] | None) -> None:
    """Replace (or with ``None`` reset) the cached runtime environment."""

    global _RUNTIME_ENV_CACHE
    _RUNTIME_ENV_CACHE = dict(runtime_env) if runtime_env is not None else None


def get_env(name: str, default: str | None = None) -> str | None:
    value = get_runtime_env().get(name)
    if value is None:
        return default
    return value


def _env_value(env: Mapping[str, Any], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_bool(value: str | None, *, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _coerce_int(value: Any, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _bounded_int(
    value: Any,
    *,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    resolved = _coerce_int(value, default=default)
    if minimum is not None:
        resolved = max(minimum, resolved)
    if maximum is not None:
        resolved = min(maximum, resolved)
    return resolved


def _bounded_float(
    value: Any,
    *,
    default: float,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    try:
        resolved = float(value)
    except (TypeError, ValueError):
        resolved = default
    if minimum is not None:
        resolved = max(minimum, resolved)
    if maximum is not None:
        resolved = min(maximum, resolved)
    return resolved


def _parse_list(value: str | None) -> list[str]:
    if value is None:
        return []
    candidates = value.replace("\n", ",").split(",")
    return [item.strip() for item in candidates if item.strip()]


@dataclass(slots=True, frozen=True)
class StoreConfig:
    backend: StoreBackendName
    redis_url: str
    key_prefix: str

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> StoreConfig:
        raw_backend = (_env_value(env, "STORE_BACKEND") or "redis").lower()
        if raw_backend not in _SUPPORTED_BACKENDS:
            logger.warning(
                "Unsupported store backend %s; falling back to redis",
                raw_backend,
                extra={"event": "config.store.invalid_backend", "backend": raw_backend},
            )
            raw_backend = "redis"
        prefix = (_env_value(env, "STORE_KEY_PREFIX") or DEFAULT_KEY_PREFIX).rstrip(":")
        return cls(
            backend=raw_backend,  # type: ignore[arg-type]
            redis_url=_resolve_redis_url(env),
            key_prefix=prefix or DEFAULT_KEY_PREFIX,
        )


def _resolve_redis_url(env: Mapping[str, Any]) -> str:
    explicit = _env_value(env, "REDIS_URL")
    if explicit:
        return explicit
    host = _env_value(env, "REDIS_HOST") or "localhost"
    port = _bounded_int(_env_value(env, "REDIS_PORT"), default=6379, minimum=1, maximum=65535)
    database = _bounded_int(_env_value(env, "REDIS_DB"), default=0, minimum=0)
    password = _env_value(env, "REDIS_PASSWORD")
    auth = f":{quote(password, safe='')}@" if password else ""
    return f"redis://{auth}{host}:{port}/{database}"


@dataclass(slots=True, frozen=True)
class QueueConfig:
    tick_interval_ms: int
    stale_after_s: int
    max_attempts: int
    recovery_interval_s: int
    retention_ttl_s: int
    retention_interval_s: int

    @property
    def tick_interval(self) -> float:
        return self.tick_interval_ms / 1000.0

    @property
    def stale_after_ms(self) -> int:
        return self.stale_after_s * 1000

    @property
    def retention_ttl_ms(self) -> int:
        return self.retention_ttl_s * 1000

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> QueueConfig:
        return cls(
            tick_interval_ms=_bounded_int(
                _env_value(env, "WORKER_TICK_MS"), default=DEFAULT_TICK_MS, minimum=10
            ),
            stale_after_s=_bounded_int(
                _env_value(env, "JOB_STALE_AFTER_S"), default=DEFAULT_STALE_AFTER_S, minimum=1
            ),
            max_attempts=_bounded_int(
                _env_value(env, "JOB_MAX_ATTEMPTS"), default=DEFAULT_MAX_ATTEMPTS, minimum=1
            ),
            recovery_interval_s=_bounded_int(
                _env_value(env, "RECOVERY_INTERVAL_S"),
                default=DEFAULT_RECOVERY_INTERVAL_S,
                minimum=MIN_RECOVERY_INTERVAL_S,
                maximum=MAX_RECOVERY_INTERVAL_S,
            ),
            retention_ttl_s=_bounded_int(
                _env_value(env, "RETENTION_TTL_S"), default=DEFAULT_RETENTION_TTL_S, minimum=1
            ),
            retention_interval_s=_bounded_int(
                _env_value(env, "RETENTION_INTERVAL_S"),
                default=DEFAULT_RETENTION_INTERVAL_S,
                minimum=1,
            ),
        )


@dataclass(slots=True, frozen=True)
class ProgressConfig:
    heartbeat_s: float
    close_grace_ms: int

    @property
    def close_grace(self) -> float:
        return self.close_grace_ms / 1000.0

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> ProgressConfig:
        return cls(
            heartbeat_s=_bounded_float(
                _env_value(env, "PROGRESS_HEARTBEAT_S"), default=DEFAULT_HEARTBEAT_S, minimum=1.0
            ),
            close_grace_ms=_bounded_int(
                _env_value(env, "PROGRESS_CLOSE_GRACE_MS"),
                default=DEFAULT_CLOSE_GRACE_MS,
                minimum=0,
            ),
        )


@dataclass(slots=True, frozen=True)
class SpotifyConfig:
    client_id: str | None
    client_secret: str | None
    market: str

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> SpotifyConfig:
        return cls(
            client_id=_env_value(env, "SPOTIFY_CLIENT_ID"),
            client_secret=_env_value(env, "SPOTIFY_CLIENT_SECRET"),
            market=(_env_value(env, "SPOTIFY_MARKET") or "US").upper(),
        )


@dataclass(slots=True, frozen=True)
class FetcherConfig:
    downloads_dir: str
    audio_format: str
    search_prefix: str

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> FetcherConfig:
        return cls(
            downloads_dir=_env_value(env, "DOWNLOADS_DIR") or "downloads",
            audio_format=(_env_value(env, "AUDIO_FORMAT") or "mp3").lower(),
            search_prefix=_env_value(env, "FETCH_SEARCH_PREFIX") or "ytsearch1",
        )


@dataclass(slots=True, frozen=True)
class LoggingConfig:
    level: str
    log_file: str | None

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> LoggingConfig:
        return cls(
            level=(_env_value(env, "LOG_LEVEL") or "INFO").upper(),
            log_file=_env_value(env, "LOG_FILE"),
        )


@dataclass(slots=True, frozen=True)
class ApiConfig:
    port: int
    cors_origins: tuple[str, ...]
    worker_embedded: bool

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> ApiConfig:
        origins = tuple(_parse_list(_env_value(env, "CORS_ORIGINS"))) or DEFAULT_CORS_ORIGINS
        return cls(
            port=_bounded_int(
                _env_value(env, "PORT"), default=DEFAULT_APP_PORT, minimum=1, maximum=65535
            ),
            cors_origins=origins,
            worker_embedded=_as_bool(_env_value(env, "WORKER_EMBEDDED"), default=False),
        )


@dataclass(slots=True, frozen=True)
class AppConfig:
    store: StoreConfig
    queue: QueueConfig
    progress: ProgressConfig
    spotify: SpotifyConfig
    fetcher: FetcherConfig
    logging: LoggingConfig
    api: ApiConfig


def load_config(runtime_env: Mapping[str, Any] | None = None) -> AppConfig:
    """Build the application configuration from the runtime environment."""

    env = runtime_env if runtime_env is not None else get_runtime_env()
    return AppConfig(
        store=StoreConfig.from_env(env),
        queue=QueueConfig.from_env(env),
        progress=ProgressConfig.from_env(env),
        spotify=SpotifyConfig.from_env(env),
        fetcher=FetcherConfig.from_env(env),
        logging=LoggingConfig.from_env(env),
        api=ApiConfig.from_env(env),
    )


__all__ = [
    "ApiConfig",
    "AppConfig",
    "FetcherConfig",
    "LoggingConfig",
    "ProgressConfig",
    "QueueConfig",
    "SpotifyConfig",
    "StoreConfig",
    "get_env",
    "get_runtime_env",
    "load_config",
    "load_runtime_env",
    "override_runtime_env",
]
