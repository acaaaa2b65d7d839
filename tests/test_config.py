from __future__ import annotations

import logging
from pathlib import Path

from tunequeue.config import (
    DEFAULT_CORS_ORIGINS,
    DEFAULT_MAX_ATTEMPTS,
    MAX_RECOVERY_INTERVAL_S,
    MIN_RECOVERY_INTERVAL_S,
    get_env,
    load_config,
    load_runtime_env,
)


def test_load_config_defaults() -> None:
    config = load_config({})

    assert config.store.backend == "redis"
    assert config.store.redis_url == "redis://localhost:6379/0"
    assert config.store.key_prefix == "tunequeue"
    assert config.queue.tick_interval_ms == 1000
    assert config.queue.stale_after_ms == 300_000
    assert config.queue.max_attempts == DEFAULT_MAX_ATTEMPTS
    assert config.queue.retention_ttl_ms == 86_400_000
    assert config.progress.heartbeat_s == 30.0
    assert config.progress.close_grace == 1.0
    assert config.spotify.market == "US"
    assert not config.spotify.configured
    assert config.fetcher.audio_format == "mp3"
    assert config.api.port == 3000
    assert config.api.cors_origins == DEFAULT_CORS_ORIGINS
    assert config.api.worker_embedded is False


def test_recovery_interval_is_clamped() -> None:
    low = load_config({"RECOVERY_INTERVAL_S": "5"})
    high = load_config({"RECOVERY_INTERVAL_S": "99999"})

    assert low.queue.recovery_interval_s == MIN_RECOVERY_INTERVAL_S
    assert high.queue.recovery_interval_s == MAX_RECOVERY_INTERVAL_S


def test_invalid_numbers_fall_back_to_defaults() -> None:
    config = load_config({"WORKER_TICK_MS": "soon", "JOB_MAX_ATTEMPTS": "0"})

    assert config.queue.tick_interval_ms == 1000
    assert config.queue.max_attempts == 1


def test_unknown_backend_falls_back_to_redis(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="tunequeue.config"):
        config = load_config({"STORE_BACKEND": "sqlite"})

    assert config.store.backend == "redis"
    assert any(
        getattr(record, "event", "") == "config.store.invalid_backend" for record in caplog.records
    )


def test_redis_url_is_built_from_parts() -> None:
    config = load_config(
        {
            "REDIS_HOST": "cache",
            "REDIS_PORT": "6380",
            "REDIS_DB": "2",
            "REDIS_PASSWORD": "p@ss word",
            "STORE_KEY_PREFIX": "music:",
        }
    )

    assert config.store.redis_url == "redis://:p%40ss%20word@cache:6380/2"
    assert config.store.key_prefix == "music"


def test_cors_origins_are_parsed_from_a_list() -> None:
    config = load_config({"CORS_ORIGINS": "http://a.test, http://b.test\nhttp://c.test"})

    assert config.api.cors_origins == ("http://a.test", "http://b.test", "http://c.test")


def test_env_file_values_are_overridden_by_environment(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# local settings\nPORT=4000\nSPOTIFY_MARKET='de'\nbroken line\n", encoding="utf-8"
    )

    merged = load_runtime_env(base_env={"PORT": "5000"}, env_file=env_file)

    assert merged["PORT"] == "5000"
    assert merged["SPOTIFY_MARKET"] == "de"
    assert load_config(merged).spotify.market == "DE"


def test_get_env_reads_the_runtime_override() -> None:
    assert get_env("STORE_BACKEND") == "memory"
    assert get_env("NOT_SET", "fallback") == "fallback"
