"""
Configuration loader for the Community Pulse agents.
Reads settings from YAML file with environment variable substitution.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class RuntimeConfig:
    transport: str = "memory"             # "memory" for dev, "redis" for durable queues
    redis_url: str = ""
    worker1_queue: str = "worker1"
    worker2_queue: str = "worker2"
    validation_queue: str = "validation"
    consumer_group: str = "pulse-agents"
    result_budget_multiplier: int = 2     # results expected per dispatched post
    batch_size: int = 16                  # max entries fetched per poll
    visibility_timeout_s: float = 60      # unacked entries reappear after this
    idle_backoff_s: float = 2             # wait after an empty poll
    error_backoff_s: float = 5            # wait after a failed poll
    result_wait_timeout_s: float = 300   # partial report once results stop arriving


@dataclass
class SourceConfig:
    base_url: str = "https://techcommunity.microsoft.com/category/azure-ai-foundry"
    page_size: int = 50
    timeout_s: float = 30.0


@dataclass
class ReportConfig:
    output_dir: str = "./output"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    json: bool = False


@dataclass
class Settings:
    app_name: str = "CommunityPulse"
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _resolved(value: Any) -> str:
    """Treat an unset ${VAR} placeholder as empty."""
    if not value or re.fullmatch(r'\$\{(\w+)\}', str(value)):
        return ""
    return str(value)


def _float_or_default(value: Any, default: float) -> float:
    if value in (None, ""):
        return default
    return float(value)


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "PULSE_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)

        if "runtime" in raw:
            rt = raw["runtime"] or {}
            defaults = RuntimeConfig()
            settings.runtime = RuntimeConfig(
                transport=rt.get("transport", defaults.transport),
                redis_url=_resolved(rt.get("redis_url", defaults.redis_url)),
                worker1_queue=rt.get("worker1_queue", defaults.worker1_queue),
                worker2_queue=rt.get("worker2_queue", defaults.worker2_queue),
                validation_queue=rt.get("validation_queue", defaults.validation_queue),
                consumer_group=rt.get("consumer_group", defaults.consumer_group),
                result_budget_multiplier=int(rt.get("result_budget_multiplier",
                                                    defaults.result_budget_multiplier)),
                batch_size=int(rt.get("batch_size", defaults.batch_size)),
                visibility_timeout_s=float(rt.get("visibility_timeout_s",
                                                  defaults.visibility_timeout_s)),
                idle_backoff_s=float(rt.get("idle_backoff_s", defaults.idle_backoff_s)),
                error_backoff_s=float(rt.get("error_backoff_s", defaults.error_backoff_s)),
                result_wait_timeout_s=_float_or_default(rt.get("result_wait_timeout_s"),
                                                        defaults.result_wait_timeout_s),
            )

        if "source" in raw:
            src = raw["source"] or {}
            settings.source = SourceConfig(
                base_url=src.get("base_url", settings.source.base_url),
                page_size=int(src.get("page_size", settings.source.page_size)),
                timeout_s=float(src.get("timeout_s", settings.source.timeout_s)),
            )

        if "report" in raw:
            rep = raw["report"] or {}
            settings.report = ReportConfig(
                output_dir=rep.get("output_dir", settings.report.output_dir),
            )

        if "logging" in raw:
            lg = raw["logging"] or {}
            settings.logging = LoggingConfig(
                level=str(lg.get("level", settings.logging.level)),
                json=bool(lg.get("json", settings.logging.json)),
            )

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
