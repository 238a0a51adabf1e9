"""YAML/dict config loader for pii-anonymizer.

Supports loading from a YAML file or a plain dict (for embedding in a
larger application config). Environment variables override both.

Example YAML:

    pii_anonymizer:
      language: en
      score_threshold: 0.35
      ner:
        model: en_core_web_sm
        auto_download: true
        entities:
          - PERSON
          - ORGANIZATION
          - LOCATION
      semantic:
        enabled: true
      skip_types:
        - DATE_TIME
      allow_list:
        - safe@example.com
      proxy:
        host: 127.0.0.1
        port: 18792
      log_level: INFO
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping

import yaml

if TYPE_CHECKING:
    from .session import SessionManager

ENV_PREFIX = "PII_ANONYMIZER_"


@dataclass
class ManagerConfig:
    """Settings for the session manager and the detectors it builds."""
    language: str = "en"
    score_threshold: float = 0.35     # minimum confidence for NER matches
    ner_entities: list[str] | None = None  # None = presidio_layer defaults
    ner_model: str | None = None      # None = "<language>_core_web_sm"
    auto_download: bool = True
    semantic: bool = True             # semantic enrichment in regex+NER mode
    skip_types: set[str] = field(default_factory=set)
    allow_list: set[str] = field(default_factory=set)
    log_level: str = "INFO"
    proxy_host: str = "127.0.0.1"
    proxy_port: int = 18792


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def load_config(
    data: Mapping[str, Any] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ManagerConfig:
    """Normalize a config dict (from YAML or inline) into a ManagerConfig."""
    data = dict(data or {})
    # Support nested under "pii_anonymizer" key or flat
    if "pii_anonymizer" in data:
        data = dict(data["pii_anonymizer"] or {})

    ner = data.get("ner") or {}
    proxy = data.get("proxy") or {}
    semantic = data.get("semantic")
    if semantic is None or isinstance(semantic, Mapping):
        semantic = (semantic or {}).get("enabled", True)
    config = ManagerConfig(
        language=data.get("language", "en"),
        score_threshold=float(data.get("score_threshold", 0.35)),
        ner_entities=ner.get("entities"),
        ner_model=ner.get("model"),
        auto_download=_as_bool(ner.get("auto_download", True)),
        semantic=_as_bool(semantic),
        skip_types=set(data.get("skip_types") or []),
        allow_list=set(data.get("allow_list") or []),
        log_level=str(data.get("log_level", "INFO")).upper(),
        proxy_host=proxy.get("host", "127.0.0.1"),
        proxy_port=int(proxy.get("port", 18792)),
    )
    return apply_env(config, os.environ if environ is None else environ)


def apply_env(config: ManagerConfig, environ: Mapping[str, str]) -> ManagerConfig:
    """Override config fields from PII_ANONYMIZER_* variables."""
    for name, (attr, convert) in _ENV_OVERRIDES.items():
        value = environ.get(ENV_PREFIX + name, "")
        if value:
            setattr(config, attr, convert(value))
    return config


_ENV_OVERRIDES: dict[str, tuple[str, Any]] = {
    "LANGUAGE": ("language", str),
    "THRESHOLD": ("score_threshold", float),
    "NER_MODEL": ("ner_model", str),
    "AUTO_DOWNLOAD": ("auto_download", _as_bool),
    "SEMANTIC": ("semantic", _as_bool),
    "LOG_LEVEL": ("log_level", str.upper),
    "PROXY_HOST": ("proxy_host", str),
    "PROXY_PORT": ("proxy_port", int),
}


def load_from_yaml(path: str | Path, *, environ: Mapping[str, str] | None = None) -> ManagerConfig:
    """Load config from a YAML file."""
    with open(path, encoding="utf-8") as f:
        return load_config(yaml.safe_load(f) or {}, environ=environ)


def create_manager(config: ManagerConfig | Mapping[str, Any] | None = None) -> SessionManager:
    """Create a session manager from a ManagerConfig or a raw config dict."""
    from .session import SessionManager

    if not isinstance(config, ManagerConfig):
        config = load_config(config)
    return SessionManager(config)
