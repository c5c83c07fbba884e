import hashlib
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .classifiers import DEFAULT_ALERT_EXCLUSIONS, DEFAULT_ALERT_KEYWORDS, DEFAULT_CONFIRM_KEYWORDS
from .utils import audit


DEFAULT_CONFIG_NAME = "playshield.yaml"
DEFAULT_SAFE_ZONE_CLASSES = ("playshield-controls",)
_KEYWORD_FIELDS = ("confirm", "alert", "confirm_exclusions", "alert_exclusions")
_PROVIDER_FIELDS = (
    "primary_duration_ms",
    "secondary_duration_ms",
    "environment_adjustments_ms",
    "show_countdown",
)


class ConfigError(ValueError):
    pass


@dataclass
class ShieldConfig:
    environment: str = ""
    providers: dict = field(default_factory=dict)
    confirm_keywords: tuple = DEFAULT_CONFIRM_KEYWORDS
    alert_keywords: tuple = DEFAULT_ALERT_KEYWORDS
    confirm_exclusions: tuple = ()
    alert_exclusions: tuple = DEFAULT_ALERT_EXCLUSIONS
    safe_zone_classes: tuple = DEFAULT_SAFE_ZONE_CLASSES
    source: str = "builtin"
    path: Optional[Path] = None
    sha256: str = ""
    raw: dict = field(default_factory=dict)


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _truthy(value):
    return str(value).strip().lower() in ("true", "1", "yes", "on")


def resolve_config_path(path=None) -> Path:
    env_config = str(os.environ.get("PLAYSHIELD_CONFIG", "")).strip()
    candidate = Path(path or env_config or DEFAULT_CONFIG_NAME).expanduser()
    if candidate.is_absolute():
        return candidate

    cwd_candidate = Path.cwd() / candidate
    if cwd_candidate.exists():
        return cwd_candidate

    # Fallback to repository root (../playshield.yaml from playshield/config.py)
    return _repo_root() / candidate


def _read_config_raw(path):
    # Priority 1: config passed directly via environment variable.
    env_content = os.environ.get("PLAYSHIELD_POLICY_CONTENT")
    if env_content:
        audit("LOAD_CONFIG", "Loading shield config from environment variable", "INFO")
        return env_content, "env"

    # Priority 2: config file.
    with open(path, "r", encoding="utf-8") as f:
        return f.read(), "file"


def _string_list(value, fallback):
    if value is None:
        return tuple(fallback)
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        return tuple(fallback)
    return tuple(str(item).strip() for item in value if str(item).strip())


def validate_config(raw) -> list[str]:
    """Returns human readable problems with a parsed config mapping."""
    problems = []
    if not isinstance(raw, dict):
        return ["top level must be a mapping"]

    providers = raw.get("providers", {})
    if providers is None:
        providers = {}
    if not isinstance(providers, dict):
        problems.append("providers must be a mapping of provider id to settings")
        providers = {}
    for provider_id, entry in providers.items():
        if not isinstance(entry, dict):
            problems.append(f"providers.{provider_id} must be a mapping")
            continue
        for key in entry:
            if key not in _PROVIDER_FIELDS:
                problems.append(f"providers.{provider_id}.{key} is not a known field")
        for key in ("primary_duration_ms", "secondary_duration_ms"):
            if key not in entry:
                continue
            try:
                value = int(entry[key])
            except (TypeError, ValueError):
                problems.append(f"providers.{provider_id}.{key} must be an integer")
                continue
            if value < 0:
                problems.append(f"providers.{provider_id}.{key} must not be negative")
        adjustments = entry.get("environment_adjustments_ms", {})
        if adjustments is not None and not isinstance(adjustments, dict):
            problems.append(f"providers.{provider_id}.environment_adjustments_ms must be a mapping")

    keywords = raw.get("keywords", {})
    if keywords is not None and not isinstance(keywords, dict):
        problems.append("keywords must be a mapping with confirm/alert lists")
    elif isinstance(keywords, dict):
        for key in keywords:
            if key not in _KEYWORD_FIELDS:
                problems.append(f"keywords.{key} is not a known classifier")

    classes = raw.get("safe_zone_classes")
    if classes is not None and not isinstance(classes, (list, tuple, str)):
        problems.append("safe_zone_classes must be a list of class names")
    return problems


def config_from_mapping(raw, *, source="builtin", path=None, sha256="") -> ShieldConfig:
    if not isinstance(raw, dict):
        raw = {}
    keywords = raw.get("keywords") if isinstance(raw.get("keywords"), dict) else {}
    providers = raw.get("providers") if isinstance(raw.get("providers"), dict) else {}
    environment = str(os.environ.get("PLAYSHIELD_ENVIRONMENT") or raw.get("environment") or "").strip().lower()
    return ShieldConfig(
        environment=environment,
        providers={str(k): v for k, v in providers.items() if isinstance(v, dict)},
        confirm_keywords=_string_list(keywords.get("confirm"), DEFAULT_CONFIRM_KEYWORDS),
        alert_keywords=_string_list(keywords.get("alert"), DEFAULT_ALERT_KEYWORDS),
        confirm_exclusions=_string_list(keywords.get("confirm_exclusions"), ()),
        alert_exclusions=_string_list(keywords.get("alert_exclusions"), DEFAULT_ALERT_EXCLUSIONS),
        safe_zone_classes=_string_list(raw.get("safe_zone_classes"), DEFAULT_SAFE_ZONE_CLASSES),
        source=source,
        path=path,
        sha256=sha256,
        raw=raw,
    )


def load_config(path=None, *, strict=False) -> ShieldConfig:
    """
    Loads the shield config. Missing or broken config degrades to the
    built-in tables unless strict is set.
    """
    config_path = resolve_config_path(path)
    if _truthy(os.environ.get("PLAYSHIELD_IGNORE_CONFIG", "")):
        return config_from_mapping({})

    source = "builtin"
    try:
        raw_text, source = _read_config_raw(config_path)
        loaded = yaml.safe_load(raw_text)
    except FileNotFoundError:
        if strict:
            raise ConfigError(f"Config file not found: {config_path}")
        audit("LOAD_CONFIG", f"No config at {config_path}; using built-in provider table", "INFO")
        return config_from_mapping({})
    except yaml.YAMLError as e:
        if strict:
            raise ConfigError(f"Invalid YAML: {e}")
        audit("LOAD_CONFIG", f"Invalid shield config ({source}): {e}", "ERROR")
        return config_from_mapping({})
    except Exception as e:
        if strict:
            raise ConfigError(f"Unexpected config load error: {e}")
        audit("LOAD_CONFIG", f"Unexpected config load error: {e}", "ERROR")
        return config_from_mapping({})

    if loaded is None:
        loaded = {}
    problems = validate_config(loaded)
    if problems:
        if strict:
            raise ConfigError("; ".join(problems))
        for problem in problems:
            audit("LOAD_CONFIG", problem, "WARNING")

    digest = hashlib.sha256(raw_text.encode("utf-8")).hexdigest()
    return config_from_mapping(
        loaded,
        source=source,
        path=config_path if source == "file" else None,
        sha256=digest,
    )
