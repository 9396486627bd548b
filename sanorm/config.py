from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from sanorm.core.sanitization.exceptions import ConfigError
from sanorm.core.sanitization.rules import DEFAULT_RULE_NAMES, Rule

OUTPUT_FORMATS = ("minimal", "standard", "detailed")
ERROR_FORMATS = ("simple", "standard", "detailed")

_TRUTHY = {"1", "true", "TRUE", "True", "yes", "YES", "on"}


@dataclass(frozen=True, slots=True)
class SanitizationConfig:
    """Settings consumed by SanitizationEngine and the request adapters.

    - rules: default rule names, applied in this order
    - custom_rules: extra Rule objects registered on engine construction
    - strict_mode + reject_on_violation: raise instead of reporting
    """

    enabled: bool = True
    rules: Tuple[str, ...] = DEFAULT_RULE_NAMES
    custom_rules: Tuple[Rule, ...] = ()
    strict_mode: bool = False
    log_violations: bool = True
    reject_on_violation: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", tuple(self.rules))
        object.__setattr__(self, "custom_rules", tuple(self.custom_rules))
        for name in self.rules:
            if not isinstance(name, str):
                raise TypeError("rules must contain only rule names")
        for rule in self.custom_rules:
            if not isinstance(rule, Rule):
                raise TypeError("custom_rules must contain only Rule instances")


@dataclass(frozen=True, slots=True)
class NormalizationConfig:
    """Settings consumed by NormalizationEngine.

    compress_responses is accepted and carried, but nothing acts on it.
    """

    enabled: bool = True
    format: str = "standard"
    include_metadata: bool = True
    error_format: str = "standard"
    include_debug_info: bool = False
    compress_responses: bool = False
    include_links: bool = False

    def __post_init__(self) -> None:
        if self.format not in OUTPUT_FORMATS:
            raise ValueError(f"invalid format: {self.format}")
        if self.error_format not in ERROR_FORMATS:
            raise ValueError(f"invalid error_format: {self.error_format}")


@dataclass(frozen=True, slots=True)
class PerformanceConfig:
    """Advisory settings for callers; the engines do not read them."""

    enable_caching: bool = True
    max_cache_size: int = 1000
    enable_metrics: bool = True


@dataclass(frozen=True, slots=True)
class ModuleConfig:
    sanitization: SanitizationConfig = field(default_factory=SanitizationConfig)
    normalization: NormalizationConfig = field(default_factory=NormalizationConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)


DEFAULT_CONFIG = ModuleConfig()


# camelCase keys as they appear in JSON config files
_SANITIZATION_KEYS = {
    "enabled": "enabled",
    "rules": "rules",
    "strictMode": "strict_mode",
    "logViolations": "log_violations",
    "rejectOnViolation": "reject_on_violation",
}
_NORMALIZATION_KEYS = {
    "enabled": "enabled",
    "format": "format",
    "includeMetadata": "include_metadata",
    "errorFormat": "error_format",
    "includeDebugInfo": "include_debug_info",
    "compressResponses": "compress_responses",
    "includeLinks": "include_links",
}
_PERFORMANCE_KEYS = {
    "enableCaching": "enable_caching",
    "maxCacheSize": "max_cache_size",
    "enableMetrics": "enable_metrics",
}


def _section_changes(section: Any, keys: Mapping[str, str], section_name: str) -> Dict[str, Any]:
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"{section_name} must be an object")
    out: Dict[str, Any] = {}
    for raw_key, value in section.items():
        attr = keys.get(raw_key)
        if attr is None:
            # Unknown keys (including customRules) cannot be expressed in JSON.
            continue
        if attr == "rules":
            if not isinstance(value, list) or not all(isinstance(x, str) for x in value):
                raise ConfigError("sanitization.rules must be a list of strings")
            value = tuple(value)
        out[attr] = value
    return out


def config_from_mapping(data: Mapping[str, Any], *, base: ModuleConfig = DEFAULT_CONFIG) -> ModuleConfig:
    """Overlay a parsed JSON document on base.

    Raises
    - ConfigError on malformed sections or values.
    """

    try:
        return ModuleConfig(
            sanitization=replace(
                base.sanitization,
                **_section_changes(data.get("sanitization"), _SANITIZATION_KEYS, "sanitization"),
            ),
            normalization=replace(
                base.normalization,
                **_section_changes(data.get("normalization"), _NORMALIZATION_KEYS, "normalization"),
            ),
            performance=replace(
                base.performance,
                **_section_changes(data.get("performance"), _PERFORMANCE_KEYS, "performance"),
            ),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(str(e)) from e


def load_config(path: str, *, base: ModuleConfig = DEFAULT_CONFIG) -> ModuleConfig:
    """Load a JSON configuration file.

    Time:  O(n)
    Space: O(n)
    """

    p = Path(path)
    text = p.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in {p.name}: {e.msg}") from e
    if not isinstance(data, dict):
        raise ConfigError("configuration JSON must be an object")
    return config_from_mapping(data, base=base)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    return raw in _TRUTHY


def _env_str(name: str) -> Optional[str]:
    raw = os.environ.get(name, "").strip()
    return raw or None


def config_from_env(base: ModuleConfig = DEFAULT_CONFIG) -> ModuleConfig:
    """Build a configuration from environment variables.

    - SANORM_CONFIG: JSON file applied on top of base first
    - SANORM_RULES: comma-separated rule names
    - SANORM_STRICT_MODE / SANORM_REJECT_ON_VIOLATION / SANORM_LOG_VIOLATIONS
    - SANORM_FORMAT / SANORM_ERROR_FORMAT / SANORM_DEBUG

    Env vars are treated as trusted server configuration.
    """

    cfg = base
    path = _env_str("SANORM_CONFIG")
    if path:
        cfg = load_config(path, base=cfg)

    san = cfg.sanitization
    rules_raw = _env_str("SANORM_RULES")
    rules = tuple(r.strip() for r in rules_raw.split(",") if r.strip()) if rules_raw else san.rules
    san = replace(
        san,
        rules=rules,
        strict_mode=_env_bool("SANORM_STRICT_MODE", san.strict_mode),
        reject_on_violation=_env_bool("SANORM_REJECT_ON_VIOLATION", san.reject_on_violation),
        log_violations=_env_bool("SANORM_LOG_VIOLATIONS", san.log_violations),
    )

    norm = cfg.normalization
    try:
        norm = replace(
            norm,
            format=_env_str("SANORM_FORMAT") or norm.format,
            error_format=_env_str("SANORM_ERROR_FORMAT") or norm.error_format,
            include_debug_info=_env_bool("SANORM_DEBUG", norm.include_debug_info),
        )
    except ValueError as e:
        raise ConfigError(str(e)) from e

    return ModuleConfig(sanitization=san, normalization=norm, performance=cfg.performance)
