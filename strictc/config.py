"""
Analysis configuration.

The core only sees an AnalysisConfig; reading one from a YAML file is a thin
convenience for the command line.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import re
from typing import Any, Dict, Optional, Pattern

import yaml

from .errors import ConfigError
from .registry import RuleRegistry, default_registry

# Matched inside comment text. `action` selects the directive kind, `rules`
# is an optional list of rule ids separated by spaces or commas.
DEFAULT_SUPPRESSION_PATTERN = (
    r"strictc-(?P<action>disable-next-line|disable-file|disable|enable)\b"
    r"(?P<rules>(?:[ \t,]+[A-Z][A-Z0-9_]*\.[A-Z0-9_]+)*)"
)


@dataclass
class AnalysisConfig:
    """
    - overrides: rule id -> severity name, or "off" / False to disable
    - max_line_length: shortcut for WHITESPACE.LINE_LENGTH's limit
    - suppression_pattern: regex with named groups `action` and `rules`
    - params: rule id -> parameter overrides
    - jobs: worker count for multi-file runs (None = executor default)
    - parallel_rules: evaluate the rules of one file on a thread pool too
    """
    overrides: Dict[str, Any] = field(default_factory=dict)
    max_line_length: Optional[int] = None
    suppression_pattern: str = DEFAULT_SUPPRESSION_PATTERN
    params: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    jobs: Optional[int] = None
    parallel_rules: bool = False

    def compiled_suppression_pattern(self) -> Pattern[str]:
        try:
            pattern = re.compile(self.suppression_pattern)
        except re.error as exc:
            raise ConfigError(f"invalid suppression pattern: {exc}") from None
        if "action" not in pattern.groupindex:
            raise ConfigError("suppression pattern must define a named group 'action'")
        return pattern

    def build_registry(self, base: Optional[RuleRegistry] = None) -> RuleRegistry:
        """
        Validate this configuration against `base` (the embedded corpus by
        default) and return the configured registry.
        """
        base = base or default_registry()
        if self.max_line_length is not None:
            if isinstance(self.max_line_length, bool) or not isinstance(self.max_line_length, int) \
                    or self.max_line_length <= 0:
                raise ConfigError(f"max_line_length must be a positive integer, got {self.max_line_length!r}")
        if self.jobs is not None and (not isinstance(self.jobs, int) or self.jobs <= 0):
            raise ConfigError(f"jobs must be a positive integer, got {self.jobs!r}")
        for rule_id, extra in self.params.items():
            if not isinstance(extra, dict):
                raise ConfigError(f"parameters for rule '{rule_id}' must be a mapping")
        self.compiled_suppression_pattern()

        params = {k: dict(v) for k, v in self.params.items()}
        if self.max_line_length is not None:
            params.setdefault("WHITESPACE.LINE_LENGTH", {})["max_line_length"] = self.max_line_length
        return base.configured(self.overrides, params)


def config_from_mapping(raw: Any, origin: str = "<config>") -> AnalysisConfig:
    if raw is None:
        return AnalysisConfig()
    if not isinstance(raw, dict):
        raise ConfigError(f"{origin}: configuration must be a mapping")
    unknown = set(raw) - {"rules", "max_line_length", "suppression_pattern", "jobs", "parallel_rules"}
    if unknown:
        raise ConfigError(f"{origin}: unknown configuration key(s) {sorted(unknown)}")

    overrides: Dict[str, Any] = {}
    params: Dict[str, Dict[str, Any]] = {}
    rules = raw.get("rules") or {}
    if not isinstance(rules, dict):
        raise ConfigError(f"{origin}: 'rules' must map rule ids to a severity or a mapping")
    for rule_id, value in rules.items():
        if isinstance(value, dict):
            value = dict(value)
            if "severity" in value:
                overrides[str(rule_id)] = value.pop("severity")
            if value:
                params[str(rule_id)] = value
        else:
            overrides[str(rule_id)] = value

    config = AnalysisConfig(overrides=overrides, params=params)
    if "max_line_length" in raw:
        config.max_line_length = raw["max_line_length"]
    if "suppression_pattern" in raw:
        config.suppression_pattern = str(raw["suppression_pattern"])
    if "jobs" in raw:
        config.jobs = raw["jobs"]
    if "parallel_rules" in raw:
        config.parallel_rules = bool(raw["parallel_rules"])
    return config


def load_config(path: str) -> AnalysisConfig:
    """Read an AnalysisConfig from a YAML file."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigError(f"could not read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"config file {path} is not valid YAML: {exc}") from exc
    return config_from_mapping(raw, origin=path)
