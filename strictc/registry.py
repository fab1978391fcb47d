"""
Rule registry.

Rules are plain data records; the code that checks them lives in the
category tables under `strictc.evaluators`. The corpus ships as `rules.yaml`
next to this module and is loaded once per process.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
import functools
import os
import re
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

import yaml

from .errors import ConfigError
from .model import Category, Severity

CORPUS_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "rules.yaml")

TEMPLATE_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


@dataclass(frozen=True)
class Rule:
    """
    One checkable clause of the coding standard.

    - id: stable dotted identifier, e.g. NAMING.TYPE_SUFFIX
    - category: which evaluator table implements it
    - severity: default (or overridden) severity
    - message: template with {{ name }} placeholders
    - params: tunables such as limits and prefixes
    - fixit: optional template for the suggested replacement text
    """
    id: str
    category: Category
    severity: Severity
    description: str
    message: str
    params: Mapping[str, Any] = field(default_factory=dict)
    fixit: Optional[str] = None
    enabled: bool = True

    def param(self, name: str, default: Any = None) -> Any:
        return self.params.get(name, default)

    def render(self, **values: Any) -> str:
        return render_template(self.message, values)

    def render_fix(self, **values: Any) -> Optional[str]:
        if self.fixit is None:
            return None
        return render_template(self.fixit, values)


def render_template(template: str, values: Mapping[str, Any]) -> str:
    def replace_match(match: "re.Match[str]") -> str:
        value = values.get(match.group(1))
        return "" if value is None else str(value)

    return TEMPLATE_PATTERN.sub(replace_match, template)


# ============================================================
# ======================== REGISTRY ==========================
# ============================================================

class RuleRegistry:
    """
    Insertion-ordered mapping of rule id to Rule.

    Iteration order is the corpus order. Diagnostics at the same position
    are ordered by rule id, not by corpus order.
    """

    def __init__(self, rules: Iterable[Rule]) -> None:
        self._rules: Dict[str, Rule] = {}
        for rule in rules:
            if rule.id in self._rules:
                raise ConfigError(f"duplicate rule id '{rule.id}'")
            self._rules[rule.id] = rule

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    def get(self, rule_id: str) -> Optional[Rule]:
        return self._rules.get(rule_id)

    def __getitem__(self, rule_id: str) -> Rule:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise ConfigError(f"unknown rule id '{rule_id}'") from None

    def enabled(self) -> List[Rule]:
        return [rule for rule in self._rules.values() if rule.enabled]

    def configured(
        self,
        overrides: Mapping[str, Any],
        params: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> "RuleRegistry":
        """
        Return a copy with severity overrides, disabled rules and parameter
        overrides applied. Unknown rule ids and bad severities raise ConfigError.
        """
        rules = dict(self._rules)
        for rule_id, value in overrides.items():
            rule = self[rule_id]
            if value is False or (isinstance(value, str) and value.strip().lower() in ("off", "disabled", "disable")):
                rules[rule_id] = replace(rule, enabled=False)
                continue
            if value is True:
                rules[rule_id] = replace(rule, enabled=True)
                continue
            try:
                severity = value if isinstance(value, Severity) else Severity.parse(value)
            except ValueError as exc:
                raise ConfigError(f"rule '{rule_id}': {exc}") from None
            rules[rule_id] = replace(rule, severity=severity, enabled=True)
        for rule_id, extra in (params or {}).items():
            rule = self[rule_id]
            merged = dict(rules[rule_id].params)
            merged.update(extra)
            rules[rule_id] = replace(rules[rule_id], params=merged)
        return RuleRegistry(rules.values())


# ============================================================
# ==================== YAML CORPUS LOADING ===================
# ============================================================

def _build_rule(raw_rule: Dict[str, Any], origin: str) -> Rule:
    required_fields = {
        "id": raw_rule.get("id"),
        "category": raw_rule.get("category"),
        "severity": raw_rule.get("severity"),
        "message": raw_rule.get("message"),
    }
    missing = [name for name, value in required_fields.items() if value in (None, "")]
    if missing:
        raise ConfigError(f"rule from {origin} is missing required field(s) {missing}")
    try:
        category = Category.parse(required_fields["category"])
        severity = Severity.parse(required_fields["severity"])
    except ValueError as exc:
        raise ConfigError(f"rule '{required_fields['id']}' in {origin}: {exc}") from None
    params = raw_rule.get("params") or {}
    if not isinstance(params, dict):
        raise ConfigError(f"rule '{required_fields['id']}' in {origin}: params must be a mapping")
    return Rule(
        id=str(required_fields["id"]),
        category=category,
        severity=severity,
        description=str(raw_rule.get("description", "")),
        message=str(required_fields["message"]),
        params=params,
        fixit=str(raw_rule["fixit"]) if raw_rule.get("fixit") is not None else None,
    )


def _normalize_rule_docs(doc: Any) -> List[Dict[str, Any]]:
    if doc is None:
        return []
    if isinstance(doc, list):
        return [item for item in doc if isinstance(item, dict)]
    if isinstance(doc, dict):
        if isinstance(doc.get("rules"), list):
            return [item for item in doc["rules"] if isinstance(item, dict)]
        return [doc]
    return []


def load_rules(path: str = CORPUS_PATH) -> List[Rule]:
    """Load Rule records from a YAML corpus file."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            documents = list(yaml.safe_load_all(handle))
    except OSError as exc:
        raise ConfigError(f"could not read rule corpus {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"rule corpus {path} is not valid YAML: {exc}") from exc

    rules: List[Rule] = []
    for doc_index, doc in enumerate(documents):
        for raw_rule in _normalize_rule_docs(doc):
            rules.append(_build_rule(raw_rule, f"{path}#doc{doc_index + 1}"))
    return rules


@functools.lru_cache(maxsize=None)
def default_registry() -> RuleRegistry:
    """The embedded corpus, built once per process."""
    return RuleRegistry(load_rules())
