"""Builders shared by the test modules."""

from strictc.config import AnalysisConfig
from strictc.engine import Engine, PIPELINE_RULES
from strictc.evaluators import EVALUATORS, build_context
from strictc.lexer import tokenize
from strictc.registry import default_registry
from strictc.structure import build


def context_for(text, path="demo.c", config=None):
    config = config or AnalysisConfig()
    source = tokenize(path, text)
    tree, summary, _ = build(source)
    return build_context(source, tree, summary, config.compiled_suppression_pattern())


def run_rule(rule_id, text, path="demo.c", **params):
    """Evaluate a single rule on `text` and return its diagnostics."""
    config = AnalysisConfig(params={rule_id: params}) if params else AnalysisConfig()
    rule = config.build_registry()[rule_id]
    ctx = context_for(text, path, config)
    return list(EVALUATORS[rule_id](ctx, rule))


def only(*rule_ids, **extra):
    """AnalysisConfig with every evaluator rule switched off except `rule_ids`."""
    overrides = {
        rule.id: "off"
        for rule in default_registry()
        if rule.id not in rule_ids and not rule.id.startswith(PIPELINE_RULES)
    }
    return AnalysisConfig(overrides=overrides, **extra)


def analyze(text, path="demo.c", config=None):
    return Engine(config).analyze_file(path, text)


def rule_ids(diagnostics):
    return [d.rule_id for d in diagnostics]
