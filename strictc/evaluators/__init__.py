"""
Rule evaluators, one module per category.

Each module exposes an EVALUATORS table mapping rule id to a function
`(FileContext, Rule) -> Iterable[Diagnostic]`. Rules with no entry here
(LEX.*, SUPPRESSION.*, ENGINE.*, STRUCTURE.UNBALANCED) are reported by the
pipeline stages that detect them.
"""

from __future__ import annotations
from typing import Dict

from ..model import Category
from . import comments, documentation, keywords, naming, structure, whitespace
from .base import Evaluator, FileContext, build_context

CATEGORY_TABLES: Dict[Category, Dict[str, Evaluator]] = {
    Category.NAMING: naming.EVALUATORS,
    Category.WHITESPACE: whitespace.EVALUATORS,
    Category.STRUCTURE: structure.EVALUATORS,
    Category.COMMENTS: comments.EVALUATORS,
    Category.KEYWORDS: keywords.EVALUATORS,
    Category.DOCUMENTATION: documentation.EVALUATORS,
}

EVALUATORS: Dict[str, Evaluator] = {}
for _table in CATEGORY_TABLES.values():
    EVALUATORS.update(_table)


__all__ = ["CATEGORY_TABLES", "EVALUATORS", "Evaluator", "FileContext", "build_context"]
