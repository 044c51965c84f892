from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel

from crm_backend.config import settings

logger = logging.getLogger(__name__)

CATEGORIES = ("sql_injection", "xss", "prompt_injection")
_FLAGS = re.IGNORECASE | re.DOTALL


class PatternDefinition(BaseModel):
    id: str
    description: str = ""
    pattern: str


class PatternVerdict(BaseModel):
    sql_injection: bool = False
    xss: bool = False
    prompt_injection: bool = False
    matched: list[str] = []

    @property
    def flagged(self) -> bool:
        return self.sql_injection or self.xss or self.prompt_injection


class PatternMatcher:
    """Classifies text against YAML-defined heuristic patterns.

    This is a defense-in-depth filter, not a parser: encoded or obfuscated
    payloads can slip through, and persistence relies on parameterized
    queries regardless of what is matched here.
    """

    def __init__(self, patterns_path: str | Path) -> None:
        self._patterns_path = Path(patterns_path)
        self.definitions: dict[str, list[PatternDefinition]] = self.load_patterns()
        self._compiled: dict[str, list[tuple[str, re.Pattern[str]]]] = {
            category: self._compile(defs) for category, defs in self.definitions.items()
        }

    def load_patterns(self) -> dict[str, list[PatternDefinition]]:
        raw = yaml.safe_load(self._patterns_path.read_text()) or {}
        definitions: dict[str, list[PatternDefinition]] = {}
        for category in CATEGORIES:
            entries = raw.get(category) or []
            defs: list[PatternDefinition] = []
            for entry in entries:
                try:
                    defs.append(PatternDefinition(**entry))
                except Exception:
                    logger.warning("Skipping invalid %s pattern: %s", category, entry)
            definitions[category] = defs
        return definitions

    @staticmethod
    def _compile(defs: list[PatternDefinition]) -> list[tuple[str, re.Pattern[str]]]:
        compiled: list[tuple[str, re.Pattern[str]]] = []
        for d in defs:
            try:
                compiled.append((d.id, re.compile(d.pattern, _FLAGS)))
            except re.error as exc:
                logger.warning("Skipping pattern %s: %s", d.id, exc)
        return compiled

    # ── predicates ───────────────────────────────────────

    def matches(self, category: str, text: str) -> list[str]:
        """Return the ids of every pattern in ``category`` that matches ``text``."""
        return [pid for pid, rx in self._compiled.get(category, []) if rx.search(text)]

    def is_sql_injection(self, text: str) -> bool:
        return any(rx.search(text) for _, rx in self._compiled["sql_injection"])

    def is_xss(self, text: str) -> bool:
        return any(rx.search(text) for _, rx in self._compiled["xss"])

    def is_prompt_injection(self, text: str) -> bool:
        return any(rx.search(text) for _, rx in self._compiled["prompt_injection"])

    def is_malicious(self, text: str) -> bool:
        return self.is_sql_injection(text) or self.is_xss(text)

    def classify(self, text: str) -> PatternVerdict:
        matched = {category: self.matches(category, text) for category in CATEGORIES}
        return PatternVerdict(
            sql_injection=bool(matched["sql_injection"]),
            xss=bool(matched["xss"]),
            prompt_injection=bool(matched["prompt_injection"]),
            matched=[pid for ids in matched.values() for pid in ids],
        )


@lru_cache(maxsize=1)
def default_matcher() -> PatternMatcher:
    return PatternMatcher(settings.patterns_file)


def contains_sql_injection(text: str) -> bool:
    return default_matcher().is_sql_injection(text)


def contains_xss(text: str) -> bool:
    return default_matcher().is_xss(text)


def contains_prompt_injection(text: str) -> bool:
    return default_matcher().is_prompt_injection(text)


def contains_malicious_patterns(text: str) -> bool:
    return default_matcher().is_malicious(text)
