"""Rule registry: load, validate and index the rule set."""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from vulnscan.errors import RuleLoadError
from vulnscan.languages import known_languages
from vulnscan.severity import Severity
from vulnscan.utils import parse_yaml_text, read_yaml_file

from . import WILDCARD_LANGUAGE, Category, Rule
from .detectors import build_detector

logger = logging.getLogger(__name__)

CATALOG_PACKAGE = "vulnscan.rules.catalog"
REQUIRED_KEYS = ("id", "category", "description", "detector", "severity", "remediation", "languages")


class RuleRegistry:
    """Immutable, language-indexed set of rules.

    Build one with :meth:`load` and pass it to every scan that needs it; it is
    never mutated after construction.
    """

    def __init__(self, rules: Iterable[Rule], skipped: Iterable[RuleLoadError] = ()) -> None:
        self._rules: Tuple[Rule, ...] = tuple(rules)
        self._by_id: Dict[str, Rule] = {rule.id: rule for rule in self._rules}
        self._positions: Dict[str, int] = {rule.id: idx for idx, rule in enumerate(self._rules)}
        languages = set(known_languages())
        languages.update(language for rule in self._rules for language in rule.languages)
        languages.discard(WILDCARD_LANGUAGE)
        self._by_language: Dict[str, Tuple[Rule, ...]] = {
            language: self._matching(language) for language in sorted(languages)
        }
        self.skipped: Tuple[RuleLoadError, ...] = tuple(skipped)

    @classmethod
    def load(cls, sources: Iterable[Mapping[str, Any]]) -> "RuleRegistry":
        """Validate ``sources`` and build a registry from the well-formed ones.

        Malformed rules are logged and skipped. Raises :class:`RuleLoadError`
        when no valid rule remains.
        """

        rules: List[Rule] = []
        skipped: List[RuleLoadError] = []
        seen_ids = set()
        for index, source in enumerate(sources):
            try:
                rule = parse_rule(source)
                if rule.id in seen_ids:
                    raise RuleLoadError(f"duplicate rule id {rule.id!r}", rule_id=rule.id)
            except RuleLoadError as exc:
                logger.warning("Skipping rule #%d: %s", index, exc)
                skipped.append(exc)
                continue
            seen_ids.add(rule.id)
            rules.append(rule)

        if not rules:
            raise RuleLoadError(f"no valid rules loaded ({len(skipped)} skipped)")
        logger.debug("Loaded %d rules, skipped %d", len(rules), len(skipped))
        return cls(rules, skipped)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def lookup(self, language: str) -> Tuple[Rule, ...]:
        """Return the rules applicable to ``language`` in registration order."""

        indexed = self._by_language.get(language)
        if indexed is not None:
            return indexed
        return self._matching(language)

    def _matching(self, language: str) -> Tuple[Rule, ...]:
        return tuple(rule for rule in self._rules if rule.applies_to(language))

    def get(self, rule_id: str) -> Optional[Rule]:
        return self._by_id.get(rule_id)

    def position(self, rule_id: str) -> int:
        """Return the registration index of ``rule_id``."""

        return self._positions[rule_id]

    def categories(self) -> List[Category]:
        present = {rule.category for rule in self._rules}
        return [category for category in Category if category in present]

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)


# ----------------------------------------------------------------------
# Parsing helpers
# ----------------------------------------------------------------------
def parse_rule(source: Mapping[str, Any]) -> Rule:
    """Turn one rule mapping into a :class:`Rule`, raising :class:`RuleLoadError`."""

    if not isinstance(source, Mapping):
        raise RuleLoadError("rule entry must be a mapping")
    rule_id = str(source.get("id", "")).strip() or None
    missing = [key for key in REQUIRED_KEYS if source.get(key) in (None, "", [], {})]
    if missing:
        raise RuleLoadError(f"rule is missing keys: {', '.join(missing)}", rule_id=rule_id)

    try:
        category = Category(str(source["category"]).strip().lower())
    except ValueError:
        raise RuleLoadError(f"unknown category {source['category']!r}", rule_id=rule_id) from None
    try:
        severity = Severity.parse(source["severity"])
    except ValueError:
        raise RuleLoadError(f"unknown severity {source['severity']!r}", rule_id=rule_id) from None

    languages = source["languages"]
    if isinstance(languages, str):
        languages = [languages]
    if not isinstance(languages, (list, tuple, set, frozenset)):
        raise RuleLoadError("'languages' must be a list", rule_id=rule_id)
    language_set = frozenset(str(language).strip().lower() for language in languages if str(language).strip())
    if not language_set:
        raise RuleLoadError("'languages' must not be empty", rule_id=rule_id)

    try:
        detector = build_detector(source["detector"])
    except ValueError as exc:
        raise RuleLoadError(f"detector does not compile: {exc}", rule_id=rule_id) from exc

    references = source.get("references") or ()
    if isinstance(references, str):
        references = (references,)

    return Rule(
        id=str(rule_id),
        category=category,
        description=str(source["description"]).strip(),
        detector=detector,
        severity=severity,
        remediation=" ".join(str(source["remediation"]).split()),
        languages=language_set,
        title=str(source.get("title", "")).strip(),
        references=tuple(str(ref) for ref in references),
    )


def rule_sources_from_document(document: Any, origin: str) -> List[Dict[str, Any]]:
    """Flatten a rule file into rule mappings.

    A rule file is either a list of rules or a mapping with ``rules`` and an
    optional file-level ``category`` applied to rules that omit their own.
    """

    if isinstance(document, list):
        entries, category = document, None
    elif isinstance(document, Mapping):
        entries, category = document.get("rules", []), document.get("category")
    else:
        raise RuleLoadError(f"{origin}: rule file must be a list or a mapping")
    if not isinstance(entries, list):
        raise RuleLoadError(f"{origin}: 'rules' must be a list")

    sources: List[Dict[str, Any]] = []
    for entry in entries:
        if isinstance(entry, Mapping):
            entry = dict(entry)
            if category is not None:
                entry.setdefault("category", category)
        sources.append(entry)
    return sources


def load_rule_files(paths: Iterable[str | Path]) -> List[Dict[str, Any]]:
    """Read YAML rule files into rule mappings, in the given order."""

    sources: List[Dict[str, Any]] = []
    for path in paths:
        rule_path = Path(path)
        try:
            document = read_yaml_file(rule_path)
        except (OSError, ValueError) as exc:
            raise RuleLoadError(f"{rule_path}: cannot parse rule file: {exc}") from exc
        if document is None:
            raise RuleLoadError(f"Rules file not found: {rule_path}")
        sources.extend(rule_sources_from_document(document, str(rule_path)))
    return sources


def builtin_rule_sources() -> List[Dict[str, Any]]:
    """Return the shipped catalogue, one YAML file per category."""

    catalog = resources.files(CATALOG_PACKAGE)
    sources: List[Dict[str, Any]] = []
    by_name = {entry.name: entry for entry in catalog.iterdir() if entry.name.endswith(".yaml")}
    order = {category.value: idx for idx, category in enumerate(Category)}
    for name in sorted(by_name, key=lambda item: (order.get(item[: -len(".yaml")], len(order)), item)):
        text = by_name[name].read_text(encoding="utf-8")
        try:
            document = parse_yaml_text(text)
        except ValueError as exc:
            raise RuleLoadError(f"{name}: cannot parse rule file: {exc}") from exc
        sources.extend(rule_sources_from_document(document, name))
    return sources
