"""Categorization rule engine: user rules first, builtin keyword rules second."""
from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol

from .models import CategoryRef
from .normalizer import normalize_description
from .text import looks_like_person_name, normalize_for_match


class RuleLike(Protocol):
    id: str
    name: str
    priority: int
    enabled: bool
    match_type: str
    pattern: str
    account_id: str | None
    min_amount: float | None
    max_amount: float | None
    category_id: str


@dataclass(slots=True, frozen=True)
class RuleCandidate:
    """The fields of a transaction a rule can look at."""

    description: str
    normalized_description: str
    amount: float
    account_id: str | None = None
    counterparty: str | None = None


@dataclass(slots=True, frozen=True)
class CategorizationResult:
    category_id: str | None
    source: str = "none"
    matched_rule: str | None = None


@lru_cache(maxsize=512)
def compile_rule_pattern(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return None


def _match_type(rule: RuleLike) -> str:
    return getattr(rule.match_type, "value", rule.match_type)


def matches_rule(rule: RuleLike, candidate: RuleCandidate) -> bool:
    """Evaluate one rule against a candidate. Never raises for a bad regex."""

    if not rule.enabled:
        return False

    if rule.account_id and candidate.account_id and rule.account_id != candidate.account_id:
        return False

    absolute = abs(candidate.amount)
    if rule.min_amount is not None and absolute < rule.min_amount:
        return False
    if rule.max_amount is not None and absolute > rule.max_amount:
        return False

    if _match_type(rule) == "regex":
        compiled = compile_rule_pattern(rule.pattern)
        if compiled is None:
            return False
        return bool(
            compiled.search(candidate.description or "")
            or compiled.search(candidate.normalized_description or "")
        )

    needle = normalize_description(rule.pattern)
    if not needle:
        return False
    haystack = normalize_description(candidate.normalized_description or candidate.description)
    return needle in haystack


def order_rules(rules: Iterable[RuleLike]) -> list[RuleLike]:
    """Enabled rules by ascending priority; ties keep their input order."""

    return sorted((rule for rule in rules if rule.enabled), key=lambda rule: rule.priority)


def find_matching_rule(rules: Iterable[RuleLike], candidate: RuleCandidate) -> RuleLike | None:
    for rule in order_rules(rules):
        if matches_rule(rule, candidate):
            return rule
    return None


def resolve_rule_category(rules: Iterable[RuleLike], candidate: RuleCandidate) -> str | None:
    """Return the category of the first matching rule in priority order."""

    matched = find_matching_rule(rules, candidate)
    return matched.category_id if matched else None


@dataclass(slots=True, frozen=True)
class BuiltinRule:
    id: str
    category_aliases: tuple[str, ...]
    matches: Callable[[RuleCandidate, str], bool]


def _keyword_rule(pattern: str) -> Callable[[RuleCandidate, str], bool]:
    compiled = re.compile(pattern)
    return lambda _candidate, text: bool(compiled.search(text))


def _pix_to_person(candidate: RuleCandidate, text: str) -> bool:
    return bool(re.search(r"\bPIX\b", text)) and looks_like_person_name(
        candidate.counterparty or candidate.description
    )


BUILTIN_RULES: tuple[BuiltinRule, ...] = (
    BuiltinRule(
        id="builtin.supermercado",
        category_aliases=("SUPERMERCADO", "MERCADO", "MERCADINHO"),
        matches=_keyword_rule(r"\b(SUPERMERCADO|MERCADINHO|PAGUE)\b"),
    ),
    BuiltinRule(
        id="builtin.alimentacao",
        category_aliases=("ALIMENTACAO", "RESTAURANTES", "RESTAURANTE"),
        matches=_keyword_rule(r"\b(PADARIA|LANCHES|ACAI|RESTAURANTE)\b"),
    ),
    BuiltinRule(
        id="builtin.combustivel_transporte",
        category_aliases=("COMBUSTIVEL", "TRANSPORTE"),
        matches=_keyword_rule(r"\b(POSTO|IPIRANGA|COMBUST)"),
    ),
    BuiltinRule(
        id="builtin.pix_pessoa",
        category_aliases=("TRANSFERENCIAS", "PESSOAS"),
        matches=_pix_to_person,
    ),
    BuiltinRule(
        id="builtin.taxas_encargos",
        category_aliases=("TAXAS", "ENCARGOS", "TARIFA", "MULTA", "JUROS"),
        matches=_keyword_rule(r"\b(TARIFA|JUROS|IOF|MULTA|MORA)\b"),
    ),
)


def resolve_category_by_aliases(categories: Sequence[CategoryRef], aliases: Sequence[str]) -> str | None:
    normalized_aliases = [normalize_for_match(alias) for alias in aliases]
    for category in categories:
        name = normalize_for_match(category.name)
        if not name:
            continue
        if any(alias in name or name in alias for alias in normalized_aliases):
            return category.id
    return None


def categorize_row(
    candidate: RuleCandidate,
    rules: Iterable[RuleLike],
    categories: Sequence[CategoryRef] = (),
) -> CategorizationResult:
    """Categorize with the user's rules, falling back to builtin keyword rules.

    Builtin rules only apply when the user owns a category whose name matches
    one of the rule's aliases.
    """

    matched = find_matching_rule(rules, candidate)
    if matched is not None:
        return CategorizationResult(matched.category_id, "user_rule", matched.id)

    text = normalize_for_match(f"{candidate.description} {candidate.counterparty or ''}")
    for builtin in BUILTIN_RULES:
        if not builtin.matches(candidate, text):
            continue
        category_id = resolve_category_by_aliases(categories, builtin.category_aliases)
        if category_id:
            return CategorizationResult(category_id, "builtin_rule", builtin.id)

    return CategorizationResult(None)
