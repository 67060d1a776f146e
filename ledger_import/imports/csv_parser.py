"""CSV statement parsing: delimiter and header detection, column mapping, row analysis."""
from __future__ import annotations

import csv
import io
import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, field, fields

from ledger_import.services.exceptions import InvalidAmountError, InvalidDateError, RowError

from .models import ParsedDraftTransaction, ParseSummary, RowDiagnostic, RowStatus
from .normalizer import apply_type_hint, normalize_description, parse_flexible_date, parse_money
from .text import decode_import_text, fix_common_mojibake

logger = logging.getLogger(__name__)

DELIMITER_CANDIDATES = (",", ";", "\t", "|")
DELIMITER_SAMPLE_CHARS = 2000
DELIMITER_SAMPLE_ROWS = 25
DEFAULT_HEADER_SCAN_ROWS = 30

HEADER_KEYWORDS = (
    "DATA", "DATE", "LANC", "POSTED", "DESCR", "HIST", "MEMO", "DETAIL", "VALOR",
    "AMOUNT", "DEBIT", "CREDIT", "CONTA", "ACCOUNT", "TIPO", "TYPE", "SALDO", "BALANCE",
)

_DATA_ROW_DATE = re.compile(r"\b(\d{2}[/\-.]\d{2}[/\-.]\d{2,4}|\d{4}-\d{2}-\d{2})\b")
_DATA_ROW_AMOUNT = re.compile(r"[+-]?\s*(?:R\$\s*)?(?:\d{1,3}(?:[.,]\d{3})+|\d+)[.,]\d{2}\b")
_IGNORED_DESCRIPTION = re.compile(
    r"\b(SALDO(?:\s+ANTERIOR|\s+FINAL|\s+DISPONIVEL|\s+DO\s+DIA)?|TOTAL(?:\s+DO\s+DIA)?|RESUMO)\b"
)
_EXTERNAL_ID_HEADERS = ("FITID", "ID", "CODIGO", "CODIGO TRANSACAO", "DOCUMENTO")

EXACT_WEIGHT = 1.0
PARTIAL_WEIGHT = 0.6


@dataclass(slots=True)
class CsvParseResult:
    columns: list[str]
    rows: list[dict[str, str]]
    delimiter: str
    encoding: str
    header_index: int = 0
    header_score: float = 0.0
    header_confidence: float = 0.0


@dataclass(slots=True)
class CsvMapping:
    """Column chosen for each semantic role; None when the role is unmapped."""

    date: str | None = None
    description: str | None = None
    history: str | None = None
    amount: str | None = None
    debit: str | None = None
    credit: str | None = None
    type: str | None = None
    account: str | None = None
    balance_after: str | None = None
    external_id: str | None = None

    def as_dict(self) -> dict[str, str]:
        return {item.name: getattr(self, item.name) for item in fields(self) if getattr(self, item.name)}


@dataclass(slots=True)
class ColumnMatch:
    """How a role was resolved to a column."""

    role: str
    column: str | None
    exact: bool

    @property
    def achieved(self) -> float:
        if self.column is None:
            return 0.0
        return EXACT_WEIGHT if self.exact else PARTIAL_WEIGHT


@dataclass(slots=True)
class CsvMappingSuggestion:
    mapping: CsvMapping
    matches: dict[str, ColumnMatch] = field(default_factory=dict)

    @property
    def confidence(self) -> float:
        """Mean achievement over the required roles: date, description and money."""

        debit, credit = self._achieved("debit"), self._achieved("credit")
        if "amount" in self.matches:
            money = self._achieved("amount")
        else:
            money = min(debit, credit) or max(debit, credit) * PARTIAL_WEIGHT
        description = self._achieved("description") or self._achieved("history") * PARTIAL_WEIGHT
        return round((self._achieved("date") + description + money) / 3, 4)

    @property
    def confidence_label(self) -> str:
        if self.confidence >= 0.8:
            return "high"
        if self.confidence >= 0.55:
            return "medium"
        return "low"

    def _achieved(self, role: str) -> float:
        match = self.matches.get(role)
        return match.achieved if match else 0.0


@dataclass(slots=True)
class CsvMappingAnalysis:
    rows: list[ParsedDraftTransaction]
    diagnostics: list[RowDiagnostic]
    summary: ParseSummary


def _sanitize_cell(value: str | None) -> str:
    cleaned = fix_common_mojibake((value or "").strip().strip('"'))
    return " ".join(cleaned.split())


def _split_rows(text: str, delimiter: str) -> list[list[str]]:
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
    return [row for row in reader if any(cell.strip() for cell in row)]


def detect_delimiter(sample: str) -> str:
    """Pick the delimiter giving the most rows with a consistent column count."""

    best_candidate = ","
    best_score = -math.inf
    for candidate in DELIMITER_CANDIDATES:
        matrix = _split_rows(sample, candidate)[:DELIMITER_SAMPLE_ROWS]
        viable = [row for row in matrix if sum(1 for cell in row if _sanitize_cell(cell)) > 1]
        if not viable:
            continue
        average = sum(len(row) for row in viable) / len(viable)
        variance = sum((len(row) - average) ** 2 for row in viable) / len(viable)
        score = len(viable) * 10 + average - variance
        if score > best_score:
            best_score = score
            best_candidate = candidate
    return best_candidate


def _normalize_header(value: str) -> str:
    return normalize_description(re.sub(r"[_\-]+", " ", value or ""))


def _looks_like_header_cell(value: str) -> bool:
    normalized = _normalize_header(value)
    return any(keyword in normalized for keyword in HEADER_KEYWORDS)


def _looks_like_data_row(row: Sequence[str]) -> bool:
    joined = " ".join(row)
    return bool(_DATA_ROW_DATE.search(joined) and _DATA_ROW_AMOUNT.search(joined))


def score_header_row(row: Sequence[str], next_row: Sequence[str] | None = None) -> tuple[float, int, int]:
    """Score a candidate header row; returns (score, non_empty, keyword_hits)."""

    non_empty = sum(1 for cell in row if _sanitize_cell(cell))
    hits = sum(1 for cell in row if _sanitize_cell(cell) and _looks_like_header_cell(cell))
    score = non_empty + hits * 3
    if _looks_like_data_row(row):
        score -= 2
    elif hits and next_row is not None and _looks_like_data_row(next_row):
        score += 2
    return float(score), non_empty, hits


def find_header_index(matrix: Sequence[Sequence[str]], scan_rows: int = DEFAULT_HEADER_SCAN_ROWS) -> tuple[int, float, float]:
    """Return (index, score, confidence) of the most header-like row.

    Confidence is the share of non-empty cells recognized as header keywords.
    """

    best_index, best_score, best_confidence = 0, -math.inf, 0.0
    inspected = list(matrix[:scan_rows])
    for index, row in enumerate(inspected):
        next_row = matrix[index + 1] if index + 1 < len(matrix) else None
        score, non_empty, hits = score_header_row(row, next_row)
        if non_empty < 2:
            continue
        if score > best_score:
            best_index, best_score = index, score
            best_confidence = hits / non_empty
    if best_score == -math.inf:
        return 0, 0.0, 0.0
    return best_index, best_score, round(best_confidence, 4)


def build_columns(header_row: Sequence[str]) -> list[str]:
    """Column names from a header row: blanks become col_N, repeats get _2, _3 suffixes."""

    seen: dict[str, int] = {}
    columns: list[str] = []
    for index, cell in enumerate(header_row):
        base = _sanitize_cell(cell) or f"col_{index + 1}"
        key = normalize_description(base)
        seen[key] = seen.get(key, 0) + 1
        columns.append(f"{base}_{seen[key]}" if seen[key] > 1 else base)
    return columns


def _is_repeated_header(row: dict[str, str], columns: Sequence[str]) -> bool:
    if not columns:
        return False
    matches = 0
    for column in columns:
        expected = normalize_description(column)
        actual = normalize_description(row.get(column, ""))
        if expected and actual and expected == actual:
            matches += 1
    return matches >= max(2, math.ceil(len(columns) * 0.6))


def parse_csv_buffer(content: bytes, header_scan_rows: int = DEFAULT_HEADER_SCAN_ROWS) -> CsvParseResult:
    """Decode a CSV export and return its columns and data rows as dicts."""

    text, encoding = decode_import_text(content)
    text = fix_common_mojibake(text)
    delimiter = detect_delimiter(text[:DELIMITER_SAMPLE_CHARS])
    matrix = _split_rows(text, delimiter)
    if not matrix:
        return CsvParseResult(columns=[], rows=[], delimiter=delimiter, encoding=encoding)

    header_index, header_score, header_confidence = find_header_index(matrix, header_scan_rows)
    columns = build_columns(matrix[header_index])

    rows: list[dict[str, str]] = []
    for record in matrix[header_index + 1:]:
        row = {column: _sanitize_cell(record[index] if index < len(record) else "") for index, column in enumerate(columns)}
        if not any(row.values()) or _is_repeated_header(row, columns):
            continue
        rows.append(row)

    logger.debug(
        "CSV parsed: delimiter=%r encoding=%s header_index=%s columns=%s rows=%s",
        delimiter,
        encoding,
        header_index,
        len(columns),
        len(rows),
    )
    return CsvParseResult(
        columns=columns,
        rows=rows,
        delimiter=delimiter,
        encoding=encoding,
        header_index=header_index,
        header_score=header_score,
        header_confidence=header_confidence,
    )


ROLE_ALIASES: dict[str, tuple[str, ...]] = {
    "date": ("data", "date", "dt", "lancamento", "posted", "data lancamento", "release date", "transaction date", "posting date"),
    "description": (
        "descricao", "description", "beneficiario", "favorecido", "destino", "estabelecimento",
        "memo", "name", "details", "narrative", "payee",
    ),
    "history": ("historico", "history", "tipo lancamento", "tipo transacao", "transaction type"),
    "amount": ("valor", "amount", "vlr", "valor lancado", "valor final", "net amount", "transaction net amount", "transaction amount"),
    "debit": ("debito", "saida", "valor debito", "debit", "withdrawal"),
    "credit": ("credito", "entrada", "valor credito", "credit", "deposit"),
    "type": ("tipo", "type", "natureza", "debito credito", "d/c"),
    "account": ("conta", "account", "bank", "cartao"),
    "balance_after": ("saldo", "saldo final", "balance", "balance after", "saldo apos", "partial balance"),
    "external_id": ("fitid", "id", "codigo", "codigo transacao", "documento", "reference id", "transaction id", "id da operacao"),
}

ROLE_AVOID: dict[str, tuple[str, ...]] = {
    "amount": ("saldo", "balance"),
    "debit": ("saldo", "balance"),
    "credit": ("saldo", "balance"),
    "history": ("descri",),
}

EXACT_ONLY_ROLES = frozenset({"external_id"})


def pick_column(
    columns: Sequence[str],
    aliases: Sequence[str],
    avoid: Sequence[str] = (),
    exact_only: bool = False,
    taken: frozenset[str] = frozenset(),
) -> ColumnMatch | None:
    """Resolve a role: exact synonym match first, then substring match."""

    normalized_aliases = [_normalize_header(alias) for alias in aliases]
    normalized_avoid = [_normalize_header(item) for item in avoid]
    eligible = []
    for column in columns:
        if column in taken:
            continue
        normalized = _normalize_header(column)
        if any(item and (item in normalized or normalized in item) for item in normalized_avoid):
            continue
        eligible.append((normalized, column))

    for normalized, column in eligible:
        if normalized in normalized_aliases:
            return ColumnMatch(role="", column=column, exact=True)
    if exact_only:
        return None
    for normalized, column in eligible:
        if any(alias in normalized for alias in normalized_aliases):
            return ColumnMatch(role="", column=column, exact=False)
    return None


def suggest_csv_mapping(columns: Sequence[str]) -> CsvMappingSuggestion:
    """Map detected column names to semantic roles by synonym matching."""

    matches: dict[str, ColumnMatch] = {}
    for role, aliases in ROLE_ALIASES.items():
        taken: frozenset[str] = frozenset()
        if role == "type":
            taken = frozenset(
                match.column for key, match in matches.items() if key in ("description", "history") and match.column
            )
        match = pick_column(
            columns,
            aliases,
            ROLE_AVOID.get(role, ()),
            exact_only=role in EXACT_ONLY_ROLES,
            taken=taken,
        )
        if match is not None:
            match.role = role
            matches[role] = match

    if "description" not in matches:
        for column in columns:
            normalized = _normalize_header(column)
            if any(token in normalized for token in ("DESCRI", "BENEF", "DESTIN")):
                matches["description"] = ColumnMatch(role="description", column=column, exact=False)
                break

    mapping = CsvMapping(**{role: match.column for role, match in matches.items()})
    if mapping.description is None and mapping.history:
        mapping.description = mapping.history
    if mapping.type and mapping.type in (mapping.description, mapping.history):
        mapping.type = None
        matches.pop("type", None)
    return CsvMappingSuggestion(mapping=mapping, matches=matches)


class _MissingAmount(Exception):
    pass


def _resolve_amount(raw: dict[str, str], mapping: CsvMapping) -> float:
    if mapping.amount:
        value = raw.get(mapping.amount, "").strip()
        if not value:
            raise _MissingAmount()
        return parse_money(value)

    debit_raw = raw.get(mapping.debit, "").strip() if mapping.debit else ""
    credit_raw = raw.get(mapping.credit, "").strip() if mapping.credit else ""
    if not debit_raw and not credit_raw:
        raise _MissingAmount()
    debit = abs(parse_money(debit_raw)) if debit_raw else 0.0
    credit = abs(parse_money(credit_raw)) if credit_raw else 0.0
    return credit - debit


def _resolve_balance(raw: dict[str, str], mapping: CsvMapping) -> float | None:
    if not mapping.balance_after:
        return None
    value = raw.get(mapping.balance_after, "").strip()
    if not value:
        return None
    try:
        return parse_money(value)
    except InvalidAmountError:
        return None


def _resolve_external_id(raw: dict[str, str], mapping: CsvMapping) -> str | None:
    if mapping.external_id:
        value = raw.get(mapping.external_id, "").strip()
        return value or None
    indexed = {normalize_description(key): value for key, value in raw.items()}
    for header in _EXTERNAL_ID_HEADERS:
        value = (indexed.get(header) or "").strip()
        if value:
            return value
    return None


_MESSAGES = {
    "ok": "Row is valid for import.",
    "missing_date": "Row ignored: missing date.",
    "missing_description": "Row ignored: missing description.",
    "missing_amount": "Row ignored: missing amount.",
    "invalid_amount": "Row rejected: invalid amount.",
    "ignored_balance_row": "Row ignored: balance or summary line.",
    "zero_amount": "Row ignored: zero amount.",
    "invalid_date": "Row rejected: invalid date.",
    "row_parse_error": "Row rejected: could not be parsed.",
}


def _diagnostic(line: int, status: RowStatus, reason: str, raw: dict[str, str]) -> RowDiagnostic:
    return RowDiagnostic(line=line, status=status, reason=reason, message=_MESSAGES[reason], raw=raw)


def analyze_csv_rows(rows: Sequence[dict[str, str]], mapping: CsvMapping) -> CsvMappingAnalysis:
    """Apply a column mapping to every row, yielding drafts plus one diagnostic per row."""

    drafts: list[ParsedDraftTransaction] = []
    diagnostics: list[RowDiagnostic] = []
    summary = ParseSummary()

    def record(diagnostic: RowDiagnostic) -> None:
        diagnostics.append(diagnostic)
        summary.record(diagnostic)

    for index, raw in enumerate(rows):
        line = index + 1
        date_value = raw.get(mapping.date, "").strip() if mapping.date else ""
        description_value = raw.get(mapping.description, "").strip() if mapping.description else ""
        history_value = raw.get(mapping.history, "").strip() if mapping.history else ""
        if history_value == description_value:
            history_value = ""
        combined = normalize_description(" ".join(part for part in (history_value, description_value) if part))

        if not date_value:
            record(_diagnostic(line, RowStatus.IGNORED, "missing_date", raw))
            continue
        if not description_value and not history_value:
            record(_diagnostic(line, RowStatus.IGNORED, "missing_description", raw))
            continue
        try:
            amount = _resolve_amount(raw, mapping)
        except _MissingAmount:
            record(_diagnostic(line, RowStatus.IGNORED, "missing_amount", raw))
            continue
        except InvalidAmountError:
            record(_diagnostic(line, RowStatus.ERROR, "invalid_amount", raw))
            continue
        if _IGNORED_DESCRIPTION.search(combined):
            record(_diagnostic(line, RowStatus.IGNORED, "ignored_balance_row", raw))
            continue

        try:
            parsed_date = parse_flexible_date(date_value)
            amount = apply_type_hint(amount, raw.get(mapping.type) if mapping.type else None)
        except InvalidDateError:
            record(_diagnostic(line, RowStatus.ERROR, "invalid_date", raw))
            continue
        except RowError:
            record(_diagnostic(line, RowStatus.ERROR, "row_parse_error", raw))
            continue

        if abs(amount) < 0.01:
            record(_diagnostic(line, RowStatus.IGNORED, "zero_amount", raw))
            continue

        description = " ".join((description_value or history_value).split())
        drafts.append(
            ParsedDraftTransaction(
                date=parsed_date,
                description=description,
                normalized_description=normalize_description(description),
                amount=amount,
                external_id=_resolve_external_id(raw, mapping),
                raw=dict(raw),
                balance_after=_resolve_balance(raw, mapping),
                account_hint=(raw.get(mapping.account) or None) if mapping.account else None,
            )
        )
        record(_diagnostic(line, RowStatus.OK, "ok", raw))

    return CsvMappingAnalysis(rows=drafts, diagnostics=diagnostics, summary=summary)
