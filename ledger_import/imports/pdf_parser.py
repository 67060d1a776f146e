"""PDF statement import: issuer classification over extracted text and line parsers."""
from __future__ import annotations

import io
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

import pdfplumber

from ledger_import.services.exceptions import InvalidDateError, RowError

from .models import DocumentClassification, DocumentType, ParsedDraftTransaction
from .normalizer import normalize_description, parse_flexible_date, parse_money
from .text import fix_common_mojibake, normalize_for_match, normalize_import_text

logger = logging.getLogger(__name__)

SUPPORTED_ISSUER_PROFILES = (
    "inter_statement",
    "inter_invoice",
    "mercado_pago_invoice",
    "mercado_pago_statement",
    "nubank_invoice",
)

AMOUNT_WITH_CURRENCY = re.compile(r"(?:[-+]?\s*R\$\s*|R\$\s*[-+]?\s*)(?:\d{1,3}(?:\.\d{3})*|\d+),\d{2}", re.IGNORECASE)
_IGNORED_DESCRIPTION = re.compile(r"\b(SALDO\s+ANTERIOR|SALDO\s+FINAL|SALDO\s+DISPONIVEL|SALDO\s+DO\s+DIA)\b")
_PAGE_MARKER = re.compile(r"^--\s*\d+\s*of\s*\d+\s*--$", re.IGNORECASE)
_CREDIT_WORDS = re.compile(r"\b(ESTORNO|CREDITO|DEVOLUCAO|AJUSTE A FAVOR)\b")
_DASHED_DATE = re.compile(r"\b\d{2}-\d{2}-\d{4}\b")

PORTUGUESE_MONTHS = {
    "janeiro": 1, "jan": 1,
    "fevereiro": 2, "fev": 2,
    "marco": 3, "mar": 3,
    "abril": 4, "abr": 4,
    "maio": 5, "mai": 5,
    "junho": 6, "jun": 6,
    "julho": 7, "jul": 7,
    "agosto": 8, "ago": 8,
    "setembro": 9, "set": 9,
    "outubro": 10, "out": 10,
    "novembro": 11, "nov": 11,
    "dezembro": 12, "dez": 12,
}


class PdfImportError(Exception):
    """PDF could not be turned into transactions; ``code`` says why."""

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}


class PdfTextExtractor(Protocol):
    """Turns PDF bytes into plain text, one statement line per text line."""

    def extract_text(self, content: bytes) -> str:
        ...


class PdfplumberTextExtractor:
    """Default extractor reading every page's text layer with pdfplumber."""

    def __init__(self, password: str | None = None) -> None:
        self.password = password

    def extract_text(self, content: bytes) -> str:
        with pdfplumber.open(io.BytesIO(content), password=self.password) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
        return "\n".join(pages)


@dataclass(slots=True)
class RejectedLine:
    """A statement line that looked like a transaction but had a bad date or amount."""

    line: str
    reason: str
    message: str


@dataclass(slots=True)
class PdfParseResult:
    classification: DocumentClassification
    transactions: list[ParsedDraftTransaction]
    metadata: dict[str, Any] = field(default_factory=dict)
    rejected: list[RejectedLine] = field(default_factory=list)


def _coerce_text(text: Any) -> str:
    if text is None:
        return ""
    if isinstance(text, bytes):
        return text.decode("utf-8", errors="replace")
    return str(text)


def classify_pdf_text(text: Any) -> DocumentClassification:
    """Best-effort issuer and document type from extracted text.

    Issuer profiles are tried in priority order and the first match wins with
    full confidence. Otherwise the issuer is "unknown" and generic invoice or
    statement keywords decide the type with a lower score. Never raises.
    """

    normalized = f" {normalize_for_match(_coerce_text(text))} "
    has_inter = "BANCO INTER" in normalized
    has_mercado_pago = "MERCADO PAGO" in normalized
    has_nubank = "NUBANK" in normalized or " APP DO NU" in normalized
    has_invoice_hints = "FATURA" in normalized and "VENCIMENTO" in normalized
    has_statement_hints = "SALDO DO DIA" in normalized or "EXTRATO CONTA CORRENTE" in normalized
    has_mercado_pago_statement_hints = (
        "EXTRATO DE CONTA" in normalized
        and "DETALHE DOS MOVIMENTOS" in normalized
        and ("ID DA OPERA" in normalized or "VALOR SALDO" in normalized or bool(_DASHED_DATE.search(normalized)))
    )

    if has_inter and "DESPESAS DA FATURA" in normalized:
        return DocumentClassification(DocumentType.CREDIT_CARD_INVOICE, "inter_invoice", 1.0)
    if has_inter and has_statement_hints and "PIX" in normalized:
        return DocumentClassification(DocumentType.BANK_STATEMENT, "inter_statement", 1.0)
    if has_mercado_pago and "DETALHES DE CONSUMO" in normalized:
        return DocumentClassification(DocumentType.CREDIT_CARD_INVOICE, "mercado_pago_invoice", 1.0)
    if has_mercado_pago and has_mercado_pago_statement_hints:
        return DocumentClassification(DocumentType.BANK_STATEMENT, "mercado_pago_statement", 1.0)
    if has_nubank and has_invoice_hints:
        return DocumentClassification(DocumentType.CREDIT_CARD_INVOICE, "nubank_invoice", 1.0)

    if has_invoice_hints:
        return DocumentClassification(DocumentType.CREDIT_CARD_INVOICE, "unknown", 0.6)
    if has_statement_hints:
        return DocumentClassification(DocumentType.BANK_STATEMENT, "unknown", 0.6)
    if "FATURA" in normalized or "VENCIMENTO" in normalized:
        return DocumentClassification(DocumentType.CREDIT_CARD_INVOICE, "unknown", 0.4)
    if "EXTRATO" in normalized or "SALDO" in normalized:
        return DocumentClassification(DocumentType.BANK_STATEMENT, "unknown", 0.4)
    return DocumentClassification(DocumentType.UNKNOWN, "unknown", 0.0)


@dataclass(slots=True)
class _Candidate:
    date: datetime
    description: str
    amount: float
    line: str
    date_text: str
    amount_text: str
    balance_after: float | None = None
    external_id: str | None = None


def _normalize_line(line: str) -> str:
    cleaned = normalize_import_text(line, remove_noise=False).replace("−", "-")
    return " ".join(cleaned.split())


def _lines(text: str) -> list[str]:
    return [line for line in (_normalize_line(raw) for raw in text.splitlines()) if line]


def parse_month_token(token: str) -> int | None:
    key = normalize_description(token).lower().replace(".", "").strip()
    return PORTUGUESE_MONTHS.get(key)


def _build_date(day: int, month: int, year: int) -> tuple[datetime, str]:
    date_text = f"{day:02d}/{month:02d}/{year}"
    return parse_flexible_date(date_text), date_text


def _reject(rejected: list[RejectedLine], line: str, exc: RowError) -> None:
    reason = "invalid_date" if isinstance(exc, InvalidDateError) else "invalid_amount"
    logger.debug("PDF line rejected (%s): %s", reason, line)
    rejected.append(RejectedLine(line, reason, str(exc)))


def _invoice_year(month: int, due_date: datetime | None) -> int:
    if due_date is None:
        return datetime.now().year
    if month > due_date.month:
        return due_date.year - 1
    return due_date.year


def _ignore_inter_statement_line(line: str) -> bool:
    normalized = normalize_for_match(line)
    return bool(
        _PAGE_MARKER.match(line)
        or re.match(r"^Fale com a gente$", line, re.IGNORECASE)
        or re.match(r"^(SAC|Solicitado em|CPF/CNPJ):", line, re.IGNORECASE)
        or normalized.startswith("PERIODO:")
        or "SALDO DO DIA:" in normalized
        or re.match(r"^SALDO (TOTAL|DISPONIVEL|BLOQUEADO)", normalized)
    )


def parse_inter_statement(
    text: str, due_date: datetime | None = None, rejected: list[RejectedLine] | None = None
) -> list[_Candidate]:
    """Transactions follow a day header; the header date applies until the next one."""

    rows: list[_Candidate] = []
    rejected = [] if rejected is None else rejected
    current_day: tuple[int, int, int] | None = None

    for line in _lines(text):
        date_match = re.search(r"(\d{1,2})\s+de\s+([^\W\d_.]+\.?)\s+de\s+(\d{4})", line, re.IGNORECASE)
        if date_match:
            month = parse_month_token(date_match.group(2))
            if month:
                current_day = (int(date_match.group(1)), month, int(date_match.group(3)))

        if current_day is None or _ignore_inter_statement_line(line):
            continue

        amount_match = AMOUNT_WITH_CURRENCY.search(line)
        if amount_match is None or amount_match.start() <= 0:
            continue

        description = line[: amount_match.start()].strip()
        description = re.sub(r"^Valor Saldo por transacao\s*", "", description, flags=re.IGNORECASE)
        description = re.sub(r"\s*:\s*$", "", description).strip()
        if not description or _IGNORED_DESCRIPTION.search(normalize_for_match(description)):
            continue
        if date_match and description.startswith(date_match.group(0)):
            continue

        try:
            amount = parse_money(amount_match.group(0))
            if abs(amount) < 0.01:
                continue
            parsed_date, date_text = _build_date(*current_day)
        except RowError as exc:
            _reject(rejected, line, exc)
            continue
        rows.append(_Candidate(parsed_date, description, amount, line, date_text, amount_match.group(0)))
    return rows


def parse_inter_invoice(
    text: str, due_date: datetime | None = None, rejected: list[RejectedLine] | None = None
) -> list[_Candidate]:
    rows: list[_Candidate] = []
    rejected = [] if rejected is None else rejected
    for line in _lines(text):
        normalized = normalize_for_match(line)
        if _PAGE_MARKER.match(line) or normalized.startswith("TOTAL"):
            continue
        prefix = re.match(r"^(\d{1,2})\s+de\s+([^\W\d_.]+\.?)\s+(\d{4})\s+", line, re.IGNORECASE)
        if prefix is None:
            continue
        month = parse_month_token(prefix.group(2))
        rest = line[prefix.end():].strip()
        amounts = list(re.finditer(r"R\$\s*[\d.,]+", rest, re.IGNORECASE))
        if month is None or not amounts or amounts[-1].start() <= 0:
            continue

        last = amounts[-1]
        description = re.sub(r"(?:[-+]\s*)+$", "", rest[: last.start()]).strip()
        if not description or description.upper().startswith("TOTAL"):
            continue
        try:
            absolute = abs(parse_money(last.group(0)))
            if absolute < 0.01:
                continue
            parsed_date, date_text = _build_date(int(prefix.group(1)), month, int(prefix.group(3)))
        except RowError as exc:
            _reject(rejected, line, exc)
            continue

        positive = bool(re.search(r"\+\s*R\$", rest)) or bool(
            re.search(r"\b(PAGAMENTO|ESTORNO|CREDITO|DEVOLUCAO)\b", normalize_for_match(description))
        )
        amount = absolute if positive else -absolute
        rows.append(_Candidate(parsed_date, description, amount, line, date_text, last.group(0)))
    return rows


def parse_mercado_pago_invoice(
    text: str, due_date: datetime | None = None, rejected: list[RejectedLine] | None = None
) -> list[_Candidate]:
    rows: list[_Candidate] = []
    rejected = [] if rejected is None else rejected
    for line in _lines(text):
        if re.match(r"^Total R\$", line, re.IGNORECASE):
            continue
        match = re.match(r"^(\d{2})/(\d{2})\s+(.+?)\s+R\$\s*([\d.,]+)$", line, re.IGNORECASE)
        if match is None:
            continue
        day, month = int(match.group(1)), int(match.group(2))
        description = match.group(3).strip()
        if not description or re.match(r"^(Total\b|Pagamento da fatura)", description, re.IGNORECASE):
            continue

        amount_text = f"R$ {match.group(4)}"
        try:
            absolute = abs(parse_money(amount_text))
            if absolute < 0.01:
                continue
            parsed_date, date_text = _build_date(day, month, _invoice_year(month, due_date))
        except RowError as exc:
            _reject(rejected, line, exc)
            continue
        amount = absolute if _CREDIT_WORDS.search(normalize_for_match(description)) else -absolute
        rows.append(_Candidate(parsed_date, description, amount, line, date_text, amount_text))
    return rows


_MERCADO_PAGO_STATEMENT_NOISE = (
    re.compile(r"^Data de gera[cç][aã]o:", re.IGNORECASE),
    re.compile(r"^(EXTRATO DE CONTA|DETALHE DOS MOVIMENTOS)$", re.IGNORECASE),
    re.compile(r"^Data Descri[cç][aã]o ID da opera[cç][aã]o Valor Saldo$", re.IGNORECASE),
    re.compile(r"^Saldo (inicial|final):", re.IGNORECASE),
    re.compile(r"^(CPF/CNPJ|Ag[eê]ncia|Per[ií]odo|Entradas|Sa[ií]das):", re.IGNORECASE),
    re.compile(r"^Voc[eê]\s+tem\s+alguma\s+d[uú]vida", re.IGNORECASE),
    re.compile(r"^Mercado Pago Institui[cç][aã]o de Pagamento", re.IGNORECASE),
)


def _parse_mercado_pago_entry(entry: str) -> _Candidate | None:
    date_match = re.match(r"^(\d{2}-\d{2}-\d{4})\s+", entry)
    if date_match is None:
        return None
    amounts = list(AMOUNT_WITH_CURRENCY.finditer(entry))
    if len(amounts) < 2 or amounts[0].start() <= 0:
        return None

    after_date = entry[date_match.end(): amounts[0].start()].strip()
    operation = re.search(r"(\d{6,})\s*$", after_date)
    description = (after_date[: operation.start()] if operation else after_date).strip()
    if not description or re.match(r"^Data\s+Descri", description, re.IGNORECASE):
        return None

    amount = parse_money(amounts[0].group(0))
    if abs(amount) < 0.01:
        return None
    return _Candidate(
        date=parse_flexible_date(date_match.group(1)),
        description=description,
        amount=amount,
        line=entry,
        date_text=date_match.group(1),
        amount_text=amounts[0].group(0),
        balance_after=parse_money(amounts[1].group(0)),
        external_id=operation.group(1) if operation else None,
    )


def parse_mercado_pago_statement(
    text: str, due_date: datetime | None = None, rejected: list[RejectedLine] | None = None
) -> list[_Candidate]:
    """Entries may wrap over several lines; each starts with a DD-MM-YYYY date."""

    rows: list[_Candidate] = []
    rejected = [] if rejected is None else rejected
    seen: set[str] = set()
    pending: list[str] = []

    def flush() -> None:
        entry = " ".join(" ".join(pending).split())
        pending.clear()
        if not entry:
            return
        try:
            parsed = _parse_mercado_pago_entry(entry)
        except RowError as exc:
            _reject(rejected, entry, exc)
            return
        if parsed is None:
            return
        key = f"{parsed.date_text}|{parsed.external_id or normalize_for_match(parsed.description)}|{parsed.amount_text}"
        if key in seen:
            return
        seen.add(key)
        rows.append(parsed)

    for line in _lines(text):
        if _PAGE_MARKER.match(line) or any(pattern.match(line) for pattern in _MERCADO_PAGO_STATEMENT_NOISE):
            flush()
            continue
        if re.match(r"^\d{2}-\d{2}-\d{4}\b", line):
            flush()
            pending.append(line)
            continue
        if pending:
            pending.append(line)
    flush()
    return rows


_NUBANK_SKIP = re.compile(r"^(FATURA|RESUMO DA FATURA|PROXIMAS FATURAS|LIMITES DISPONIVEIS|VALOR MAXIMO|TRANSACOES? DE )")
_NUBANK_INLINE = re.compile(r"^(\d{2})\s+([^\W\d_.]{3,10}\.?)\s+(.+?)\s+(-?\s*R\$\s*[\d.,]+)$", re.IGNORECASE)
_NUBANK_MONTH_LINE = re.compile(r"^(\d{2})\s+([^\W\d_.]{3,10}\.?)\s+(.+)$", re.IGNORECASE)
_NUBANK_AMOUNT_LINE = re.compile(r"^-?\s*R\$\s*[\d.,]+$", re.IGNORECASE)


def parse_nubank_invoice(
    text: str, due_date: datetime | None = None, rejected: list[RejectedLine] | None = None
) -> list[_Candidate]:
    """Charges may put the amount on the line after the description."""

    rows: list[_Candidate] = []
    rejected = [] if rejected is None else rejected
    pending: tuple[int, str, str, str] | None = None

    def flush(amount_text: str) -> None:
        nonlocal pending
        if pending is None:
            return
        day, month_token, description, line = pending
        pending = None
        month = parse_month_token(month_token)
        if month is None:
            return
        try:
            absolute = abs(parse_money(amount_text))
            if absolute < 0.01:
                return
            parsed_date, date_text = _build_date(day, month, _invoice_year(month, due_date))
        except RowError as exc:
            _reject(rejected, line, exc)
            return
        normalized = normalize_for_match(description)
        is_payment = bool(re.search(r"\bPAGAMENTO\s+(EM|RECEBIDO)\b", normalized))
        amount = absolute if is_payment or _CREDIT_WORDS.search(normalized) else -absolute
        rows.append(_Candidate(parsed_date, description, amount, line, date_text, amount_text))

    for line in _lines(text):
        normalized = normalize_for_match(line)
        if _PAGE_MARKER.match(line) or re.match(r"^\d+ DE \d+$", normalized) or _NUBANK_SKIP.match(normalized):
            continue
        if re.match(r"^Total a pagar:", line, re.IGNORECASE):
            continue
        if pending is not None and _NUBANK_AMOUNT_LINE.match(line):
            flush(line)
            continue
        inline = _NUBANK_INLINE.match(line)
        if inline and parse_month_token(inline.group(2)):
            pending = (int(inline.group(1)), inline.group(2), inline.group(3).strip(), line)
            flush(inline.group(4))
            continue
        month_line = _NUBANK_MONTH_LINE.match(line)
        if month_line and parse_month_token(month_line.group(2)):
            pending = (int(month_line.group(1)), month_line.group(2), month_line.group(3).strip(), line)
    return rows


IssuerParser = Callable[[str, datetime | None, list[RejectedLine] | None], list[_Candidate]]

ISSUER_PARSERS: dict[str, IssuerParser] = {
    "inter_statement": parse_inter_statement,
    "inter_invoice": parse_inter_invoice,
    "mercado_pago_invoice": parse_mercado_pago_invoice,
    "mercado_pago_statement": parse_mercado_pago_statement,
    "nubank_invoice": parse_nubank_invoice,
}


def extract_due_date(text: str) -> datetime | None:
    match = re.search(r"Vencimento:\s*(\d{2}/\d{2}/\d{4})", text, re.IGNORECASE)
    try:
        if match:
            return parse_flexible_date(match.group(1))
        worded = re.search(r"Data de vencimento:\s*(\d{2})\s+([^\W\d_.]{3,10}\.?)\s+(\d{4})", text, re.IGNORECASE)
        if worded is None:
            return None
        month = parse_month_token(worded.group(2))
        if month is None:
            return None
        return _build_date(int(worded.group(1)), month, int(worded.group(3)))[0]
    except RowError:
        return None


def build_pdf_metadata(text: str, classification: DocumentClassification) -> dict[str, Any]:
    period = re.search(r"Per[ií]odo:\s*(\d{2}/\d{2}/\d{4})\s+a\s+(\d{2}/\d{2}/\d{4})", text, re.IGNORECASE)
    account = re.search(r"Conta:\s*([0-9\-]+)", text, re.IGNORECASE)
    due_date = extract_due_date(text)
    return {
        "document_type": classification.document_type.value,
        "issuer_profile": classification.issuer_profile,
        "statement_from": period.group(1) if period else None,
        "statement_to": period.group(2) if period else None,
        "due_date": due_date.isoformat() if due_date else None,
        "account_hint": account.group(1) if account else None,
    }


def parse_pdf_text(text: str) -> PdfParseResult:
    """Classify extracted text and run the matching issuer parser."""

    text = fix_common_mojibake(text)
    classification = classify_pdf_text(text)
    metadata = build_pdf_metadata(text, classification)

    parser = ISSUER_PARSERS.get(classification.issuer_profile)
    if parser is None:
        raise PdfImportError(
            "unsupported_issuer_profile",
            "PDF issuer or layout has no dedicated parser; try CSV or OFX.",
            {
                "issuer_profile": classification.issuer_profile,
                "document_type": classification.document_type.value,
                "supported_issuer_profiles": list(SUPPORTED_ISSUER_PROFILES),
            },
        )

    rejected: list[RejectedLine] = []
    candidates = parser(text, extract_due_date(text), rejected)
    if not candidates and not rejected:
        raise PdfImportError("no_transactions_found", "No transactions could be extracted from this PDF.")

    account_hint = metadata["account_hint"]
    transactions = [
        ParsedDraftTransaction(
            date=candidate.date,
            description=candidate.description,
            normalized_description=normalize_description(candidate.description),
            amount=candidate.amount,
            external_id=candidate.external_id,
            raw={
                "line": candidate.line,
                "date_text": candidate.date_text,
                "amount_text": candidate.amount_text,
            },
            balance_after=candidate.balance_after,
            account_hint=account_hint,
            document_type=classification.document_type,
        )
        for candidate in candidates
    ]
    logger.debug("PDF parsed: issuer=%s rows=%s", classification.issuer_profile, len(transactions))
    return PdfParseResult(
        classification=classification, transactions=transactions, metadata=metadata, rejected=rejected
    )


def parse_pdf_import(content: bytes, extractor: PdfTextExtractor) -> PdfParseResult:
    """Extract text with the given collaborator and parse it."""

    try:
        text = extractor.extract_text(content)
    except Exception as exc:
        raise PdfImportError("parser_unavailable", "PDF text could not be extracted.", {"reason": str(exc)}) from exc
    return parse_pdf_text(text or "")
