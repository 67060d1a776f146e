"""Lenient OFX (SGML) statement parsing via single-line tag lookups."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ledger_import.services.exceptions import InvalidDateError, RowError

from .models import (
    DocumentClassification,
    DocumentType,
    ParsedDraftTransaction,
    ParseSummary,
    RowDiagnostic,
    RowStatus,
)
from .normalizer import normalize_description, parse_flexible_date, parse_money_lenient

logger = logging.getLogger(__name__)

REPLACEMENT_RATIO_LIMIT = 0.01
DEFAULT_DESCRIPTION = "Lancamento OFX"

_TRANSACTION_BLOCK = re.compile(r"<STMTTRN>.*?</STMTTRN>", re.IGNORECASE | re.DOTALL)
_CARD_BLOCK = re.compile(r"<(?:CREDITCARDMSGSRSV1|CCSTMTRS)>", re.IGNORECASE)
_BANK_BLOCK = re.compile(r"<(?:BANKMSGSRSV1|STMTRS)>", re.IGNORECASE)
_CARD_ACCOUNT = re.compile(r"<CCACCTFROM>.*?(?:</CCACCTFROM>|<BANKTRANLIST>|$)", re.IGNORECASE | re.DOTALL)
_BANK_ACCOUNT = re.compile(r"<BANKACCTFROM>.*?(?:</BANKACCTFROM>|<BANKTRANLIST>|$)", re.IGNORECASE | re.DOTALL)

_CHARGE_TYPES = frozenset({"DEBIT", "POS", "FEE", "SRVCHG", "ATM", "CHECK"})
_CREDIT_TYPES = frozenset({"CREDIT", "PAYMENT", "DEP", "DIRECTDEP"})


@dataclass(slots=True)
class OfxParseResult:
    account_id: str | None
    classification: DocumentClassification
    transactions: list[ParsedDraftTransaction]
    diagnostics: list[RowDiagnostic]
    summary: ParseSummary
    encoding: str


def decode_ofx(content: bytes) -> tuple[str, str]:
    """UTF-8 unless more than 1% of the decoded characters are replacements."""

    text = content.decode("utf-8", errors="replace")
    ratio = text.count("\ufffd") / max(len(text), 1)
    if ratio > REPLACEMENT_RATIO_LIMIT:
        return content.decode("latin-1"), "latin-1"
    return text, "utf-8"


def get_tag_value(block: str, tag: str) -> str | None:
    match = re.search(rf"<{tag}>([^<\r\n]+)", block, re.IGNORECASE)
    if match is None:
        return None
    value = match.group(1).strip()
    return value or None


def classify_ofx_text(text: str) -> DocumentClassification:
    if _CARD_BLOCK.search(text):
        return DocumentClassification(DocumentType.CREDIT_CARD_INVOICE, "ofx", 1.0)
    if _BANK_BLOCK.search(text):
        return DocumentClassification(DocumentType.BANK_STATEMENT, "ofx", 1.0)
    return DocumentClassification(DocumentType.BANK_STATEMENT, "ofx", 0.5)


def _account_id(text: str, document_type: DocumentType) -> str | None:
    block_pattern = _CARD_ACCOUNT if document_type is DocumentType.CREDIT_CARD_INVOICE else _BANK_ACCOUNT
    block = block_pattern.search(text)
    if block is not None:
        value = get_tag_value(block.group(0), "ACCTID")
        if value:
            return value
    return get_tag_value(text, "ACCTID")


def correct_card_sign(amount: float, transaction_type: str | None) -> float:
    """Align card-invoice amounts with the positive-is-income convention."""

    kind = (transaction_type or "").upper()
    if amount > 0 and kind in _CHARGE_TYPES:
        return -amount
    if amount < 0 and kind in _CREDIT_TYPES:
        return abs(amount)
    return amount


def parse_ofx_buffer(content: bytes) -> OfxParseResult:
    """Parse every <STMTTRN> block; broken blocks become row diagnostics."""

    text, encoding = decode_ofx(content)
    classification = classify_ofx_text(text)
    account_id = _account_id(text, classification.document_type)
    is_card = classification.document_type is DocumentType.CREDIT_CARD_INVOICE

    transactions: list[ParsedDraftTransaction] = []
    diagnostics: list[RowDiagnostic] = []
    summary = ParseSummary()

    for line, match in enumerate(_TRANSACTION_BLOCK.finditer(text), start=1):
        block = match.group(0)
        amount_text = get_tag_value(block, "TRNAMT") or ""
        date_text = get_tag_value(block, "DTPOSTED") or get_tag_value(block, "DTUSER") or get_tag_value(block, "DTAVAIL")
        description = get_tag_value(block, "MEMO") or get_tag_value(block, "NAME") or DEFAULT_DESCRIPTION
        fitid = get_tag_value(block, "FITID")
        trntype = get_tag_value(block, "TRNTYPE")
        raw = {
            "TRNTYPE": trntype or "",
            "TRNAMT": amount_text,
            "DTPOSTED": date_text or "",
            "MEMO": description,
            "FITID": fitid or "",
        }

        try:
            parsed_date = parse_flexible_date(date_text)
            amount = parse_money_lenient(amount_text)
        except InvalidDateError:
            diagnostic = RowDiagnostic(line, RowStatus.ERROR, "invalid_date", "Block rejected: invalid or missing date.", raw)
        except RowError:
            diagnostic = RowDiagnostic(line, RowStatus.ERROR, "invalid_amount", "Block rejected: invalid amount.", raw)
        else:
            if is_card:
                amount = correct_card_sign(amount, trntype)
            cleaned = " ".join(description.split())
            transactions.append(
                ParsedDraftTransaction(
                    date=parsed_date,
                    description=cleaned,
                    normalized_description=normalize_description(cleaned),
                    amount=amount,
                    external_id=fitid,
                    raw=raw,
                    account_hint=account_id,
                    document_type=classification.document_type,
                )
            )
            diagnostic = RowDiagnostic(line, RowStatus.OK, "ok", "Block is valid for import.", raw)
        diagnostics.append(diagnostic)
        summary.record(diagnostic)

    logger.debug(
        "OFX parsed: type=%s account=%s blocks=%s valid=%s",
        classification.document_type.value,
        account_id,
        summary.total_rows,
        summary.valid_rows,
    )
    return OfxParseResult(
        account_id=account_id,
        classification=classification,
        transactions=transactions,
        diagnostics=diagnostics,
        summary=summary,
        encoding=encoding,
    )
