"""Dispatch of a raw document to the parser for its declared source type."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace

from ledger_import.services.exceptions import UnreadableDocumentError, UnsupportedSourceTypeError

from .csv_parser import DEFAULT_HEADER_SCAN_ROWS, CsvMapping, analyze_csv_rows, parse_csv_buffer, suggest_csv_mapping
from .installments import extract_installment_info
from .models import DocumentClassification, DocumentType, ParseOutcome, ParseSummary, RawImportDocument, RowDiagnostic, RowStatus
from .ofx_parser import parse_ofx_buffer
from .pdf_parser import PdfImportError, PdfplumberTextExtractor, PdfTextExtractor, parse_pdf_import

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ParserContext:
    """Knobs and collaborators a parser may need."""

    header_scan_rows: int = DEFAULT_HEADER_SCAN_ROWS
    mapping_confidence_warning: float = 0.6
    extractor: PdfTextExtractor | None = None
    csv_mapping: CsvMapping | None = None


Parser = Callable[[RawImportDocument, ParserContext], ParseOutcome]


def parse_csv_document(document: RawImportDocument, context: ParserContext) -> ParseOutcome:
    parsed = parse_csv_buffer(document.content, context.header_scan_rows)
    if not parsed.columns:
        raise UnreadableDocumentError("CSV file has no readable rows", code="empty_document")

    suggestion = suggest_csv_mapping(parsed.columns)
    mapping = context.csv_mapping or suggestion.mapping
    analysis = analyze_csv_rows(parsed.rows, mapping)

    warnings: list[str] = []
    if context.csv_mapping is None and suggestion.confidence < context.mapping_confidence_warning:
        warnings.append(
            f"Column mapping confidence is {suggestion.confidence_label} ({suggestion.confidence:.2f}); review the mapping."
        )
        logger.warning("Low CSV mapping confidence %.2f for columns %s", suggestion.confidence, parsed.columns)
    if parsed.header_confidence < context.mapping_confidence_warning:
        warnings.append(f"Header row detection confidence is low ({parsed.header_confidence:.2f}).")
        logger.warning("Low CSV header confidence %.2f at row %s", parsed.header_confidence, parsed.header_index)

    return ParseOutcome(
        source_type="csv",
        transactions=analysis.rows,
        diagnostics=analysis.diagnostics,
        summary=analysis.summary,
        classification=DocumentClassification(DocumentType.BANK_STATEMENT, "csv", suggestion.confidence),
        metadata={
            "columns": parsed.columns,
            "delimiter": parsed.delimiter,
            "encoding": parsed.encoding,
            "header_index": parsed.header_index,
            "header_score": parsed.header_score,
            "header_confidence": parsed.header_confidence,
            "mapping": mapping.as_dict(),
            "mapping_confidence": suggestion.confidence,
            "mapping_confidence_label": suggestion.confidence_label,
        },
        warnings=warnings,
    )


def parse_ofx_document(document: RawImportDocument, context: ParserContext) -> ParseOutcome:
    if b"<STMTTRN>" not in document.content.upper() and b"<OFX>" not in document.content.upper():
        raise UnreadableDocumentError("File does not look like an OFX statement", code="not_ofx")

    parsed = parse_ofx_buffer(document.content)
    return ParseOutcome(
        source_type="ofx",
        transactions=parsed.transactions,
        diagnostics=parsed.diagnostics,
        summary=parsed.summary,
        classification=parsed.classification,
        account_id=parsed.account_id,
        metadata={"encoding": parsed.encoding, "account_id": parsed.account_id},
    )


def parse_pdf_document(document: RawImportDocument, context: ParserContext) -> ParseOutcome:
    extractor = context.extractor or PdfplumberTextExtractor()
    try:
        parsed = parse_pdf_import(document.content, extractor)
    except PdfImportError as exc:
        raise UnreadableDocumentError(str(exc), code=exc.code) from exc

    warnings: list[str] = []
    if parsed.classification.score < context.mapping_confidence_warning:
        warnings.append(f"PDF classification confidence is {parsed.classification.confidence_label}.")
        logger.warning("Low PDF classification score %.2f", parsed.classification.score)

    summary = ParseSummary()
    diagnostics = []
    for line, draft in enumerate(parsed.transactions, start=1):
        diagnostic = RowDiagnostic(line, RowStatus.OK, "ok", "Row is valid for import.", draft.raw)
        diagnostics.append(diagnostic)
        summary.record(diagnostic)
    for line, rejected in enumerate(parsed.rejected, start=len(parsed.transactions) + 1):
        diagnostic = RowDiagnostic(line, RowStatus.ERROR, rejected.reason, rejected.message, {"line": rejected.line})
        diagnostics.append(diagnostic)
        summary.record(diagnostic)

    return ParseOutcome(
        source_type="pdf",
        transactions=parsed.transactions,
        diagnostics=diagnostics,
        summary=summary,
        classification=parsed.classification,
        metadata=parsed.metadata,
        warnings=warnings,
    )


PARSERS: dict[str, Parser] = {
    "csv": parse_csv_document,
    "ofx": parse_ofx_document,
    "pdf": parse_pdf_document,
}


def get_parser(source_type: str | None) -> Parser:
    key = (source_type or "").strip().lower()
    parser = PARSERS.get(key)
    if parser is None:
        raise UnsupportedSourceTypeError(f"Unsupported source type '{source_type}'")
    return parser


def parse_document(document: RawImportDocument, context: ParserContext | None = None) -> ParseOutcome:
    """Run the parser for the document's source type and tag installments.

    Rows without an account of their own inherit the document's account id.
    """

    parser = get_parser(document.source_type)
    outcome = parser(document, context or ParserContext())
    outcome.transactions = [
        replace(
            draft,
            account_id=draft.account_id or document.account_id,
            installment=draft.installment or extract_installment_info(draft.description),
        )
        for draft in outcome.transactions
    ]
    return outcome
