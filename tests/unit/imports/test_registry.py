"""Tests for source type dispatch in the parser registry."""
from __future__ import annotations

import pytest

from ledger_import.imports.csv_parser import CsvMapping
from ledger_import.imports.models import DocumentType, RawImportDocument, RowStatus
from ledger_import.imports.registry import (
    ParserContext,
    get_parser,
    parse_csv_document,
    parse_document,
    parse_ofx_document,
    parse_pdf_document,
)
from ledger_import.services.exceptions import UnreadableDocumentError, UnsupportedSourceTypeError

CSV_CONTENT = (
    "Data;Descrição;Valor\n"
    "05/03/2024;Supermercado Dia;-45,90\n"
    "06/03/2024;Loja X PARC 02/10;-100,00\n"
).encode("utf-8")

OFX_CONTENT = b"""OFXHEADER:100
<OFX><BANKMSGSRSV1><STMTTRNRS><STMTRS>
<BANKACCTFROM><ACCTID>999<ACCTTYPE>CHECKING</BANKACCTFROM>
<BANKTRANLIST>
<STMTTRN><TRNTYPE>DEBIT<DTPOSTED>20240305<TRNAMT>-10.00<FITID>A1<MEMO>Padaria</STMTTRN>
</BANKTRANLIST></STMTRS></STMTTRNRS></BANKMSGSRSV1></OFX>
"""


class FakeExtractor:
    def __init__(self, text: str) -> None:
        self.text = text

    def extract_text(self, content: bytes) -> str:
        return self.text


@pytest.mark.parametrize(
    ("source_type", "parser"),
    [("csv", parse_csv_document), ("OFX", parse_ofx_document), (" pdf ", parse_pdf_document)],
)
def test_get_parser_normalizes_source_type(source_type: str, parser) -> None:
    assert get_parser(source_type) is parser


@pytest.mark.parametrize("source_type", ["xlsx", "", None])
def test_get_parser_rejects_unknown_types(source_type: str | None) -> None:
    with pytest.raises(UnsupportedSourceTypeError):
        get_parser(source_type)


def test_parse_csv_document_returns_mapping_metadata() -> None:
    outcome = parse_csv_document(RawImportDocument(CSV_CONTENT, "csv"), ParserContext())

    assert outcome.source_type == "csv"
    assert outcome.summary.valid_rows == 2
    assert outcome.metadata["delimiter"] == ";"
    assert outcome.metadata["mapping"] == {"date": "Data", "description": "Descrição", "amount": "Valor"}
    assert outcome.classification.document_type is DocumentType.BANK_STATEMENT
    assert not any("mapping confidence" in warning for warning in outcome.warnings)


def test_parse_csv_document_warns_on_unrecognized_columns() -> None:
    content = b"foo;bar;baz\n1;2;3\n"

    outcome = parse_csv_document(RawImportDocument(content, "csv"), ParserContext())

    assert any("mapping confidence" in warning for warning in outcome.warnings)
    assert outcome.transactions == []


def test_parse_csv_document_uses_explicit_mapping() -> None:
    mapping = CsvMapping(date="Data", description="Descrição", amount="Valor")

    outcome = parse_csv_document(RawImportDocument(CSV_CONTENT, "csv"), ParserContext(csv_mapping=mapping))

    assert outcome.metadata["mapping"]["amount"] == "Valor"
    assert not any("mapping confidence" in warning for warning in outcome.warnings)


def test_parse_csv_document_rejects_empty_file() -> None:
    with pytest.raises(UnreadableDocumentError) as exc_info:
        parse_csv_document(RawImportDocument(b"", "csv"), ParserContext())

    assert exc_info.value.code == "empty_document"


def test_parse_ofx_document_rejects_non_ofx() -> None:
    with pytest.raises(UnreadableDocumentError) as exc_info:
        parse_ofx_document(RawImportDocument(b"Data;Valor\n", "ofx"), ParserContext())

    assert exc_info.value.code == "not_ofx"


def test_parse_ofx_document_carries_account_id() -> None:
    outcome = parse_ofx_document(RawImportDocument(OFX_CONTENT, "ofx"), ParserContext())

    assert outcome.account_id == "999"
    assert [row.amount for row in outcome.transactions] == [-10.0]
    assert outcome.classification.document_type is DocumentType.BANK_STATEMENT


def test_parse_pdf_document_reports_each_row_ok() -> None:
    text = "Banco Inter\nDespesas da fatura\n05 de fev. 2024 Mercado Livre - R$ 120,00\n"
    context = ParserContext(extractor=FakeExtractor(text))

    outcome = parse_pdf_document(RawImportDocument(b"%PDF", "pdf"), context)

    assert outcome.summary.valid_rows == 1
    assert [diagnostic.status for diagnostic in outcome.diagnostics] == [RowStatus.OK]
    assert outcome.classification.issuer_profile == "inter_invoice"
    assert outcome.warnings == []


def test_parse_pdf_document_maps_pdf_errors() -> None:
    context = ParserContext(extractor=FakeExtractor("texto qualquer"))

    with pytest.raises(UnreadableDocumentError) as exc_info:
        parse_pdf_document(RawImportDocument(b"%PDF", "pdf"), context)

    assert exc_info.value.code == "unsupported_issuer_profile"


def test_parse_document_applies_document_account_and_installments() -> None:
    outcome = parse_document(RawImportDocument(CSV_CONTENT, "csv", account_id="acc-1"))

    assert [row.account_id for row in outcome.transactions] == ["acc-1", "acc-1"]
    assert outcome.transactions[0].installment is None
    installment = outcome.transactions[1].installment
    assert installment is not None
    assert (installment.current_installment, installment.total_installments) == (2, 10)


def test_parse_document_rejects_unsupported_source_type() -> None:
    with pytest.raises(UnsupportedSourceTypeError):
        parse_document(RawImportDocument(b"data", "xls"))


def test_parse_pdf_document_counts_rejected_lines_as_errors() -> None:
    text = (
        "Banco Inter\nDespesas da fatura\n"
        "05 de fev. 2024 Mercado Livre - R$ 120,00\n"
        "06 de fev. 2024 Loja Quebrada - R$ 1.2.3\n"
    )
    context = ParserContext(extractor=FakeExtractor(text))

    outcome = parse_pdf_document(RawImportDocument(b"%PDF", "pdf"), context)

    assert outcome.summary.total_rows == 2
    assert outcome.summary.valid_rows == 1
    assert outcome.summary.error_rows == 1
    assert outcome.summary.reasons == {"ok": 1, "invalid_amount": 1}
    error = outcome.diagnostics[-1]
    assert (error.line, error.status, error.reason) == (2, RowStatus.ERROR, "invalid_amount")
    assert "Loja Quebrada" in error.raw["line"]
