"""Tests for PDF classification and issuer parsers."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ledger_import.imports.models import DocumentType
from ledger_import.imports.pdf_parser import (
    PdfImportError,
    classify_pdf_text,
    extract_due_date,
    parse_month_token,
    parse_pdf_import,
    parse_pdf_text,
)

NUBANK_INVOICE = """Nubank
Fatura de março
Data de vencimento: 10 MAR 2024
TRANSAÇÕES DE 01 FEV A 01 MAR
05 FEV Padaria Central R$ 25,50
07 FEV Uber Trip
R$ 18,90
10 FEV Pagamento em 10 FEV R$ 500,00
"""

INTER_INVOICE = """Banco Inter
Despesas da fatura
05 de fev. 2024 Mercado Livre - R$ 120,00
06 de fev. 2024 Estorno Loja + R$ 30,00
Total R$ 90,00
"""

MERCADO_PAGO_STATEMENT = """Mercado Pago
EXTRATO DE CONTA
DETALHE DOS MOVIMENTOS
Data Descrição ID da operação Valor Saldo
01-03-2024 Transferência Pix recebida Maria Silva 123456789 R$ 150,00 R$ 1.150,00
02-03-2024 Pagamento com QR Pix
Padaria Central 123456790 R$ -25,50 R$ 1.124,50
"""


class FakeExtractor:
    def __init__(self, text: str | None = None, error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[bytes] = []

    def extract_text(self, content: bytes) -> str:
        self.calls.append(content)
        if self.error is not None:
            raise self.error
        return self.text or ""


@pytest.mark.parametrize(
    "text",
    [None, "", "   ", "lorem ipsum ###", b"\x00\xff\xfe", 12345, "�" * 50, "R$ R$ R$ 0,00"],
)
def test_classify_pdf_text_never_raises(text) -> None:
    classification = classify_pdf_text(text)

    assert classification.document_type in set(DocumentType)
    assert classification.issuer_profile == "unknown"
    assert 0.0 <= classification.score <= 1.0


@pytest.mark.parametrize(
    ("text", "document_type", "issuer"),
    [
        (NUBANK_INVOICE, DocumentType.CREDIT_CARD_INVOICE, "nubank_invoice"),
        (INTER_INVOICE, DocumentType.CREDIT_CARD_INVOICE, "inter_invoice"),
        (MERCADO_PAGO_STATEMENT, DocumentType.BANK_STATEMENT, "mercado_pago_statement"),
        ("Banco Inter\nExtrato conta corrente\nSaldo do dia: R$ 10,00\nPix enviado", DocumentType.BANK_STATEMENT, "inter_statement"),
        ("Mercado Pago\nDetalhes de consumo", DocumentType.CREDIT_CARD_INVOICE, "mercado_pago_invoice"),
    ],
)
def test_classify_pdf_text_detects_issuers(text: str, document_type: DocumentType, issuer: str) -> None:
    classification = classify_pdf_text(text)

    assert classification.document_type is document_type
    assert classification.issuer_profile == issuer
    assert classification.score == 1.0


@pytest.mark.parametrize(
    ("text", "document_type", "score"),
    [
        ("Sua fatura\nVencimento: 10/04/2024", DocumentType.CREDIT_CARD_INVOICE, 0.6),
        ("Extrato conta corrente", DocumentType.BANK_STATEMENT, 0.6),
        ("Fatura", DocumentType.CREDIT_CARD_INVOICE, 0.4),
        ("Saldo", DocumentType.BANK_STATEMENT, 0.4),
        ("nada aqui", DocumentType.UNKNOWN, 0.0),
    ],
)
def test_classify_pdf_text_generic_fallbacks(text: str, document_type: DocumentType, score: float) -> None:
    classification = classify_pdf_text(text)

    assert classification.document_type is document_type
    assert classification.issuer_profile == "unknown"
    assert classification.score == score


def test_parse_nubank_invoice() -> None:
    result = parse_pdf_text(NUBANK_INVOICE)

    assert result.classification.issuer_profile == "nubank_invoice"
    assert [(row.description, row.amount) for row in result.transactions] == [
        ("Padaria Central", -25.5),
        ("Uber Trip", -18.9),
        ("Pagamento em 10 FEV", 500.0),
    ]
    assert result.transactions[0].date == datetime(2024, 2, 5, tzinfo=timezone.utc)
    assert all(row.document_type is DocumentType.CREDIT_CARD_INVOICE for row in result.transactions)
    assert result.metadata["due_date"].startswith("2024-03-10")


def test_parse_inter_invoice_signs() -> None:
    result = parse_pdf_text(INTER_INVOICE)

    assert [(row.description, row.amount) for row in result.transactions] == [
        ("Mercado Livre", -120.0),
        ("Estorno Loja", 30.0),
    ]


def test_parse_mercado_pago_statement_joins_wrapped_lines() -> None:
    result = parse_pdf_text(MERCADO_PAGO_STATEMENT)

    first, second = result.transactions
    assert first.description == "Transferência Pix recebida Maria Silva"
    assert first.amount == 150.0
    assert first.external_id == "123456789"
    assert first.balance_after == 1150.0
    assert second.description == "Pagamento com QR Pix Padaria Central"
    assert second.amount == -25.5
    assert second.external_id == "123456790"
    assert second.date == datetime(2024, 3, 2, tzinfo=timezone.utc)


def test_parse_pdf_text_rejects_unknown_issuer() -> None:
    with pytest.raises(PdfImportError) as exc_info:
        parse_pdf_text("Sua fatura\nVencimento: 10/04/2024")

    assert exc_info.value.code == "unsupported_issuer_profile"
    assert "nubank_invoice" in exc_info.value.details["supported_issuer_profiles"]


def test_parse_pdf_text_without_rows() -> None:
    with pytest.raises(PdfImportError) as exc_info:
        parse_pdf_text("Nubank\nFatura\nVencimento: 10/04/2024\n")

    assert exc_info.value.code == "no_transactions_found"


def test_parse_pdf_import_uses_extractor() -> None:
    extractor = FakeExtractor(text=NUBANK_INVOICE)

    result = parse_pdf_import(b"%PDF-1.4", extractor)

    assert extractor.calls == [b"%PDF-1.4"]
    assert len(result.transactions) == 3


def test_parse_pdf_import_wraps_extractor_failures() -> None:
    extractor = FakeExtractor(error=RuntimeError("encrypted"))

    with pytest.raises(PdfImportError) as exc_info:
        parse_pdf_import(b"%PDF-1.4", extractor)

    assert exc_info.value.code == "parser_unavailable"
    assert exc_info.value.details == {"reason": "encrypted"}


def test_extract_due_date_formats() -> None:
    assert extract_due_date("Vencimento: 15/04/2024") == datetime(2024, 4, 15, tzinfo=timezone.utc)
    assert extract_due_date("Data de vencimento: 10 MAR 2024") == datetime(2024, 3, 10, tzinfo=timezone.utc)
    assert extract_due_date("sem data") is None


@pytest.mark.parametrize(("token", "expected"), [("FEV", 2), ("mar.", 3), ("Dezembro", 12), ("xyz", None)])
def test_parse_month_token(token: str, expected: int | None) -> None:
    assert parse_month_token(token) == expected


NUBANK_WITH_BAD_DATE = """Nubank
Fatura de março
Data de vencimento: 10 MAR 2024
05 FEV Padaria Central R$ 25,50
30 FEV Loja Estranha R$ 10,00
07 FEV Uber Trip R$ 18,90
"""

INTER_INVOICE_WITH_BAD_AMOUNT = """Banco Inter
Despesas da fatura
05 de fev. 2024 Mercado Livre - R$ 120,00
06 de fev. 2024 Loja Quebrada - R$ 1.2.3
07 de fev. 2024 Farmacia - R$ 40,00
"""

INTER_STATEMENT_WITH_BAD_DAY = """Banco Inter
Extrato conta corrente
31 de fevereiro de 2024
Pix enviado Maria R$ -50,00
Saldo do dia: R$ 950,00
01 de março de 2024
Pix recebido Joao R$ 80,00
"""


def test_bad_date_line_is_rejected_and_others_kept() -> None:
    result = parse_pdf_text(NUBANK_WITH_BAD_DATE)

    assert [row.description for row in result.transactions] == ["Padaria Central", "Uber Trip"]
    assert len(result.rejected) == 1
    assert result.rejected[0].reason == "invalid_date"
    assert "Loja Estranha" in result.rejected[0].line


def test_bad_amount_line_is_rejected_and_others_kept() -> None:
    result = parse_pdf_text(INTER_INVOICE_WITH_BAD_AMOUNT)

    assert [(row.description, row.amount) for row in result.transactions] == [
        ("Mercado Livre", -120.0),
        ("Farmacia", -40.0),
    ]
    assert [(item.reason, "Loja Quebrada" in item.line) for item in result.rejected] == [("invalid_amount", True)]


def test_rows_under_an_impossible_day_header_are_rejected() -> None:
    result = parse_pdf_text(INTER_STATEMENT_WITH_BAD_DAY)

    assert result.classification.issuer_profile == "inter_statement"
    assert [(row.description, row.amount) for row in result.transactions] == [("Pix recebido Joao", 80.0)]
    assert result.transactions[0].date == datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert [item.reason for item in result.rejected] == ["invalid_date"]


def test_only_rejected_lines_still_returns_a_result() -> None:
    text = "Nubank\nFatura\nData de vencimento: 10 MAR 2024\n31 FEV Loja Estranha R$ 10,00\n"

    result = parse_pdf_text(text)

    assert result.transactions == []
    assert len(result.rejected) == 1
