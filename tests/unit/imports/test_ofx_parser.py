"""Tests for the lenient OFX parser."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ledger_import.imports.models import DocumentType, RowStatus
from ledger_import.imports.ofx_parser import (
    DEFAULT_DESCRIPTION,
    correct_card_sign,
    decode_ofx,
    get_tag_value,
    parse_ofx_buffer,
)


def _ofx(message_block: str, account_block: str, transactions: str) -> bytes:
    return (
        "OFXHEADER:100\n"
        "DATA:OFXSGML\n"
        "<OFX>\n"
        f"<{message_block}>\n"
        f"{account_block}\n"
        "<BANKTRANLIST>\n"
        f"{transactions}"
        "</BANKTRANLIST>\n"
        f"</{message_block}>\n"
        "</OFX>\n"
    ).encode("utf-8")


def _transaction(trntype: str, amount: str, fitid: str, memo: str | None, posted: str | None = "20240305120000[-3:BRT]") -> str:
    lines = ["<STMTTRN>", f"<TRNTYPE>{trntype}"]
    if posted is not None:
        lines.append(f"<DTPOSTED>{posted}")
    lines.extend([f"<TRNAMT>{amount}", f"<FITID>{fitid}"])
    if memo is not None:
        lines.append(f"<MEMO>{memo}")
    lines.append("</STMTTRN>")
    return "\n".join(lines) + "\n"


CARD_ACCOUNT = "<CCACCTFROM>\n<ACCTID>5555-CARD\n</CCACCTFROM>"
BANK_ACCOUNT = "<BANKACCTFROM>\n<BANKID>077\n<ACCTID>12345-6\n</BANKACCTFROM>"


def test_credit_card_invoice_expense() -> None:
    content = _ofx("CREDITCARDMSGSRSV1", CARD_ACCOUNT, _transaction("DEBIT", "-120.55", "ABC123", "Restaurante Sabor"))

    result = parse_ofx_buffer(content)

    assert result.classification.document_type is DocumentType.CREDIT_CARD_INVOICE
    assert result.account_id == "5555-CARD"
    transaction = result.transactions[0]
    assert transaction.amount == -120.55
    assert transaction.type == "expense"
    assert transaction.external_id == "ABC123"
    assert transaction.date == datetime(2024, 3, 5, 12, 0, tzinfo=timezone.utc)
    assert transaction.document_type is DocumentType.CREDIT_CARD_INVOICE
    assert transaction.account_hint == "5555-CARD"


def test_bank_statement_income() -> None:
    content = _ofx("BANKMSGSRSV1", BANK_ACCOUNT, _transaction("CREDIT", "2500.00", "SAL-03", "Salario"))

    result = parse_ofx_buffer(content)

    assert result.classification.document_type is DocumentType.BANK_STATEMENT
    assert result.account_id == "12345-6"
    assert result.transactions[0].amount == 2500.0
    assert result.transactions[0].type == "income"


def test_card_signs_are_corrected_by_transaction_type() -> None:
    transactions = _transaction("DEBIT", "50.00", "T1", "Loja") + _transaction("PAYMENT", "-300.00", "T2", "Pagamento recebido")
    content = _ofx("CREDITCARDMSGSRSV1", CARD_ACCOUNT, transactions)

    result = parse_ofx_buffer(content)

    assert [transaction.amount for transaction in result.transactions] == [-50.0, 300.0]


@pytest.mark.parametrize(
    ("amount", "trntype", "expected"),
    [
        (50.0, "POS", -50.0),
        (-50.0, "CREDIT", 50.0),
        (-50.0, "DEBIT", -50.0),
        (50.0, None, 50.0),
    ],
)
def test_correct_card_sign(amount: float, trntype: str | None, expected: float) -> None:
    assert correct_card_sign(amount, trntype) == expected


def test_broken_blocks_become_error_diagnostics() -> None:
    transactions = (
        _transaction("DEBIT", "-10.00", "OK-1", "Padaria")
        + _transaction("DEBIT", "-10.00", "BAD-DATE", "Padaria", posted="notadate")
        + _transaction("DEBIT", "abc", "BAD-AMOUNT", "Padaria")
        + _transaction("DEBIT", "-5.00", "NO-DATE", "Padaria", posted=None)
    )
    content = _ofx("BANKMSGSRSV1", BANK_ACCOUNT, transactions)

    result = parse_ofx_buffer(content)

    assert len(result.transactions) == 1
    assert [diagnostic.reason for diagnostic in result.diagnostics] == [
        "ok",
        "invalid_date",
        "invalid_amount",
        "invalid_date",
    ]
    assert result.summary.error_rows == 3
    assert all(diagnostic.status is RowStatus.ERROR for diagnostic in result.diagnostics[1:])


def test_missing_memo_uses_default_description() -> None:
    content = _ofx("BANKMSGSRSV1", BANK_ACCOUNT, _transaction("DEBIT", "-10.00", "X1", None))

    result = parse_ofx_buffer(content)

    assert result.transactions[0].description == DEFAULT_DESCRIPTION


def test_decode_ofx_falls_back_to_latin1() -> None:
    text, encoding = decode_ofx("<MEMO>Pão".encode("latin-1"))

    assert encoding == "latin-1"
    assert text == "<MEMO>Pão"


def test_get_tag_value_reads_single_line_values() -> None:
    block = "<STMTTRN>\n<TRNAMT> -10.00 \n<MEMO>\n</STMTTRN>"

    assert get_tag_value(block, "trnamt") == "-10.00"
    assert get_tag_value(block, "MEMO") is None
    assert get_tag_value(block, "FITID") is None
