"""Tests for import and transfer fingerprints."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ledger_import.imports.fingerprints import (
    create_imported_hash,
    create_transfer_key_hash,
    normalize_external_id,
    transfer_leg_hashes,
)
from ledger_import.services.exceptions import InvalidAmountError, InvalidDateError

USER_ID = "user-1"
ACCOUNT_ID = "acc-1"


def _content_hash(**overrides) -> str:
    values = {
        "user_id": USER_ID,
        "source_type": "csv",
        "date_value": "2024-03-05",
        "amount": -12.5,
        "normalized_description": "PADARIA CENTRAL",
        "account_id": ACCOUNT_ID,
        "external_id": None,
    }
    values.update(overrides)
    return create_imported_hash(**values)


def test_imported_hash_is_deterministic() -> None:
    assert _content_hash() == _content_hash()


def test_imported_hash_ignores_time_of_day_and_date_format() -> None:
    assert _content_hash(date_value="05/03/2024") == _content_hash(
        date_value=datetime(2024, 3, 5, 18, 45, tzinfo=timezone.utc)
    )


def test_imported_hash_ignores_source_type() -> None:
    assert _content_hash(source_type="csv") == _content_hash(source_type="ofx")


@pytest.mark.parametrize(
    "overrides",
    [
        {"user_id": "user-2"},
        {"account_id": "acc-2"},
        {"date_value": "2024-03-06"},
        {"amount": -12.51},
        {"normalized_description": "PADARIA NORTE"},
    ],
)
def test_imported_hash_changes_with_identity_fields(overrides) -> None:
    assert _content_hash(**overrides) != _content_hash()


def test_external_id_is_case_and_whitespace_insensitive() -> None:
    first = _content_hash(external_id=" tx-123 ")
    second = _content_hash(
        external_id="TX-123",
        date_value="2024-04-01",
        amount=99.0,
        normalized_description="RESTATED LINE",
    )

    assert first == second
    assert first != _content_hash()


def test_blank_external_id_falls_back_to_content() -> None:
    assert normalize_external_id("   ") is None
    assert _content_hash(external_id="   ") == _content_hash()


def test_imported_hash_is_unique_across_many_rows() -> None:
    hashes = {
        _content_hash(normalized_description=f"COMPRA {index}", amount=-(index % 97) - 1)
        for index in range(10_000)
    }

    assert len(hashes) == 10_000


def test_imported_hash_requires_date_and_finite_amount() -> None:
    with pytest.raises(InvalidDateError):
        _content_hash(date_value=None)
    with pytest.raises(InvalidAmountError):
        _content_hash(amount=float("nan"))


def test_transfer_key_hash_depends_on_direction() -> None:
    forward = create_transfer_key_hash(USER_ID, "2024-03-10", -500.0, "PAGAMENTO FATURA", "acc-1", "card-1")
    backward = create_transfer_key_hash(USER_ID, "2024-03-10", -500.0, "PAGAMENTO FATURA", "card-1", "acc-1")

    assert forward != backward
    assert forward == create_transfer_key_hash(USER_ID, "10/03/2024", 500.0, "PAGAMENTO FATURA", "acc-1", "card-1")


def test_transfer_leg_hashes_suffixes() -> None:
    assert transfer_leg_hashes("abc") == ("abc:OUT", "abc:IN")
