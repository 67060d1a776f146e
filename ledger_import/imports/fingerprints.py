"""Content-addressed fingerprints for import dedupe and transfer pairing."""
from __future__ import annotations

import math
from datetime import date, datetime

from ledger_import.services.exceptions import InvalidAmountError, InvalidDateError
from ledger_import.utils.hash import stable_hash

from .normalizer import parse_flexible_date

TRANSFER_OUT_SUFFIX = ":OUT"
TRANSFER_IN_SUFFIX = ":IN"


def _normalized_date_iso(value: date | datetime | str | None) -> str:
    if value is None:
        raise InvalidDateError("Fingerprint requires a date")
    return parse_flexible_date(value).date().isoformat()


def _normalized_amount(amount: float) -> str:
    number = float(amount)
    if not math.isfinite(number):
        raise InvalidAmountError(f"Fingerprint requires a finite amount, got {amount!r}")
    return f"{abs(number):.2f}"


def normalize_external_id(external_id: str | None) -> str | None:
    if external_id is None:
        return None
    normalized = external_id.strip().upper()
    return normalized or None


def create_imported_hash(
    user_id: str,
    source_type: str,
    date_value: date | datetime | str | None,
    amount: float,
    normalized_description: str,
    account_id: str,
    external_id: str | None = None,
) -> str:
    """Fingerprint identifying one statement line for one user and account.

    A non-empty external id is the line's whole identity, so restated rows from
    the same source record collide. ``source_type`` does not enter the hash: the
    same line exported as CSV and as OFX is one transaction.
    """

    normalized_date = _normalized_date_iso(date_value)
    normalized_amount = _normalized_amount(amount)
    external = normalize_external_id(external_id)
    if external is not None:
        return stable_hash(["ext", user_id, account_id, external])
    return stable_hash(
        ["content", user_id, normalized_date, normalized_amount, normalized_description, account_id]
    )


def create_transfer_key_hash(
    user_id: str,
    date_value: date | datetime | str | None,
    amount: float,
    normalized_description: str,
    from_account_id: str,
    to_account_id: str,
    external_id: str | None = None,
) -> str:
    """Fingerprint pairing the two legs of a transfer between accounts."""

    return stable_hash(
        [
            "transfer",
            user_id,
            _normalized_date_iso(date_value),
            _normalized_amount(amount),
            normalized_description,
            from_account_id,
            to_account_id,
            normalize_external_id(external_id) or "",
        ]
    )


def transfer_leg_hashes(transfer_hash: str) -> tuple[str, str]:
    """Imported hashes persisted on the outgoing and incoming legs."""

    return f"{transfer_hash}{TRANSFER_OUT_SUFFIX}", f"{transfer_hash}{TRANSFER_IN_SUFFIX}"
