"""Account routing, card-payment detection and transfer pairing for imported rows."""
from __future__ import annotations

import re
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .fingerprints import create_transfer_key_hash, transfer_leg_hashes
from .models import AccountRef, DocumentType, ParsedDraftTransaction, TransactionRecord
from .normalizer import normalize_description

CARD_PAYMENT_STATEMENT_PATTERN = re.compile(
    r"PAGAMENTO\s+FATURA|PGTO\s+FATURA|PAGTO\s+FATURA|PAGAMENTO\s+CARTAO|FATURA\s+CARTAO|PAGAMENTO\s+DE\s+FATURA",
    re.IGNORECASE,
)
CARD_PAYMENT_INVOICE_SKIP_PATTERN = re.compile(
    r"PAGAMENTO\s+RECEBIDO|PAGAMENTO\s+FATURA|PGTO\s+FATURA|PAGTO\s+FATURA|CREDITO\s+DE\s+PAGAMENTO",
    re.IGNORECASE,
)
CARD_NAME_HINT_PATTERN = re.compile(r"CARTAO|CREDITO|CREDIT", re.IGNORECASE)

CHECKING_LIKE_TYPES = frozenset({"checking", "cash"})


def is_checking_like(account: AccountRef) -> bool:
    return account.type in CHECKING_LIKE_TYPES


def is_card_payment(account: AccountRef, amount: float, normalized_description: str) -> bool:
    """A debit on a checking or cash account that pays a card invoice."""

    return is_checking_like(account) and amount < 0 and bool(CARD_PAYMENT_STATEMENT_PATTERN.search(normalized_description))


def should_skip_card_payment_line(account: AccountRef, normalized_description: str, enabled: bool = True) -> bool:
    """Invoice lines recording the payment received; the bank side already made the transfer."""

    if not enabled or account.type != "credit":
        return False
    return bool(CARD_PAYMENT_INVOICE_SKIP_PATTERN.search(normalized_description))


def _same_text(left: str | None, right: str | None) -> bool:
    left, right = (left or "").strip(), (right or "").strip()
    return bool(left and right) and normalize_description(left) == normalize_description(right)


class AccountDirectory:
    """In-memory view of the user's accounts used to route each row."""

    def __init__(self, accounts: Sequence[AccountRef]) -> None:
        self.accounts = list(accounts)
        self.by_id = {account.id: account for account in self.accounts}
        self.by_name = {normalize_description(account.name): account.id for account in self.accounts}

    def get(self, account_id: str | None) -> AccountRef | None:
        if not account_id:
            return None
        return self.by_id.get(account_id.strip())

    @property
    def credit_accounts(self) -> list[AccountRef]:
        return [account for account in self.accounts if account.type == "credit"]

    def resolve(self, draft: ParsedDraftTransaction, default_account_id: str | None = None) -> AccountRef | None:
        """Row account id, then the account hint (exact then fuzzy name), then the default."""

        explicit = self.get(draft.account_id)
        if explicit is not None:
            return explicit

        if draft.account_hint:
            hint = normalize_description(draft.account_hint)
            if hint in self.by_name:
                return self.by_id[self.by_name[hint]]
            for name, account_id in self.by_name.items():
                if name and hint and (name in hint or hint in name):
                    return self.by_id[account_id]

        return self.get(default_account_id)

    def resolve_credit_invoice_account(
        self,
        draft: ParsedDraftTransaction,
        current: AccountRef,
        default_account_id: str | None = None,
    ) -> AccountRef | None:
        """Pick the credit account an invoice row belongs to, or None when ambiguous."""

        explicit = self.get(draft.account_id)
        if explicit is not None and explicit.type == "credit":
            return explicit

        default = self.get(default_account_id)
        if default is not None and default.type == "credit":
            return default

        cards = self.credit_accounts
        if not cards:
            return None

        if draft.account_hint and draft.account_hint.strip():
            hint = normalize_description(draft.account_hint)
            by_hint = []
            for card in cards:
                name = normalize_description(card.name)
                institution = normalize_description(card.institution or "")
                if name in hint or hint in name or (institution and (institution in hint or hint in institution)):
                    by_hint.append(card)
            if len(by_hint) == 1:
                return by_hint[0]

        if current.type != "credit":
            linked = [card for card in cards if card.parent_account_id == current.id]
            if len(linked) == 1:
                return linked[0]

        same_institution = [card for card in cards if _same_text(card.institution, current.institution)]
        if len(same_institution) == 1:
            return same_institution[0]

        if len(cards) == 1:
            return cards[0]
        return None

    def resolve_card_payment_target(
        self,
        source: AccountRef,
        explicit_ids: Sequence[str | None] = (),
    ) -> AccountRef | None:
        """Credit account a card payment settles: explicit ids, child card, then same-institution card."""

        for account_id in explicit_ids:
            account = self.get(account_id)
            if account is not None and account.type == "credit":
                return account

        children = [card for card in self.credit_accounts if card.parent_account_id == source.id]
        if len(children) == 1:
            return children[0]

        if not (source.institution or "").strip():
            return None
        candidates = [
            card
            for card in self.credit_accounts
            if card.id != source.id
            and _same_text(card.institution, source.institution)
            and CARD_NAME_HINT_PATTERN.search(normalize_description(card.name))
        ]
        if len(candidates) == 1:
            return candidates[0]
        return None


def is_credit_card_invoice(document_type: DocumentType | str | None) -> bool:
    value = getattr(document_type, "value", document_type)
    return str(value or "").strip().lower() in ("credit_card_invoice", "credit card invoice")


@dataclass(slots=True)
class TransferPlan:
    """A row that will be persisted as two linked legs."""

    from_account_id: str
    to_account_id: str
    hash_base: str
    from_card_payment: bool = False
    out_hash: str = field(init=False)
    in_hash: str = field(init=False)

    def __post_init__(self) -> None:
        self.out_hash, self.in_hash = transfer_leg_hashes(self.hash_base)


def plan_transfer(
    user_id: str,
    date_value: datetime,
    amount: float,
    normalized_description: str,
    from_account: AccountRef,
    to_account: AccountRef,
    external_id: str | None = None,
    from_card_payment: bool = False,
) -> TransferPlan:
    hash_base = create_transfer_key_hash(
        user_id,
        date_value,
        amount,
        normalized_description,
        from_account.id,
        to_account.id,
        external_id,
    )
    return TransferPlan(from_account.id, to_account.id, hash_base, from_card_payment)


def build_transfer_pair(
    plan: TransferPlan,
    date_value: datetime,
    description: str,
    normalized_description: str,
    amount: float,
    external_id: str | None = None,
    raw: dict[str, Any] | None = None,
) -> tuple[TransactionRecord, TransactionRecord]:
    """OUT leg debits the source account and IN leg credits the target, sharing one group id."""

    group_id = str(uuid.uuid4())
    absolute = round(abs(amount), 2)
    base_raw = dict(raw or {})
    base_raw.update(
        {
            "transfer_detected_from_card_payment": plan.from_card_payment,
            "transfer_from_account_id": plan.from_account_id,
            "transfer_to_account_id": plan.to_account_id,
        }
    )
    out_leg = TransactionRecord(
        account_id=plan.from_account_id,
        date=date_value,
        description=description,
        normalized_description=normalized_description,
        amount=-absolute,
        imported_hash=plan.out_hash,
        external_id=external_id,
        transfer_group_id=group_id,
        transfer_peer_account_id=plan.to_account_id,
        raw=dict(base_raw),
    )
    in_leg = TransactionRecord(
        account_id=plan.to_account_id,
        date=date_value,
        description=description,
        normalized_description=normalized_description,
        amount=absolute,
        imported_hash=plan.in_hash,
        external_id=external_id,
        transfer_group_id=group_id,
        transfer_peer_account_id=plan.from_account_id,
        raw=dict(base_raw),
    )
    return out_leg, in_leg
