"""Detection of "installment N of M" markers in descriptions."""
from __future__ import annotations

import re

from .models import InstallmentInfo
from .normalizer import normalize_description

MAX_INSTALLMENTS = 360

_KEYWORD = r"(?:PARCELADO|PARCELA|PARC|PCLA|PCL)"

INSTALLMENT_PATTERNS = (
    re.compile(rf"\b{_KEYWORD}\.?\s*(\d{{1,3}})\s*(?:DE|/)\s*(\d{{1,3}})\b", re.IGNORECASE),
    re.compile(rf"\b(\d{{1,3}})\s*/\s*(\d{{1,3}})\s*{_KEYWORD}\b\.?", re.IGNORECASE),
    re.compile(rf"\b{_KEYWORD}\.?\s*(\d{{1,3}})\s*-\s*(\d{{1,3}})\b", re.IGNORECASE),
)

_EDGE_SEPARATORS = re.compile(r"^[\s\-:|()\[\].,]+|[\s\-:|()\[\].,]+$")


def _find_marker(description: str) -> tuple[re.Match[str], int, int] | None:
    for pattern in INSTALLMENT_PATTERNS:
        for match in pattern.finditer(description):
            current, total = int(match.group(1)), int(match.group(2))
            if 0 < current <= total <= MAX_INSTALLMENTS:
                return match, current, total
    return None


def _remove_marker(description: str, match: re.Match[str]) -> str:
    remainder = f"{description[: match.start()]} {description[match.end():]}"
    remainder = " ".join(remainder.split())
    return _EDGE_SEPARATORS.sub("", remainder).strip()


def extract_installment_info(description: str | None) -> InstallmentInfo | None:
    """Return installment details for a description, or None when it has no marker."""

    source = (description or "").strip()
    if not source:
        return None
    found = _find_marker(source)
    if found is None:
        return None

    match, current, total = found
    base = _remove_marker(source, match) or source
    return InstallmentInfo(
        current_installment=current,
        total_installments=total,
        remaining_installments=max(0, total - current),
        marker=f"{current}/{total}",
        base_description=base,
        normalized_base_description=normalize_description(base),
    )


def has_installment_marker(description: str | None) -> bool:
    return extract_installment_info(description) is not None


def strip_installment_marker(description: str | None) -> str:
    info = extract_installment_info(description)
    if info is None:
        return (description or "").strip()
    return info.base_description
