"""Text decoding and cleanup helpers shared by the statement parsers."""
from __future__ import annotations

import re
import unicodedata

from .installments import strip_installment_marker

ENCODING_CANDIDATES = ("utf-8", "latin-1", "cp1252")

_MOJIBAKE_FIXES: tuple[tuple[str, str], ...] = (
    ("Ã¡", "á"),
    ("Ã ", "à"),
    ("Ã¢", "â"),
    ("Ã£", "ã"),
    ("Ã¤", "ä"),
    ("Ã©", "é"),
    ("Ãª", "ê"),
    ("Ã¨", "è"),
    ("Ã­", "í"),
    ("Ã¬", "ì"),
    ("Ã³", "ó"),
    ("Ã²", "ò"),
    ("Ã´", "ô"),
    ("Ãµ", "õ"),
    ("Ãº", "ú"),
    ("Ã¹", "ù"),
    ("Ã§", "ç"),
    ("Ã€", "À"),
    ("Ã‚", "Â"),
    ("Ãƒ", "Ã"),
    ("Ã‰", "É"),
    ("ÃŠ", "Ê"),
    ("Ã“", "Ó"),
    ("Ã”", "Ô"),
    ("Ã•", "Õ"),
    ("Ãš", "Ú"),
    ("Ã‡", "Ç"),
    ("â€“", "-"),
    ("â€”", "-"),
    ("â€˜", "'"),
    ("â€™", "'"),
    ("â€œ", '"'),
    ("â€¢", "*"),
    ("â€¦", "..."),
)

_BROKEN_HEADER_WORDS = (
    (re.compile(r"Descri(?:[\ufffd?]+|Ã§Ã£)o", re.IGNORECASE), "Descricao"),
    (re.compile(r"Lan(?:[\ufffd?]+|Ã§)amento", re.IGNORECASE), "Lancamento"),
    (re.compile(r"Hist(?:[\ufffd?]+|Ã³)rico", re.IGNORECASE), "Historico"),
)

_NOISE_PREFIXES = (
    re.compile(r"^NO\s+ESTABELECIMENTO\s*[:\-]?\s*", re.IGNORECASE),
    re.compile(r"^COMPRA\s+NO\s+ESTABELECIMENTO\s*[:\-]?\s*", re.IGNORECASE),
    re.compile(r"^ESTABELECIMENTO\s*[:\-]?\s*", re.IGNORECASE),
)
_LOCATION_NOISE = re.compile(r"\b(?:ITU|BRA|BRASIL)\b", re.IGNORECASE)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

_MERCHANT_NOISE_TOKENS = frozenset(
    {
        "PIX", "PAGAMENTO", "PAGTO", "PGTO", "COMPRA", "DEBITO", "DEBIT", "CREDITO",
        "TRANSFERENCIA", "TRANSFER", "TRANSF", "RECEBIDO", "ENVIADO", "DOC", "TED",
        "TEF", "TARIFA", "JUROS", "IOF", "MORA", "MULTA", "PARCELA", "PARCELADO",
        "PARC", "NO", "EM", "ESTABELECIMENTO", "BR", "BRA", "ITU", "R", "RS",
    }
)

_PERSON_STOPWORDS = frozenset(
    {
        "SUPERMERCADO", "MERCADO", "PADARIA", "LANCHES", "RESTAURANTE", "POSTO",
        "IPIRANGA", "FARMACIA", "LOJA", "MERCANTIL", "LTDA", "SA", "ME", "EPP", "EIRELI",
    }
)


def _score_decoded_text(text: str) -> int:
    replacement = text.count("\ufffd")
    artifacts = sum(text.count(char) for char in "ÃÂâ")
    controls = len(_CONTROL_CHARS.findall(text))
    return replacement * 40 + artifacts * 4 + controls * 2


def decode_import_text(content: bytes) -> tuple[str, str]:
    """Decode raw bytes with the candidate encoding that yields the fewest artifacts.

    Returns the decoded text and the name of the encoding that won. Ties keep the
    earlier candidate, so clean UTF-8 input always decodes as UTF-8.
    """

    best_text = ""
    best_encoding = ENCODING_CANDIDATES[0]
    best_score: int | None = None
    for encoding in ENCODING_CANDIDATES:
        text = content.decode(encoding, errors="replace")
        score = _score_decoded_text(text)
        if best_score is None or score < best_score:
            best_text, best_encoding, best_score = text, encoding, score
    if best_text.startswith("\ufeff"):
        best_text = best_text[1:]
    return best_text, best_encoding


def fix_common_mojibake(value: str | None) -> str:
    """Repair UTF-8 text that was decoded as latin-1 somewhere upstream."""

    if not value:
        return ""
    output = value
    for broken, fixed in _MOJIBAKE_FIXES:
        output = output.replace(broken, fixed)
    for pattern, replacement in _BROKEN_HEADER_WORDS:
        output = pattern.sub(replacement, output)
    return re.sub("\ufffd+", " ", output)


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def normalize_import_text(
    value: str | None,
    *,
    uppercase: bool = False,
    remove_accents: bool = False,
    remove_noise: bool = True,
) -> str:
    """Clean a free-text statement field for display or matching."""

    output = fix_common_mojibake(value)
    output = re.sub(r"\r?\n+", " ", output)
    output = re.sub(r"[\t|]+", " ", output)
    output = re.sub(r"[;:]{2,}", " ", output)
    output = re.sub(r"[.,]{2,}", " ", output).strip()

    if remove_noise:
        for pattern in _NOISE_PREFIXES:
            output = pattern.sub("", output)
        output = _LOCATION_NOISE.sub(" ", output)

    output = re.sub(r"\s*-\s*-\s*", " ", output)
    output = re.sub(r"\s{2,}", " ", output).strip()

    if remove_accents:
        output = strip_accents(output)
    if uppercase:
        output = output.upper()
    return output


def normalize_for_match(value: str | None) -> str:
    """Uppercase, accent-free, noise-free form used by keyword matching."""

    return normalize_import_text(value, uppercase=True, remove_accents=True, remove_noise=True)


def build_merchant_key(value: str | None) -> str:
    """Collapse a description into a short lowercase merchant key."""

    normalized = normalize_for_match(strip_installment_marker(value or ""))
    tokens = [re.sub(r"[^A-Z0-9]", "", token) for token in normalized.split(" ")]
    kept = [
        token
        for token in tokens
        if len(token) > 1 and not token.isdigit() and token not in _MERCHANT_NOISE_TOKENS
    ]
    if not kept:
        return "transacao"
    return " ".join(kept[:6]).lower()


def looks_like_person_name(value: str | None) -> bool:
    """Heuristic used by the builtin PIX rule: two to five plain alphabetic words."""

    normalized = normalize_for_match(value)
    tokens = [token for token in normalized.split(" ") if len(token) > 1]
    if len(tokens) < 2 or len(tokens) > 5:
        return False
    if any(token in _PERSON_STOPWORDS for token in tokens):
        return False
    return sum(1 for token in tokens if token.isalpha() and token.isascii()) >= 2
