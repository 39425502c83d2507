# orderbot/utils/text.py
import re
import unicodedata
from typing import Optional, Tuple

QUANTITY_PREFIX_REGEX = re.compile(
    r"^(\d{1,5})\s*(?:x|un\.?|unid\.?|unidades?|sacos?|pcts?|pacotes?)?\s+(.+)$",
    re.IGNORECASE,
)
QUANTITY_X_REGEX = re.compile(r"^(\d{1,5})\s*x\b\s*(.+)$", re.IGNORECASE)
PRICE_REGEX = re.compile(r"R\$\s*([0-9.,]+)", re.IGNORECASE)


def strip_accents(s: str) -> str:
    nfd = unicodedata.normalize("NFD", s or "")
    return "".join(ch for ch in nfd if unicodedata.category(ch) != "Mn")


def normalize_string(s) -> str:
    """
    Catalog key form: accents removed, trimmed, upper case, single spaces.
    'Milho  ensacado 25kg' -> 'MILHO ENSACADO 25KG'
    """
    if s is None:
        return ""
    text = strip_accents(str(s))
    return re.sub(r"\s+", " ", text).strip().upper()


def only_digits(s: str) -> str:
    return re.sub(r"\D", "", s or "")


def parse_quantity_and_item(text: str) -> Tuple[Optional[int], str]:
    """
    Splits an optional leading quantity from the item text.

      '3 Milho 25kg'   -> (3, 'Milho 25kg')
      '2x Farelo'      -> (2, 'Farelo')
      'Milho 25kg'     -> (None, 'Milho 25kg')

    Numbers glued to units ('25kg') are part of the item name.
    """
    body = (text or "").strip()
    if not body:
        return None, ""

    m = QUANTITY_X_REGEX.match(body) or QUANTITY_PREFIX_REGEX.match(body)
    if m:
        qty = int(m.group(1))
        item = m.group(2).strip()
        if qty > 0 and item:
            return qty, item

    return None, body


def parse_positive_int(text: str) -> Optional[int]:
    m = re.search(r"\d+", text or "")
    if not m:
        return None
    value = int(m.group(0))
    return value if value > 0 else None


def parse_brl_amount(raw: str) -> Optional[float]:
    """
    '1.234,56' -> 1234.56, '47' -> 47.0, '47.5' -> 47.5
    """
    s = (raw or "").strip().rstrip(".,")
    if not s:
        return None
    if "," in s:
        s = s.replace(".", "").replace(",", ".")
    elif s.count(".") > 1 or re.search(r"\.\d{3}$", s):
        s = s.replace(".", "")
    try:
        return float(s)
    except ValueError:
        return None


def extract_price(line: str) -> Optional[float]:
    m = PRICE_REGEX.search(line or "")
    if not m:
        return None
    return parse_brl_amount(m.group(1))


def format_brl(value: Optional[float]) -> str:
    amount = float(value or 0)
    text = f"{amount:,.2f}"
    return text.replace(",", "X").replace(".", ",").replace("X", ".")
