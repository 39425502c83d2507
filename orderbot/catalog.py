# orderbot/catalog.py
import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from .utils.text import normalize_string, parse_brl_amount

logger = logging.getLogger(__name__)

NAME_CANDIDATES = ["Nome", "nome", "Name", "name", "Descricao", "descricao", "titulo", "Titulo"]
PRICE_CANDIDATES = ["price", "preco", "Preco", "valor", "Valor"]
MAX_CANDIDATES = 10
MIN_REVERSE_KEY = 3

EXACT_CODE_KEY = re.compile(r"^(codigo|cod|code)$", re.IGNORECASE)
CODIGO_KEY = re.compile(r"codigo", re.IGNORECASE)
COD_KEY = re.compile(r"cod", re.IGNORECASE)
ID_KEY = re.compile(r"^id$", re.IGNORECASE)
ID_PREFIX_KEY = re.compile(r"^id_", re.IGNORECASE)

CODE_KEY_TIERS = [
    EXACT_CODE_KEY.match,
    CODIGO_KEY.search,
    COD_KEY.search,
    lambda k: bool(ID_KEY.match(k) or ID_PREFIX_KEY.match(k)),
]


@dataclass(frozen=True)
class CatalogEntry:
    name: str
    code: str = ""
    price: Optional[float] = None

    @property
    def normalized_name(self) -> str:
        return normalize_string(self.name)

    @property
    def normalized_code(self) -> str:
        return normalize_string(self.code)

    @property
    def key(self) -> str:
        return self.normalized_code or self.normalized_name


# =========================
# Lookup results
# =========================

@dataclass(frozen=True)
class NoMatch:
    pass


@dataclass(frozen=True)
class UniqueMatch:
    entry: CatalogEntry


@dataclass(frozen=True)
class AmbiguousMatches:
    entries: List[CatalogEntry] = field(default_factory=list)


CatalogMatch = Union[NoMatch, UniqueMatch, AmbiguousMatches]


# =========================
# Raw record normalization
# =========================

def _present(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def find_code_in_object(obj: Any, seen: Optional[Set[int]] = None) -> Optional[str]:
    """
    Code field lookup over records with unknown shape:
      1) key exactly codigo/cod/code
      2) any key with 'codigo' (CodigoProduto...)
      3) any key with 'cod' (CodProd...)
      4) id / id_* fallback
      5) recursive search in nested dicts/lists
    """
    if seen is None:
        seen = set()

    if isinstance(obj, list):
        if id(obj) in seen:
            return None
        seen.add(id(obj))
        for item in obj:
            found = find_code_in_object(item, seen)
            if found:
                return found
        return None

    if not isinstance(obj, dict) or id(obj) in seen:
        return None
    seen.add(id(obj))

    scalars = [(str(k), v) for k, v in obj.items() if not isinstance(v, (dict, list)) and _present(v)]
    for matches in CODE_KEY_TIERS:
        for k, v in scalars:
            if matches(k):
                return str(v).strip()

    for v in obj.values():
        if isinstance(v, (dict, list)):
            found = find_code_in_object(v, seen)
            if found:
                return found

    return None


def _extract_name(raw: Dict[str, Any]) -> Optional[str]:
    for k in NAME_CANDIDATES:
        value = raw.get(k)
        if _present(value):
            return str(value).strip()

    for value in raw.values():
        if isinstance(value, str) and value.strip():
            return value.strip()

    return None


def _to_price(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return parse_brl_amount(value.replace("R$", ""))
    return None


def _extract_price(raw: Dict[str, Any]) -> Optional[float]:
    for k in PRICE_CANDIDATES:
        if k in raw:
            price = _to_price(raw[k])
            if price is not None:
                return price
    return None


def entry_from_record(raw: Any) -> Optional[CatalogEntry]:
    if not isinstance(raw, dict):
        return None

    name = _extract_name(raw)
    if not name:
        return None

    code = find_code_in_object(raw) or ""
    return CatalogEntry(name=name, code=code, price=_extract_price(raw))


def records_from_catalog_file(data: Any) -> List[Dict[str, Any]]:
    """
    Local catalog files come in several shapes:
      - [{"name": ..., "code": ..., "price": ...}, ...]
      - {"MILHO 48 KG": "MIL4801", ...}       name -> code
      - {"MILHO 48 KG": 47.0, ...}            name -> price
      - {"MIL4801": {"name": ..., ...}, ...}  code -> record
    """
    if isinstance(data, list):
        return [r for r in data if isinstance(r, dict)]

    if not isinstance(data, dict):
        return []

    records: List[Dict[str, Any]] = []
    for k, v in data.items():
        if isinstance(v, dict):
            record = dict(v)
            if not any(_present(record.get(n)) for n in NAME_CANDIDATES + ["label"]):
                record["name"] = str(k)
            elif not _present(record.get("name")) and _present(record.get("label")):
                record["name"] = record["label"]
            if not find_code_in_object(record):
                record["code"] = str(k)
            records.append(record)
        elif isinstance(v, str):
            records.append({"name": str(k), "code": v})
        else:
            records.append({"name": str(k), "price": v})
    return records


# =========================
# Index
# =========================

class CatalogIndex:
    """
    Read-only after construction. Refresh builds a new index instead of
    mutating this one.
    """

    def __init__(self, entries: Iterable[CatalogEntry]):
        self.entries: List[CatalogEntry] = list(entries)
        self.by_name: Dict[str, CatalogEntry] = {}
        self.by_code: Dict[str, CatalogEntry] = {}

        for entry in self.entries:
            if entry.normalized_name:
                self.by_name[entry.normalized_name] = entry
            if entry.normalized_code:
                self.by_code[entry.normalized_code] = entry

    def __len__(self) -> int:
        return len(self.entries)

    def lookup(self, text: str) -> CatalogMatch:
        norm = normalize_string(text)
        if not norm:
            return NoMatch()

        if norm in self.by_code:
            return UniqueMatch(self.by_code[norm])
        if norm in self.by_name:
            return UniqueMatch(self.by_name[norm])

        # short keys (ids like "7") are not searched inside the query, and
        # short queries (quantities like "3") are not searched inside codes
        candidates: List[CatalogEntry] = []
        for k, entry in self.by_name.items():
            if norm in k or (len(k) >= MIN_REVERSE_KEY and k in norm):
                candidates.append(entry)
        for k, entry in self.by_code.items():
            if (len(norm) >= MIN_REVERSE_KEY and norm in k) or (len(k) >= MIN_REVERSE_KEY and k in norm):
                candidates.append(entry)

        result = self._as_match(candidates)
        if not isinstance(result, NoMatch):
            return result

        tokens = norm.split(" ")
        token_matches = [
            entry
            for entry in self.by_name.values()
            if all(t in entry.normalized_name.split(" ") for t in tokens)
        ]
        return self._as_match(token_matches)

    @staticmethod
    def _as_match(candidates: List[CatalogEntry]) -> CatalogMatch:
        unique: List[CatalogEntry] = []
        seen: Set[str] = set()
        for entry in candidates:
            if entry.key in seen:
                continue
            seen.add(entry.key)
            unique.append(entry)

        if not unique:
            return NoMatch()
        if len(unique) == 1:
            return UniqueMatch(unique[0])
        return AmbiguousMatches(unique[:MAX_CANDIDATES])


def build_index(records: Iterable[Any]) -> CatalogIndex:
    entries = []
    for raw in records:
        entry = entry_from_record(raw)
        if entry is not None:
            entries.append(entry)
    return CatalogIndex(entries)


# =========================
# Loading / refresh
# =========================

def load_catalog_file(path: str) -> List[Dict[str, Any]]:
    p = Path(path)
    if not p.exists():
        logger.warning("Catalog file %s not found", path)
        return []
    with open(p, "r", encoding="utf-8") as f:
        data = json.load(f)
    return records_from_catalog_file(data)


class CatalogHolder:
    """
    Holds the current CatalogIndex. Readers call `holder.index` and get a
    complete index; refresh swaps the reference.
    """

    def __init__(self, api, endpoints: List[str], index: Optional[CatalogIndex] = None):
        self.api = api
        self.endpoints = list(endpoints)
        self.index: CatalogIndex = index or CatalogIndex([])

    def lookup(self, text: str) -> CatalogMatch:
        return self.index.lookup(text)

    async def fetch_records(self) -> List[Any]:
        records: List[Any] = []
        for endpoint in self.endpoints:
            try:
                data = await self.api.get_json(endpoint)
            except Exception as e:
                logger.warning("Catalog endpoint %s failed: %s", endpoint, e)
                continue
            if isinstance(data, list):
                records.extend(data)
            else:
                logger.warning("Catalog endpoint %s returned %s, expected list", endpoint, type(data).__name__)
        return records

    async def refresh(self) -> bool:
        try:
            records = await self.fetch_records()
            new_index = build_index(records)
        except Exception as e:
            logger.error("Catalog refresh failed, keeping previous catalog: %s", e)
            return False

        if not len(new_index):
            logger.warning(
                "Catalog refresh returned no items, keeping previous catalog (%s items)",
                len(self.index),
            )
            return False

        self.index = new_index
        logger.info("Catalog updated from API: %s items", len(new_index))
        return True

    async def run_periodic(self, interval_seconds: int) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            await self.refresh()
