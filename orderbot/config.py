# orderbot/config.py
import os
import re
from dataclasses import dataclass, field
from typing import List, Optional, Set

from dotenv import load_dotenv

DEFAULT_CATALOG_ENDPOINTS = ["/produtos", "/ensacados", "/cereais"]
DEFAULT_POSTAL_LOOKUP_URL = "https://viacep.com.br/ws/{cep}/json/"


@dataclass
class Settings:
    # Telegram
    tg_bot_token: str

    # Backend (catalogo, pedidos, cadastro)
    api_base_url: str = "http://localhost:8080"
    api_auth_token: str | None = None
    api_timeout: float = 10.0

    # Catalogo
    catalog_endpoints: List[str] = field(default_factory=lambda: list(DEFAULT_CATALOG_ENDPOINTS))
    catalog_file: str | None = None
    catalog_refresh_seconds: int = 900
    catalog_images_dir: str = "catalog"

    # CEP
    postal_lookup_url: str = DEFAULT_POSTAL_LOOKUP_URL
    postal_lookup_timeout: float = 5.0

    # Grupos de operacao
    orders_group_id: int | None = None
    error_group_id: int | None = None
    questions_group_id: int | None = None
    command_group_id: int | None = None
    operator_ids: Set[int] = field(default_factory=set)

    # Atendimento
    business_timezone: str = "America/Sao_Paulo"
    business_hours_start: int = 0
    business_hours_end: int = 24
    site_url: str = "https://seudominio.com"

    debug: bool = False

    @property
    def failures_group_id(self) -> Optional[int]:
        return self.error_group_id or self.orders_group_id


def _to_int(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _to_float(value: str | None, default: float) -> float:
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _split_list(value: str | None) -> List[str]:
    if not value:
        return []
    return [p.strip() for p in value.split(",") if p.strip()]


def normalize_base_url(raw: str) -> str:
    """
    Backend address may come without scheme (ex: "api.exemplo.up.railway.app"),
    in which case https is assumed.
    """
    raw = (raw or "").strip().rstrip("/")
    if not raw:
        return "http://localhost:8080"
    if not re.match(r"^https?://", raw, re.IGNORECASE):
        return f"https://{raw}"
    return raw


def load_settings() -> Settings:
    load_dotenv()

    tg_bot_token = os.getenv("TG_BOT_TOKEN")
    if not tg_bot_token:
        raise RuntimeError("TG_BOT_TOKEN nao definido no .env!")

    operator_ids = set()
    for raw in _split_list(os.getenv("OPERATOR_IDS")):
        value = _to_int(raw)
        if value is not None:
            operator_ids.add(value)

    endpoints = _split_list(os.getenv("CATALOG_ENDPOINTS")) or list(DEFAULT_CATALOG_ENDPOINTS)

    return Settings(
        tg_bot_token=tg_bot_token,
        api_base_url=normalize_base_url(os.getenv("API_BASE_URL", "http://localhost:8080")),
        api_auth_token=os.getenv("API_AUTH_TOKEN"),
        api_timeout=_to_float(os.getenv("API_TIMEOUT"), 10.0),
        catalog_endpoints=endpoints,
        catalog_file=os.getenv("CATALOG_FILE"),
        catalog_refresh_seconds=_to_int(os.getenv("CATALOG_REFRESH_SECONDS")) or 900,
        catalog_images_dir=os.getenv("CATALOG_IMAGES_DIR", "catalog"),
        postal_lookup_url=os.getenv("POSTAL_LOOKUP_URL", DEFAULT_POSTAL_LOOKUP_URL),
        postal_lookup_timeout=_to_float(os.getenv("POSTAL_LOOKUP_TIMEOUT"), 5.0),
        orders_group_id=_to_int(os.getenv("ORDERS_GROUP_ID")),
        error_group_id=_to_int(os.getenv("ERROR_GROUP_ID")),
        questions_group_id=_to_int(os.getenv("QUESTIONS_GROUP_ID")),
        command_group_id=_to_int(os.getenv("COMMAND_GROUP_ID")),
        operator_ids=operator_ids,
        business_timezone=os.getenv("BUSINESS_TIMEZONE", "America/Sao_Paulo"),
        business_hours_start=_to_int(os.getenv("BUSINESS_HOURS_START")) or 0,
        business_hours_end=_to_int(os.getenv("BUSINESS_HOURS_END")) or 24,
        site_url=os.getenv("SITE_URL", "https://seudominio.com"),
        debug=os.getenv("DEBUG", "False").lower() == "true",
    )
