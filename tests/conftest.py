"""
Pytest fixtures for orderbot tests.

Provides a small in-memory catalog, a fake postal-code resolver, a fake
backend API that records what would be posted, and an engine factory.
"""
from typing import Any, Dict, List, Optional

import pytest

from orderbot.address import AddressInfo, clean_postal_code
from orderbot.catalog import CatalogHolder, build_index
from orderbot.config import Settings
from orderbot.flow.engine import OrderSessionEngine
from orderbot.storage import SessionStore
from orderbot.submission import SubmissionGateway

ORDERS_GROUP = -100
ERROR_GROUP = -200
QUESTIONS_GROUP = -300
COMMAND_GROUP = -500

CATALOG_RECORDS = [
    {"Nome": "Milho Ensacado 25kg", "codigo": "MIL2515", "preco": 47.0},
    {"Nome": "Milho Ensacado 48kg", "codigo": "MIL4801", "preco": 89.9},
    {"Nome": "Farelo de Soja 50kg", "CodProduto": "FAR5001", "valor": "120,00"},
    {"Nome": "Ração para Cães 15kg", "id": 3301},
    {"Nome": "Quirera de Milho 20kg", "codigo": "QUI2001", "preco": 35.5},
    {"Nome": "Sal Grosso", "id": 7},
]

SE_ADDRESS = AddressInfo(
    cep="01001-000",
    logradouro="Praça da Sé",
    complemento="lado ímpar",
    bairro="Sé",
    localidade="São Paulo",
    uf="SP",
)


class FakeAddressResolver:
    """Knows a single postal code; everything else is 'not found'."""

    def __init__(self, known: Optional[Dict[str, AddressInfo]] = None):
        self.known = known if known is not None else {"01001000": SE_ADDRESS}
        self.calls: List[str] = []

    async def resolve(self, postal_code: str) -> Optional[AddressInfo]:
        cep = clean_postal_code(postal_code)
        self.calls.append(cep or postal_code)
        if cep is None:
            return None
        return self.known.get(cep)


class FakeApi:
    """Stands in for APIClient; records posted bodies."""

    def __init__(self, catalog: Optional[Dict[str, Any]] = None):
        self.catalog = catalog or {}
        self.orders: List[List[Dict[str, Any]]] = []
        self.customers: List[Dict[str, Any]] = []
        self.fail_orders: Optional[Exception] = None
        self.fail_customers: Optional[Exception] = None

    async def get_json(self, path: str) -> Any:
        value = self.catalog.get(path)
        if isinstance(value, Exception):
            raise value
        return value

    async def create_orders(self, records):
        if self.fail_orders is not None:
            raise self.fail_orders
        self.orders.append(records)
        return {"ok": True}

    async def upsert_customer(self, payload):
        if self.fail_customers is not None:
            raise self.fail_customers
        self.customers.append(payload)
        return {}


@pytest.fixture
def settings():
    return Settings(
        tg_bot_token="123:test",
        orders_group_id=ORDERS_GROUP,
        error_group_id=ERROR_GROUP,
        questions_group_id=QUESTIONS_GROUP,
        command_group_id=COMMAND_GROUP,
        operator_ids={42},
        site_url="https://rbscereais.example",
    )


@pytest.fixture
def catalog():
    return CatalogHolder(api=None, endpoints=[], index=build_index(CATALOG_RECORDS))


@pytest.fixture
def resolver():
    return FakeAddressResolver()


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def gateway(api):
    return SubmissionGateway(api)


@pytest.fixture
def sessions():
    return SessionStore()


@pytest.fixture
def make_engine(settings, sessions, catalog, resolver, gateway):
    def factory(**overrides):
        kwargs = dict(
            settings=settings,
            sessions=sessions,
            catalog=catalog,
            addresses=resolver,
            gateway=gateway,
            catalog_images=[],
        )
        kwargs.update(overrides)
        return OrderSessionEngine(**kwargs)

    return factory


@pytest.fixture
def engine(make_engine):
    return make_engine()
