"""
Tests for backend records and the submission gateway.
"""
import asyncio

from orderbot.address import AddressInfo
from orderbot.api_client import ApiError
from orderbot.catalog import CatalogEntry
from orderbot.models import OrderDraft
from orderbot.submission import (
    IntakeChannel,
    OrderPayload,
    OrderRecord,
    PayloadLine,
    build_records,
    payload_from_draft,
)


def make_payload(channel=IntakeChannel.INTERACTIVE, lines=None, **kwargs):
    data = dict(
        channel=channel,
        customer_name="Mercado Bom Preço",
        lines=lines if lines is not None else [
            PayloadLine(product="MILHO ENSACADO 25KG", quantity=2, price=47.0),
            PayloadLine(product="FARELO DE SOJA 50KG", quantity=1),
        ],
        phone="5511999998888",
        postal_code="01001000",
        number="100",
        complement="",
        street="Praça da Sé",
        district="Sé",
        city="São Paulo",
        payment_method="Boleto",
    )
    data.update(kwargs)
    return OrderPayload(**data)


class TestIntakeChannel:
    def test_interactive_has_no_tags(self):
        assert IntakeChannel.INTERACTIVE.origin is None
        assert IntakeChannel.INTERACTIVE.status_label is None

    def test_imported_tags(self):
        assert IntakeChannel.RESELLER.origin == "vendedor"
        assert IntakeChannel.RESELLER.status_label == "Em analise"
        assert IntakeChannel.CUSTOMER.origin == "usuario"
        assert IntakeChannel.CUSTOMER.status_label == "Em orçamento"


class TestBuildRecords:
    """One record per line, sharing the order-level fields."""

    def test_one_record_per_line(self):
        records = build_records(make_payload())
        assert len(records) == 2
        assert [r.produto for r in records] == ["MILHO ENSACADO 25KG", "FARELO DE SOJA 50KG"]
        for r in records:
            assert r.nome == "Mercado Bom Preço"
            assert r.cep == "01001000"
            assert r.cidade == "São Paulo"
            assert r.metodo_pagamento == "Boleto"

    def test_missing_price_is_zero(self):
        records = build_records(make_payload())
        assert records[0].preco == 47.0
        assert records[1].preco == 0

    def test_blank_fields_become_none(self):
        record = build_records(make_payload())[0]
        assert record.complemento is None

    def test_malformed_postal_code_dropped(self):
        record = build_records(make_payload(postal_code="0100"))[0]
        assert record.cep is None

    def test_reseller_payload_has_tags(self):
        payload = build_records(make_payload(IntakeChannel.RESELLER))[0].to_payload()
        assert payload["origem"] == "vendedor"
        assert payload["Status_pedprod"] == "Em analise"

    def test_interactive_payload_has_no_tags(self):
        payload = build_records(make_payload())[0].to_payload()
        assert "origem" not in payload
        assert "Status_pedprod" not in payload

    def test_alias_accepted_on_input(self):
        record = OrderRecord(produto="X", Status_pedprod="Em analise")
        assert record.status_pedprod == "Em analise"

    def test_no_lines(self):
        assert build_records(make_payload(lines=[])) == []


class TestPayloadFromDraft:
    def test_uses_resolved_address(self):
        draft = OrderDraft(customer_name="  ", delivery_number="10", payment_method="Pix")
        draft.add_item(CatalogEntry(name="Milho", code="M1", price=5.0), 2)
        draft.last_postal_lookup = AddressInfo(cep="01001-000", logradouro="Praça da Sé", bairro="Sé",
                                               localidade="São Paulo", uf="SP")

        payload = payload_from_draft(draft, fallback_name="5511")
        assert payload.customer_name == "5511"
        assert payload.postal_code == "01001000"
        assert payload.street == "Praça da Sé"
        assert payload.phone is None
        assert payload.lines == [PayloadLine(product="Milho", quantity=2, price=5.0)]


class TestGateway:
    """Customer upsert and order posting."""

    def test_submit_posts_one_array(self, gateway, api):
        result = asyncio.run(gateway.submit(make_payload()))

        assert result.ok is True
        assert result.count == 2
        assert len(api.orders) == 1
        assert len(api.orders[0]) == 2
        assert api.customers[0]["nome"] == "Mercado Bom Preço"
        assert api.customers[0]["cep"] == "01001000"

    def test_customer_failure_does_not_block(self, gateway, api):
        api.fail_customers = ApiError(500, "erro", "/cadastro")
        result = asyncio.run(gateway.submit(make_payload()))
        assert result.ok is True
        assert len(api.orders) == 1

    def test_order_failure(self, gateway, api):
        api.fail_orders = ApiError(400, '{"detail": "cep inválido"}', "http://api/pedido")
        result = asyncio.run(gateway.submit(make_payload()))

        assert result.ok is False
        assert "400" in result.error
        assert "cep inválido" in result.error

    def test_nothing_to_submit(self, gateway, api):
        result = asyncio.run(gateway.submit(make_payload(lines=[])))
        assert result.ok is False
        assert api.orders == []
        assert api.customers == []
