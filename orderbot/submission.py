# orderbot/submission.py
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .address import AddressInfo, submission_fields
from .models import OrderDraft

logger = logging.getLogger(__name__)


class IntakeChannel(Enum):
    """
    Where an order came from. Imported orders carry an explicit origin tag and
    intake status; interactive orders carry neither.
    """
    INTERACTIVE = "interativo"
    RESELLER = "vendedor"
    CUSTOMER = "usuario"

    @property
    def origin(self) -> Optional[str]:
        if self is IntakeChannel.INTERACTIVE:
            return None
        return self.value

    @property
    def status_label(self) -> Optional[str]:
        return {
            IntakeChannel.RESELLER: "Em analise",
            IntakeChannel.CUSTOMER: "Em orçamento",
        }.get(self)


class OrderRecord(BaseModel):
    """One backend row per order line."""
    model_config = ConfigDict(populate_by_name=True)

    cep: Optional[str] = Field(default=None, description="CEP, 8 dígitos")
    numero: Optional[str] = None
    complemento: Optional[str] = None
    bairro: Optional[str] = None
    logradouro: Optional[str] = None
    cidade: Optional[str] = None
    nome: Optional[str] = None
    telefone: Optional[str] = None
    produto: str
    metodo_pagamento: Optional[str] = None
    preco: float = 0
    quantidade: int = 1
    origem: Optional[str] = None
    status_pedprod: Optional[str] = Field(default=None, alias="Status_pedprod")

    def to_payload(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True)
        for tag in ("origem", "Status_pedprod"):
            if data.get(tag) is None:
                data.pop(tag, None)
        return data


class CustomerRecord(BaseModel):
    nome: str
    telefone: Optional[str] = None
    cep: Optional[str] = None
    numero: Optional[str] = None
    complemento: Optional[str] = None
    email: Optional[str] = None
    senha: Optional[str] = None


@dataclass
class PayloadLine:
    product: str
    quantity: int = 1
    price: Optional[float] = None


@dataclass
class OrderPayload:
    channel: IntakeChannel
    customer_name: str
    lines: List[PayloadLine] = field(default_factory=list)
    phone: Optional[str] = None
    postal_code: Optional[str] = None
    number: Optional[str] = None
    complement: Optional[str] = None
    street: Optional[str] = None
    district: Optional[str] = None
    city: Optional[str] = None
    payment_method: Optional[str] = None


@dataclass
class SubmissionResult:
    ok: bool
    count: int = 0
    error: Optional[str] = None
    response: Any = None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def address_payload_fields(info: Optional[AddressInfo]) -> Dict[str, Optional[str]]:
    fields = submission_fields(info)
    return {
        "postal_code": fields["cep"],
        "street": fields["logradouro"],
        "district": fields["bairro"],
        "city": fields["cidade"],
    }


def payload_from_draft(draft: OrderDraft, fallback_name: str) -> OrderPayload:
    return OrderPayload(
        channel=IntakeChannel.INTERACTIVE,
        customer_name=draft.customer_name.strip() or fallback_name,
        lines=[PayloadLine(product=it.name, quantity=it.quantity, price=it.price) for it in draft.items],
        number=draft.delivery_number,
        complement=draft.complement,
        payment_method=draft.payment_method,
        **address_payload_fields(draft.last_postal_lookup),
    )


def build_records(payload: OrderPayload) -> List[OrderRecord]:
    postal = _clean(payload.postal_code)
    if postal and len(postal) != 8:
        postal = None

    records = []
    for line in payload.lines:
        records.append(
            OrderRecord(
                cep=postal,
                numero=_clean(payload.number),
                complemento=_clean(payload.complement),
                bairro=_clean(payload.district),
                logradouro=_clean(payload.street),
                cidade=_clean(payload.city),
                nome=_clean(payload.customer_name),
                telefone=_clean(payload.phone),
                produto=line.product,
                metodo_pagamento=_clean(payload.payment_method),
                preco=float(line.price) if line.price is not None else 0,
                quantidade=int(line.quantity or 1),
                origem=payload.channel.origin,
                status_pedprod=payload.channel.status_label,
            )
        )
    return records


class SubmissionGateway:
    def __init__(self, api):
        self.api = api

    async def ensure_customer(self, payload: OrderPayload) -> bool:
        """
        Create-if-absent call before the order rows. Advisory only: a failure
        is logged and the order is still sent.
        """
        postal = _clean(payload.postal_code)
        record = CustomerRecord(
            nome=_clean(payload.customer_name) or _clean(payload.phone) or "Sem Nome",
            telefone=_clean(payload.phone),
            cep=postal if postal and len(postal) == 8 else None,
            numero=_clean(payload.number),
            complemento=_clean(payload.complement),
        )
        try:
            await self.api.upsert_customer(record.model_dump())
            return True
        except Exception as e:
            logger.warning("ensure_customer failed (non-fatal): %s", e)
            return False

    async def submit(self, payload: OrderPayload) -> SubmissionResult:
        records = build_records(payload)
        if not records:
            logger.info("Nothing to submit for %s (no items)", payload.customer_name)
            return SubmissionResult(ok=False, error="Nenhum item válido para registrar.")

        await self.ensure_customer(payload)

        body = [r.to_payload() for r in records]
        for idx, r in enumerate(body):
            logger.info(
                "Pedido[%s] produto=%r quantidade=%s preco=%s cep=%s canal=%s",
                idx, r["produto"], r["quantidade"], r["preco"], r["cep"], payload.channel.value,
            )

        try:
            response = await self.api.create_orders(body)
        except Exception as e:
            logger.error("Order submission failed (%s records): %s", len(body), e)
            return SubmissionResult(ok=False, count=len(body), error=str(e))

        logger.info("Order submission OK: %s record(s)", len(body))
        return SubmissionResult(ok=True, count=len(body), response=response)
