# orderbot/imported.py
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from .address import AddressResolver
from .catalog import UniqueMatch
from .config import Settings
from .flow import texts
from .models import Outgoing
from .submission import (
    IntakeChannel,
    OrderPayload,
    PayloadLine,
    SubmissionGateway,
    address_payload_fields,
)
from .utils.text import (
    QUANTITY_X_REGEX,
    extract_price,
    normalize_string,
    only_digits,
    strip_accents,
)

logger = logging.getLogger(__name__)

MARKERS = {
    "novo orcamento, vendedor": IntakeChannel.RESELLER,
    "novo orcamento, usuario": IntakeChannel.CUSTOMER,
}

ITEMS_HEADER = re.compile(r"^Itens?\s*:?$", re.IGNORECASE)
SECTION_END = re.compile(r"^(Total:|---|Endere[cç]o:|Entrega:|Pagamento:)", re.IGNORECASE)
NUMBERED_LINE = re.compile(r"^\d+[.)]")
NUMBERING_PREFIX = re.compile(r"^\d+[.)]\s*")
PARENTHESES = re.compile(r"\(.*?\)")
POSTAL_CODE = re.compile(r"CEP[:\s]*(\d{5}-?\d{3})", re.IGNORECASE)
STREET_NUMBER = re.compile(
    r"(?<!\w)(?:N[º°]\s*[:.]?\s*|No\.?\s*[:.]?\s+)([^,\n]+)",
    re.IGNORECASE,
)
COMPLEMENT = re.compile(r"Compl\.?\s*[:.]?\s*([^,\n]+)", re.IGNORECASE)


@dataclass
class ImportedItem:
    name: str
    quantity: int = 1
    price: Optional[float] = None


@dataclass
class ImportedOrder:
    channel: IntakeChannel
    sender: str = ""
    customer_name: str = ""
    items: List[ImportedItem] = field(default_factory=list)
    address_raw: str = ""
    postal_code: str = ""
    number: str = ""
    complement: str = ""
    delivery: str = ""
    payment: str = ""


def detect_channel(text: str) -> Optional[IntakeChannel]:
    head = strip_accents((text or "").strip()).lower()
    for marker, channel in MARKERS.items():
        if head.startswith(marker):
            return channel
    return None


def get_line_value(lines: List[str], label: str) -> Optional[str]:
    """First 'Label: value' line, label matched case-insensitively."""
    regex = re.compile(r"^" + label + r"\s*:\s*(.+)$", re.IGNORECASE)
    for line in lines:
        m = regex.match(line)
        if m:
            return m.group(1).strip()
    return None


def _item_lines(lines: List[str]) -> List[str]:
    collected: List[str] = []
    start = next((i for i, line in enumerate(lines) if ITEMS_HEADER.match(line)), None)
    if start is not None:
        for line in lines[start + 1:]:
            if SECTION_END.match(line):
                break
            if line:
                collected.append(line)

    if not collected:
        collected = [line for line in lines if NUMBERED_LINE.match(line)]
    return collected


def parse_item_line(raw_line: str) -> Optional[ImportedItem]:
    """
    '1. 2 x Milho Ensacado 25kg (R$ 47,00)' -> ImportedItem('MILHO ENSACADO 25KG', 2, 47.0)
    """
    text = NUMBERING_PREFIX.sub("", raw_line.strip())
    text = PARENTHESES.sub("", text).strip()
    if not text:
        return None

    quantity = 1
    m = QUANTITY_X_REGEX.match(text)
    if m:
        quantity = int(m.group(1)) or 1
        text = m.group(2).strip()

    name = normalize_string(text)
    if not name:
        return None
    return ImportedItem(name=name, quantity=quantity, price=extract_price(raw_line))


def parse_imported_order(text: str, channel: IntakeChannel, fallback_sender: str = "") -> ImportedOrder:
    raw = (text or "").replace("\r", "")
    lines = [line.strip() for line in raw.split("\n")]

    sender = only_digits(get_line_value(lines, "De") or "") or only_digits(fallback_sender) or fallback_sender
    customer_name = get_line_value(lines, "Nome") or sender or "Desconhecido"

    address_raw = get_line_value(lines, "Endere[cç]o") or ""
    m = POSTAL_CODE.search(address_raw) or POSTAL_CODE.search(raw)
    postal_code = only_digits(m.group(1)) if m else ""
    m = STREET_NUMBER.search(address_raw)
    number = m.group(1).strip() if m else ""
    m = COMPLEMENT.search(address_raw)
    complement = m.group(1).strip() if m else ""

    items = []
    for line in _item_lines(lines):
        item = parse_item_line(line)
        if item is not None:
            items.append(item)

    return ImportedOrder(
        channel=channel,
        sender=sender,
        customer_name=customer_name,
        items=items,
        address_raw=address_raw,
        postal_code=postal_code,
        number=number,
        complement=complement,
        delivery=get_line_value(lines, "Entrega") or "",
        payment=get_line_value(lines, "Pagamento") or "",
    )


class ImportedOrderHandler:
    def __init__(self, settings: Settings, addresses: AddressResolver, gateway: SubmissionGateway, catalog=None):
        self.settings = settings
        self.addresses = addresses
        self.gateway = gateway
        self.catalog = catalog

    def _payload_line(self, item: ImportedItem) -> PayloadLine:
        """Prefer the catalog spelling and price when the product resolves uniquely."""
        if self.catalog is not None:
            match = self.catalog.lookup(item.name)
            if isinstance(match, UniqueMatch):
                price = item.price if item.price is not None else match.entry.price
                return PayloadLine(product=match.entry.name, quantity=item.quantity, price=price)
        return PayloadLine(product=item.name, quantity=item.quantity, price=item.price)

    async def handle(self, chat_id: str, text: str, channel: IntakeChannel) -> List[Outgoing]:
        logger.info("Imported order (%s) received from chat=%s, parsing...", channel.value, chat_id)
        order = parse_imported_order(text, channel, fallback_sender=chat_id)

        if not order.items:
            return [Outgoing(chat_id, texts.imported_no_items(channel))]

        info = None
        if len(order.postal_code) == 8:
            info = await self.addresses.resolve(order.postal_code)

        payload = OrderPayload(
            channel=channel,
            customer_name=order.customer_name,
            lines=[self._payload_line(it) for it in order.items],
            phone=order.sender or None,
            number=order.number,
            complement=order.complement,
            payment_method=order.payment,
            **address_payload_fields(info),
        )
        if not payload.postal_code and len(order.postal_code) == 8:
            payload.postal_code = order.postal_code

        out: List[Outgoing] = []
        orders_group = self.settings.orders_group_id
        if orders_group:
            out.append(Outgoing(str(orders_group), texts.imported_report(order)))

        result = await self.gateway.submit(payload)
        label = texts.imported_label(channel)
        if result.ok:
            if orders_group:
                out.append(Outgoing(str(orders_group), texts.records_saved(result.count, label)))
            out.append(Outgoing(chat_id, texts.imported_saved(result.count)))
        else:
            failures_group = self.settings.failures_group_id
            if failures_group:
                out.append(Outgoing(str(failures_group), texts.records_failed(result.error or "", label)))
            out.append(Outgoing(chat_id, texts.IMPORTED_FAILED))
        return out
