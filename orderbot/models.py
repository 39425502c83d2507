# orderbot/models.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .address import AddressInfo
from .catalog import CatalogEntry
from .flow.stages import Stage
from .utils.text import normalize_string

DEFAULT_DELIVERY_METHOD = "Fretado"


@dataclass
class OrderLine:
    name: str
    quantity: int
    catalog_key: Optional[str] = None
    price: Optional[float] = None


@dataclass
class OrderDraft:
    customer_name: str = ""
    items: List[OrderLine] = field(default_factory=list)
    address: str = ""
    delivery_number: str = ""
    complement: str = ""
    payment_method: str = ""
    delivery_method: str = ""
    last_postal_lookup: Optional[AddressInfo] = None
    question: str = ""

    def add_item(self, entry: CatalogEntry, quantity: int) -> OrderLine:
        """
        Merge rule: same catalog key (or, without one, same normalized name)
        sums the quantity into the existing line.
        """
        key = entry.key or None
        name_norm = normalize_string(entry.name)

        existing = None
        if key:
            existing = next((it for it in self.items if it.catalog_key == key), None)
        if existing is None:
            existing = next(
                (it for it in self.items if normalize_string(it.name) == name_norm),
                None,
            )

        if existing is not None:
            existing.quantity += quantity
            if not existing.catalog_key and key:
                existing.catalog_key = key
            if existing.price is None and entry.price is not None:
                existing.price = entry.price
            return existing

        line = OrderLine(name=entry.name, quantity=quantity, catalog_key=key, price=entry.price)
        self.items.append(line)
        return line

    @property
    def total_quantity(self) -> int:
        return sum(it.quantity for it in self.items)

    def items_text(self) -> str:
        return "\n".join(f"{i}. {it.quantity} x {it.name}" for i, it in enumerate(self.items, start=1))

    def missing_fields(self) -> List[str]:
        missing = []
        if not self.customer_name.strip():
            missing.append("nome")
        if not self.items:
            missing.append("itens")
        if not self.address.strip():
            missing.append("endereço")
        if not self.delivery_number.strip():
            missing.append("número")
        if not self.payment_method.strip():
            missing.append("pagamento")
        return missing

    def is_submittable(self) -> bool:
        return not self.missing_fields()


@dataclass
class CurrentItem:
    text: str
    entry: Optional[CatalogEntry] = None
    suggested_quantity: Optional[int] = None
    candidates: List[CatalogEntry] = field(default_factory=list)


@dataclass
class Session:
    chat_id: str
    stage: Stage = Stage.INIT
    draft: OrderDraft = field(default_factory=OrderDraft)
    current_item: Optional[CurrentItem] = None
    pending_address: Optional[AddressInfo] = None
    return_to_review: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def reset(self) -> None:
        self.stage = Stage.INIT
        self.draft = OrderDraft()
        self.current_item = None
        self.pending_address = None
        self.return_to_review = False


@dataclass
class Outgoing:
    """A message to deliver: text to a chat, or an image with optional caption."""
    chat_id: str
    text: str = ""
    image: Optional[str] = None
