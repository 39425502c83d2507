# orderbot/flow/engine.py
import asyncio
import copy
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from . import texts
from .stages import Stage
from ..address import AddressResolver, clean_postal_code, format_display
from ..catalog import AmbiguousMatches, CatalogHolder, NoMatch, UniqueMatch
from ..config import Settings
from ..imported import ImportedOrderHandler, detect_channel
from ..models import DEFAULT_DELIVERY_METHOD, CurrentItem, OrderDraft, Outgoing, Session
from ..storage import SessionStore
from ..submission import SubmissionGateway, payload_from_draft
from ..utils.text import parse_positive_int, parse_quantity_and_item, strip_accents

logger = logging.getLogger(__name__)

MENU_COMMANDS = {"menu"}
CANCEL_COMMANDS = {"cancelar", "cancel"}
RESET_COMMANDS = MENU_COMMANDS | CANCEL_COMMANDS
NO_COMPLEMENT = {"sem", "nao", "nenhum", "-"}
START_ORDER_HINT = re.compile(r"pedido|comprar|quero|orcamento")
IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp"}

StageHandler = Callable[[Session, str, List[Outgoing]], Awaitable[None]]


def is_reset_command(text: str) -> bool:
    return (text or "").strip().lower() in RESET_COMMANDS


def find_catalog_images(directory: str) -> List[str]:
    d = Path(directory)
    if not d.is_dir():
        logger.warning("Catalog images dir %s not found", directory)
        return []
    return sorted(str(p) for p in d.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)


class OrderSessionEngine:
    """
    Per-chat conversation state machine. `handle` applies one inbound text to
    the chat's session and returns the messages to deliver; callers must not
    run two `handle` calls for the same chat at the same time.
    """

    def __init__(
            self,
            settings: Settings,
            sessions: SessionStore,
            catalog: CatalogHolder,
            addresses: AddressResolver,
            gateway: SubmissionGateway,
            catalog_images: Optional[List[str]] = None,
            clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.sessions = sessions
        self.catalog = catalog
        self.addresses = addresses
        self.gateway = gateway
        self.catalog_images = list(catalog_images or [])
        self.clock = clock
        self.imported = ImportedOrderHandler(settings, addresses, gateway, catalog=catalog)

        self._handlers: Dict[Stage, StageHandler] = {
            Stage.INIT: self._on_init,
            Stage.MAIN_MENU: self._on_main_menu,
            Stage.FAQ: self._on_faq,
            Stage.WRITE_QUESTION: self._on_write_question,
            Stage.CLOSING: self._on_closing,
            Stage.COLLECT_NAME: self._on_collect_name,
            Stage.COLLECT_ITEM: self._on_collect_item,
            Stage.CHOOSE_ITEM: self._on_choose_item,
            Stage.CONFIRM_ITEM: self._on_confirm_item,
            Stage.COLLECT_QUANTITY: self._on_collect_quantity,
            Stage.MORE_ITEMS: self._on_more_items,
            Stage.COLLECT_POSTAL_CODE: self._on_collect_postal_code,
            Stage.CONFIRM_ADDRESS: self._on_confirm_address,
            Stage.COLLECT_NUMBER: self._on_collect_number,
            Stage.COLLECT_COMPLEMENT: self._on_collect_complement,
            Stage.COLLECT_PAYMENT: self._on_collect_payment,
            Stage.REVIEW_SUMMARY: self._on_review_summary,
            Stage.DONE: self._on_done,
        }

    @property
    def handlers(self) -> Dict[Stage, StageHandler]:
        return self._handlers

    # =========================
    # Entry point
    # =========================

    async def handle(self, chat_id: str, text: str) -> List[Outgoing]:
        session = self.sessions.get_or_create(chat_id)
        snapshot = copy.deepcopy(session)
        text = (text or "").strip()
        out: List[Outgoing] = []

        try:
            await self._dispatch(session, text, out)
        except asyncio.CancelledError:
            self.sessions.store.set(chat_id, snapshot)
            raise
        except Exception:
            logger.exception("Error handling message chat=%s stage=%s", chat_id, snapshot.stage.value)
            self.sessions.store.set(chat_id, snapshot)
            return []

        self.sessions.save(session)
        return out

    async def _dispatch(self, session: Session, text: str, out: List[Outgoing]) -> None:
        low = text.lower()

        if low in RESET_COMMANDS:
            logger.info("Reset command %r chat=%s stage=%s", low, session.chat_id, session.stage.value)
            session.reset()
            self._say(session, out, texts.BACK_TO_MENU)
            await self._on_init(session, text, out)
            return

        channel = detect_channel(text)
        if channel is not None:
            out.extend(await self.imported.handle(session.chat_id, text, channel))
            return

        handler = self._handlers[session.stage]
        logger.debug("chat=%s stage=%s text=%r", session.chat_id, session.stage.value, text)
        await handler(session, text, out)

    # =========================
    # Helpers
    # =========================

    def _say(self, session: Session, out: List[Outgoing], text: str) -> None:
        out.append(Outgoing(session.chat_id, text))

    def _notify(self, out: List[Outgoing], group_id: Optional[int], text: str) -> None:
        if group_id:
            out.append(Outgoing(str(group_id), text))

    def is_open(self) -> bool:
        start = self.settings.business_hours_start
        end = self.settings.business_hours_end
        try:
            now = self.clock() if self.clock else datetime.now(ZoneInfo(self.settings.business_timezone))
        except ZoneInfoNotFoundError:
            logger.warning("Unknown timezone %s, assuming open", self.settings.business_timezone)
            return True
        return start <= now.hour < end

    def _send_main_menu(self, session: Session, out: List[Outgoing]) -> None:
        self._say(session, out, texts.main_menu())
        session.stage = Stage.MAIN_MENU

    def _send_summary(self, session: Session, out: List[Outgoing]) -> None:
        session.return_to_review = False
        self._say(session, out, texts.order_summary(session.draft))
        session.stage = Stage.REVIEW_SUMMARY

    # =========================
    # Menu / dúvidas
    # =========================

    async def _on_init(self, session: Session, text: str, out: List[Outgoing]) -> None:
        if not self.is_open():
            self._say(session, out, texts.closed_notice(
                self.settings.business_hours_start, self.settings.business_hours_end,
            ))
            session.stage = Stage.INIT
            return
        self._send_main_menu(session, out)

    async def _on_main_menu(self, session: Session, text: str, out: List[Outgoing]) -> None:
        low = strip_accents(text.lower())

        if low == "1" or "catalog" in low:
            self._say(session, out, texts.SENDING_CATALOG)
            if not self.catalog_images:
                self._say(session, out, texts.CATALOG_EMPTY)
                return
            for path in self.catalog_images:
                out.append(Outgoing(session.chat_id, image=path))
            self._say(session, out, texts.CATALOG_SENT)
            return

        if low == "2" or START_ORDER_HINT.search(low):
            session.draft = OrderDraft()
            session.current_item = None
            session.pending_address = None
            session.return_to_review = False
            self._say(session, out, texts.ASK_NAME)
            session.stage = Stage.COLLECT_NAME
            return

        if low == "3":
            self._say(session, out, texts.FAQ_MENU)
            session.stage = Stage.FAQ
            return

        if low == "4":
            self._say(session, out, texts.site_link(self.settings.site_url))
            session.stage = Stage.CLOSING
            return

        self._say(session, out, texts.MENU_NOT_UNDERSTOOD)

    async def _on_faq(self, session: Session, text: str, out: List[Outgoing]) -> None:
        if text == "1":
            self._say(session, out, texts.faq_answer(
                self.settings.business_hours_start, self.settings.business_hours_end,
            ))
            session.stage = Stage.CLOSING
        elif text == "2":
            self._say(session, out, texts.WRITE_QUESTION)
            session.stage = Stage.WRITE_QUESTION
        elif text == "0":
            self._send_main_menu(session, out)
        else:
            self._say(session, out, texts.FAQ_OPTIONS)

    async def _on_write_question(self, session: Session, text: str, out: List[Outgoing]) -> None:
        if not text:
            self._say(session, out, texts.WRITE_QUESTION)
            return
        session.draft.question = text
        self._say(session, out, texts.QUESTION_RECEIVED)
        self._notify(out, self.settings.questions_group_id, texts.question_for_group(session.chat_id, text))
        session.stage = Stage.DONE

    async def _on_closing(self, session: Session, text: str, out: List[Outgoing]) -> None:
        if text.lower() in ("0", "voltar"):
            session.reset()
            self._send_main_menu(session, out)
            return
        self._say(session, out, texts.CLOSING_HINT)

    async def _on_done(self, session: Session, text: str, out: List[Outgoing]) -> None:
        session.reset()
        await self._on_init(session, text, out)

    # =========================
    # Nome / itens
    # =========================

    async def _on_collect_name(self, session: Session, text: str, out: List[Outgoing]) -> None:
        if not text:
            self._say(session, out, texts.ASK_NAME_AGAIN)
            return
        session.draft.customer_name = text

        if session.return_to_review:
            self._say(session, out, texts.NAME_UPDATED)
            self._send_summary(session, out)
            return

        self._say(session, out, texts.ASK_ITEM)
        session.stage = Stage.COLLECT_ITEM

    async def _on_collect_item(self, session: Session, text: str, out: List[Outgoing]) -> None:
        qty, item_text = parse_quantity_and_item(text)
        if not item_text:
            self._say(session, out, texts.ASK_ITEM)
            session.stage = Stage.COLLECT_ITEM
            return

        match = self.catalog.lookup(item_text)
        logger.info("Catalog lookup chat=%s text=%r -> %s", session.chat_id, item_text, type(match).__name__)

        if isinstance(match, NoMatch):
            self._say(session, out, texts.ITEM_NOT_FOUND)
            session.stage = Stage.COLLECT_ITEM
            return

        if isinstance(match, UniqueMatch):
            session.current_item = CurrentItem(text=item_text, entry=match.entry, suggested_quantity=qty)
            self._say(session, out, texts.item_found(match.entry))
            session.stage = Stage.CONFIRM_ITEM
            return

        if isinstance(match, AmbiguousMatches):
            session.current_item = CurrentItem(text=item_text, suggested_quantity=qty, candidates=list(match.entries))
            self._say(session, out, texts.choose_item(match.entries))
            session.stage = Stage.CHOOSE_ITEM

    async def _on_choose_item(self, session: Session, text: str, out: List[Outgoing]) -> None:
        current = session.current_item
        if current is None or not current.candidates:
            self._say(session, out, texts.ASK_ITEM_AGAIN)
            session.stage = Stage.COLLECT_ITEM
            return

        if text == "0":
            session.current_item = None
            self._say(session, out, texts.ASK_ITEM_AGAIN)
            session.stage = Stage.COLLECT_ITEM
            return

        if text.isdigit():
            idx = int(text)
            if 1 <= idx <= len(current.candidates):
                current.entry = current.candidates[idx - 1]
                current.candidates = []
                self._say(session, out, texts.ASK_QUANTITY)
                session.stage = Stage.COLLECT_QUANTITY
                return
            self._say(session, out, texts.choose_item_invalid(len(current.candidates)))
            return

        # anything else is a new item name
        await self._on_collect_item(session, text, out)

    async def _on_confirm_item(self, session: Session, text: str, out: List[Outgoing]) -> None:
        if text == "1" and session.current_item and session.current_item.entry:
            self._say(session, out, texts.ASK_QUANTITY)
            session.stage = Stage.COLLECT_QUANTITY
            return

        if text == "2" or (text == "1" and not session.current_item):
            session.current_item = None
            self._say(session, out, texts.ASK_ITEM_AGAIN)
            session.stage = Stage.COLLECT_ITEM
            return

        if text == "3":
            session.reset()
            self._say(session, out, texts.ITEM_CANCELLED)
            self._send_main_menu(session, out)
            return

        self._say(session, out, texts.CONFIRM_ITEM_OPTIONS)

    async def _on_collect_quantity(self, session: Session, text: str, out: List[Outgoing]) -> None:
        current = session.current_item
        if current is None or current.entry is None:
            self._say(session, out, texts.ASK_ITEM_AGAIN)
            session.stage = Stage.COLLECT_ITEM
            return

        qty = parse_positive_int(text) or current.suggested_quantity
        if not qty:
            self._say(session, out, texts.INVALID_QUANTITY)
            return

        line = session.draft.add_item(current.entry, qty)
        session.current_item = None
        logger.info("Item merged chat=%s key=%s qty=%s total=%s", session.chat_id, line.catalog_key, qty, line.quantity)
        self._say(session, out, texts.item_added(line.name, line.quantity))
        session.stage = Stage.MORE_ITEMS

    async def _on_more_items(self, session: Session, text: str, out: List[Outgoing]) -> None:
        draft = session.draft

        if text == "1":
            self._say(session, out, texts.ASK_NEXT_ITEM)
            session.stage = Stage.COLLECT_ITEM
            return

        if text == "3":
            self._say(session, out, texts.items_so_far(draft) if draft.items else texts.NO_ITEMS_YET)
            return

        if text == "2":
            if not draft.items:
                self._say(session, out, texts.NO_ITEMS_TO_FINISH)
                session.stage = Stage.COLLECT_ITEM
                return
            if session.return_to_review:
                self._say(session, out, texts.ITEMS_UPDATED)
                self._send_summary(session, out)
                return
            self._say(session, out, texts.items_registered(draft))
            session.stage = Stage.COLLECT_POSTAL_CODE
            return

        if text and not text.isdigit():
            await self._on_collect_item(session, text, out)
            return

        self._say(session, out, texts.MORE_ITEMS_OPTIONS)

    # =========================
    # Endereço
    # =========================

    async def _lookup_address(self, session: Session, cep: str, out: List[Outgoing]) -> bool:
        info = await self.addresses.resolve(cep)
        if not info:
            logger.info("Postal code %s not found chat=%s", cep, session.chat_id)
            session.pending_address = None
            self._say(session, out, texts.POSTAL_CODE_NOT_FOUND)
            session.stage = Stage.COLLECT_POSTAL_CODE
            return False

        session.pending_address = info
        self._say(session, out, texts.address_found(info))
        session.stage = Stage.CONFIRM_ADDRESS
        return True

    async def _on_collect_postal_code(self, session: Session, text: str, out: List[Outgoing]) -> None:
        cep = clean_postal_code(text)
        if cep is None:
            self._say(session, out, texts.INVALID_POSTAL_CODE)
            return

        self._say(session, out, texts.LOOKING_UP_POSTAL_CODE)
        await self._lookup_address(session, cep, out)

    async def _on_confirm_address(self, session: Session, text: str, out: List[Outgoing]) -> None:
        if text == "1":
            info = session.pending_address
            if info is None:
                self._say(session, out, texts.NO_POSTAL_LOOKUP)
                session.stage = Stage.COLLECT_POSTAL_CODE
                return
            session.draft.last_postal_lookup = info
            session.draft.address = format_display(info)
            session.draft.delivery_number = ""
            session.draft.complement = ""
            session.pending_address = None
            self._say(session, out, texts.ASK_NUMBER)
            session.stage = Stage.COLLECT_NUMBER
            return

        if text == "2":
            session.pending_address = None
            self._say(session, out, texts.ASK_POSTAL_CODE_AGAIN)
            session.stage = Stage.COLLECT_POSTAL_CODE
            return

        cep = clean_postal_code(text)
        if cep is not None:
            await self._lookup_address(session, cep, out)
            return

        self._say(session, out, texts.CONFIRM_ADDRESS_INVALID)

    async def _on_collect_number(self, session: Session, text: str, out: List[Outgoing]) -> None:
        if not text:
            self._say(session, out, texts.ASK_NUMBER_AGAIN)
            return
        session.draft.delivery_number = text
        self._say(session, out, texts.ASK_COMPLEMENT)
        session.stage = Stage.COLLECT_COMPLEMENT

    async def _on_collect_complement(self, session: Session, text: str, out: List[Outgoing]) -> None:
        draft = session.draft
        complement = "" if strip_accents(text.lower()) in NO_COMPLEMENT else text
        draft.complement = complement

        parts = [format_display(draft.last_postal_lookup) or draft.address]
        if draft.delivery_number:
            parts.append(f"Nº {draft.delivery_number}")
        if complement:
            parts.append(f"Compl.: {complement}")
        draft.address = ", ".join(p for p in parts if p)
        draft.delivery_method = DEFAULT_DELIVERY_METHOD

        if session.return_to_review:
            self._say(session, out, texts.ADDRESS_UPDATED)
            self._send_summary(session, out)
            return

        self._say(session, out, texts.ASK_PAYMENT)
        session.stage = Stage.COLLECT_PAYMENT

    async def _on_collect_payment(self, session: Session, text: str, out: List[Outgoing]) -> None:
        if not text:
            self._say(session, out, texts.ASK_PAYMENT_AGAIN)
            return
        session.draft.payment_method = text
        if session.return_to_review:
            self._say(session, out, texts.PAYMENT_UPDATED)
        self._send_summary(session, out)

    # =========================
    # Resumo
    # =========================

    async def _on_review_summary(self, session: Session, text: str, out: List[Outgoing]) -> None:
        low = text.lower()

        if low == "1":
            missing = session.draft.missing_fields()
            if missing:
                self._say(session, out, texts.order_incomplete(missing))
                return
            await self._submit(session, out)
            return

        if low == "2":
            session.return_to_review = True
            self._say(session, out, texts.EDIT_NAME)
            session.stage = Stage.COLLECT_NAME
            return

        if low == "3":
            session.return_to_review = True
            session.current_item = None
            self._say(session, out, texts.EDIT_ITEMS)
            session.stage = Stage.COLLECT_ITEM
            return

        if low == "4":
            session.return_to_review = True
            session.pending_address = None
            self._say(session, out, texts.EDIT_ADDRESS)
            session.stage = Stage.COLLECT_POSTAL_CODE
            return

        if low == "5":
            session.return_to_review = True
            self._say(session, out, texts.EDIT_PAYMENT)
            session.stage = Stage.COLLECT_PAYMENT
            return

        if low == "0":
            session.reset()
            self._say(session, out, texts.ORDER_CANCELLED)
            self._send_main_menu(session, out)
            return

        self._say(session, out, texts.REVIEW_NOT_UNDERSTOOD)

    async def _submit(self, session: Session, out: List[Outgoing]) -> None:
        draft = session.draft
        settings = self.settings

        self._notify(out, settings.orders_group_id, texts.order_report(draft, session.chat_id))

        payload = payload_from_draft(draft, fallback_name=session.chat_id)
        result = await self.gateway.submit(payload)

        if result.ok:
            self._say(session, out, texts.ORDER_CONFIRMED)
            self._notify(out, settings.orders_group_id, texts.records_saved(result.count))
        else:
            self._say(session, out, texts.ORDER_PENDING)
            self._notify(out, settings.failures_group_id, texts.records_failed(result.error or ""))

        session.reset()
        session.stage = Stage.DONE
