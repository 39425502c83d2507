# orderbot/handoff.py
import logging
import re
from typing import List, Optional

from .config import Settings
from .dispatcher import ChatDispatcher
from .models import Outgoing
from .storage import HandoffStore, SessionStore

logger = logging.getLogger(__name__)

HANDOFF_COMMAND = re.compile(r"^!handoff(?:\s+(.+))?$", re.IGNORECASE)
BOT_COMMAND = re.compile(r"^!bot(?:\s+(.+))?$", re.IGNORECASE)
CHAT_ID = re.compile(r"^-?\d+$")

HANDOFF_STARTED = "Você foi transferido para um atendente humano. Por favor, aguarde o atendimento."
HANDOFF_ENDED = "O atendimento foi encerrado. O bot voltou a funcionar."
USAGE = "Uso: <code>!handoff [chat_id]</code> ou <code>!bot [chat_id]</code>"


def normalize_target(raw: Optional[str], default: str) -> Optional[str]:
    """Chat id from a command argument; the current chat when omitted, None when malformed."""
    if raw is None or not raw.strip():
        return default
    target = re.sub(r"\s+", "", raw)
    if not CHAT_ID.match(target):
        return None
    return target


class HandoffCoordinator:
    """
    Owns the handoff set. When a dispatcher is given, the target chat's queued
    and in-flight work is dropped before the set changes or the session resets.
    """

    def __init__(
            self,
            settings: Settings,
            handoffs: HandoffStore,
            sessions: SessionStore,
            dispatcher: Optional[ChatDispatcher] = None,
    ):
        self.settings = settings
        self.handoffs = handoffs
        self.sessions = sessions
        self.dispatcher = dispatcher

    def is_handed_off(self, chat_id: str) -> bool:
        return chat_id in self.handoffs

    def is_operator(self, chat_id: str, sender_id: Optional[int]) -> bool:
        command_group = self.settings.command_group_id
        if command_group is not None and str(command_group) == str(chat_id):
            return True
        return sender_id is not None and sender_id in self.settings.operator_ids

    async def _drain(self, chat_id: str) -> None:
        if self.dispatcher is not None:
            await self.dispatcher.drain(chat_id)

    async def start_handoff(self, chat_id: str, out: Optional[List[Outgoing]] = None) -> bool:
        added = self.handoffs.add(chat_id)
        await self._drain(chat_id)
        if added:
            logger.info("Handoff started chat=%s", chat_id)
            if out is not None:
                out.append(Outgoing(chat_id, HANDOFF_STARTED))
        return added

    async def end_handoff(self, chat_id: str, out: Optional[List[Outgoing]] = None) -> bool:
        await self._drain(chat_id)
        self.sessions.reset(chat_id)
        removed = self.handoffs.remove(chat_id)
        if removed:
            logger.info("Handoff ended chat=%s", chat_id)
            if out is not None:
                out.append(Outgoing(chat_id, HANDOFF_ENDED))
        return removed

    async def handle_command(self, chat_id: str, sender_id: Optional[int], text: str) -> Optional[List[Outgoing]]:
        """
        Operator commands. Returns the replies to deliver, or None when the text
        is not a command at all. Command syntax from a non-operator yields an
        empty list: the message is dropped.
        """
        text = (text or "").strip()
        m_handoff = HANDOFF_COMMAND.match(text)
        m_bot = None if m_handoff else BOT_COMMAND.match(text)
        if not (m_handoff or m_bot):
            return None

        if not self.is_operator(chat_id, sender_id):
            logger.debug("Ignoring command from non-operator chat=%s sender=%s", chat_id, sender_id)
            return []

        out: List[Outgoing] = []
        m = m_handoff or m_bot
        target = normalize_target(m.group(1), chat_id)
        if target is None:
            out.append(Outgoing(chat_id, USAGE))
            return out

        if m_handoff:
            if await self.start_handoff(target, out):
                if target != chat_id:
                    out.append(Outgoing(chat_id, f"✅ Chat {target} em atendimento humano."))
            else:
                out.append(Outgoing(chat_id, f"Chat {target} já está em handoff."))
            return out

        if await self.end_handoff(target, out):
            if target != chat_id:
                out.append(Outgoing(chat_id, f"✅ Chat {target} devolvido ao bot."))
        else:
            out.append(Outgoing(chat_id, f"Chat {target} não está em handoff."))
        return out
