# orderbot/address.py
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from .utils.text import only_digits

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddressInfo:
    cep: str
    logradouro: str = ""
    complemento: str = ""
    bairro: str = ""
    localidade: str = ""
    uf: str = ""

    @property
    def cep_digits(self) -> str:
        return only_digits(self.cep)


def clean_postal_code(raw: str) -> Optional[str]:
    """
    Only digits are kept; anything other than exactly 8 digits is invalid.
    """
    digits = only_digits(raw)
    if len(digits) != 8:
        return None
    return digits


def _lookup_sync(url_template: str, cep: str, timeout: float) -> Optional[Dict[str, Any]]:
    url = url_template.format(cep=cep)
    resp = requests.get(url, timeout=timeout)
    if resp.status_code >= 400:
        logger.info("Postal lookup %s returned HTTP %s", cep, resp.status_code)
        return None
    j = resp.json()
    logger.debug("Postal lookup response: %s", j)
    if not isinstance(j, dict) or j.get("erro"):
        return None
    return j


class AddressResolver:
    def __init__(self, url_template: str, timeout: float = 5.0):
        self.url_template = url_template
        self.timeout = timeout

    async def resolve(self, postal_code: str) -> Optional[AddressInfo]:
        cep = clean_postal_code(postal_code)
        if cep is None:
            return None

        try:
            data = await asyncio.to_thread(_lookup_sync, self.url_template, cep, self.timeout)
        except (requests.RequestException, ValueError) as e:
            # timeout, connection error or invalid JSON: same as "not found"
            logger.warning("Postal lookup failed for %s: %s", cep, e)
            return None

        if not data:
            return None

        return AddressInfo(
            cep=str(data.get("cep") or cep),
            logradouro=data.get("logradouro") or "",
            complemento=data.get("complemento") or "",
            bairro=data.get("bairro") or "",
            localidade=data.get("localidade") or "",
            uf=data.get("uf") or "",
        )


def format_display(info: Optional[AddressInfo]) -> str:
    """'Praça da Sé, Sé, São Paulo - SP, CEP: 01001-000'"""
    if not info:
        return ""
    parts = []
    if info.logradouro:
        parts.append(info.logradouro)
    if info.bairro:
        parts.append(info.bairro)
    city_state = " - ".join(p for p in [info.localidade, info.uf] if p)
    if city_state:
        parts.append(city_state)
    if info.cep:
        parts.append(f"CEP: {info.cep}")
    return ", ".join(parts)


def submission_fields(info: Optional[AddressInfo]) -> Dict[str, Optional[str]]:
    if not info:
        return {"cep": None, "logradouro": None, "bairro": None, "cidade": None}
    cep = info.cep_digits
    return {
        "cep": cep if len(cep) == 8 else None,
        "logradouro": info.logradouro or None,
        "bairro": info.bairro or None,
        "cidade": info.localidade or None,
    }


def format_summary(info: Optional[AddressInfo], number: str = "", complement: str = "") -> str:
    """
    Three-line address used in the order summary:

        Praça da Sé 100
        Sé - Compl.: Apto 1
        São Paulo, SP 01001000
    """
    if not info:
        return ""

    complement = (complement or "").strip() or (info.complemento or "").strip()
    line1 = " ".join(p for p in [info.logradouro, number] if p).strip()
    line2_parts = []
    if info.bairro:
        line2_parts.append(info.bairro)
    if complement:
        line2_parts.append(f"Compl.: {complement}")
    line2 = " - ".join(line2_parts)
    city_uf = ", ".join(p for p in [info.localidade, info.uf] if p)
    line3 = (city_uf + (f" {info.cep_digits}" if info.cep_digits else "")).strip()
    return "\n".join(line for line in [line1, line2, line3] if line)
