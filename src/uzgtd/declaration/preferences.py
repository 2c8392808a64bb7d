"""Tariff preference groups for countries of origin.

Goods originating in a Eurasian Economic Union member state pay no import
duty; goods from the remaining CIS free-trade partners pay a reduced share of
the MFN duty; everything else is charged the MFN rate.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping

from uzgtd.declaration.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_EAEU_MEMBERS: tuple[str, ...] = ("AM", "BY", "KG", "KZ", "RU")
DEFAULT_CIS_PARTNERS: tuple[str, ...] = ("AM", "BY", "KG", "KZ", "RU", "TJ")


class PreferenceGroup(str, Enum):
    EAEU = "EAEU"
    CIS = "CIS"
    MFN = "MFN"


def _normalize_country(code: str) -> str:
    return code.strip().upper()


@dataclass(frozen=True)
class PreferenceTable:
    """Static membership tables; EAEU membership takes priority over CIS."""

    eaeu_members: frozenset[str] = frozenset(DEFAULT_EAEU_MEMBERS)
    cis_partners: frozenset[str] = frozenset(DEFAULT_CIS_PARTNERS)

    @classmethod
    def from_codes(cls, eaeu: Iterable[str], cis: Iterable[str]) -> "PreferenceTable":
        return cls(
            eaeu_members=frozenset(_normalize_country(c) for c in eaeu if str(c).strip()),
            cis_partners=frozenset(_normalize_country(c) for c in cis if str(c).strip()),
        )

    def group_for(self, country_code: str | None) -> PreferenceGroup:
        if not country_code:
            return PreferenceGroup.MFN
        code = _normalize_country(country_code)
        if code in self.eaeu_members:
            return PreferenceGroup.EAEU
        if code in self.cis_partners:
            return PreferenceGroup.CIS
        return PreferenceGroup.MFN


def preference_table_from_payload(payload: Mapping[str, Any]) -> PreferenceTable:
    eaeu = payload.get("eaeu_members", DEFAULT_EAEU_MEMBERS)
    cis = payload.get("cis_partners", DEFAULT_CIS_PARTNERS)
    if not isinstance(eaeu, list | tuple) or not isinstance(cis, list | tuple):
        raise ConfigurationError("Preference tables must be lists of ISO country codes")
    return PreferenceTable.from_codes((str(c) for c in eaeu), (str(c) for c in cis))


def load_preference_table(path: Path) -> PreferenceTable:
    """Read a preference table from JSON; a missing file yields the built-in tables."""

    if not path.exists():
        logger.info("Preference table %s not found; using built-in membership", path)
        return PreferenceTable()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigurationError(f"Cannot read preference table {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Preference table {path} must be a JSON object")
    return preference_table_from_payload(payload)
