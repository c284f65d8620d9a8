"""Procedure code catalog (CDT code -> description -> default fee)."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from rapidfuzz import fuzz, process, utils

from dental_ledger.config import AppSettings, get_settings

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Procedure:
    """One catalog entry."""

    code: str
    description: str
    default_fee: Optional[Decimal] = None


class ProcedureCatalog:
    """Read-only lookup over the procedure catalog."""

    def __init__(self, procedures: Iterable[Procedure]) -> None:
        self._procedures: Dict[str, Procedure] = {}
        for procedure in procedures:
            self._procedures.setdefault(procedure.code.upper(), procedure)

    def __len__(self) -> int:
        return len(self._procedures)

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and code.upper() in self._procedures

    def list_procedures(self) -> List[Procedure]:
        return list(self._procedures.values())

    def get(self, code: str) -> Optional[Procedure]:
        return self._procedures.get((code or "").strip().upper())

    def lookup_default_fee(self, code: str) -> Optional[Decimal]:
        procedure = self.get(code)
        return procedure.default_fee if procedure else None

    def lookup_description(self, code: str) -> Optional[str]:
        procedure = self.get(code)
        return procedure.description if procedure else None

    def search(self, query: str, *, limit: int = 10, score_cutoff: float = 60) -> List[Procedure]:
        """Return procedures whose code or description resembles ``query``.

        An exact code match always ranks first.
        """
        query = (query or "").strip()
        if not query:
            return []
        exact = self.get(query)
        choices = {
            code: f"{code} {procedure.description}" for code, procedure in self._procedures.items()
        }
        matches = process.extract(
            query,
            choices,
            scorer=fuzz.WRatio,
            processor=utils.default_process,
            limit=limit,
            score_cutoff=score_cutoff,
        )
        results: List[Procedure] = [exact] if exact else []
        for _choice, _score, code in matches:
            procedure = self._procedures[code]
            if procedure is not exact:
                results.append(procedure)
        return results[:limit]


def load_catalog(path: Path) -> ProcedureCatalog:
    """Load a catalog from a JSON file mapping codes to description/fee."""

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        LOGGER.warning("Procedure catalog missing at %s", path)
        return ProcedureCatalog([])
    except json.JSONDecodeError as exc:
        LOGGER.warning("Failed to decode procedure catalog %s: %s", path, exc)
        return ProcedureCatalog([])

    procedures: List[Procedure] = []
    for code, value in raw.items():
        if isinstance(value, dict):
            description = value.get("description") or ""
            fee = value.get("default_fee")
        else:
            description = str(value)
            fee = None
        procedures.append(
            Procedure(
                code=code.upper(),
                description=description,
                default_fee=Decimal(str(fee)).quantize(Decimal("0.01")) if fee is not None else None,
            )
        )
    LOGGER.debug("Loaded %d procedures from %s", len(procedures), path)
    return ProcedureCatalog(procedures)


_catalog: ProcedureCatalog | None = None


def get_catalog(settings: AppSettings | None = None) -> ProcedureCatalog:
    """Return a cached catalog loaded from the configured path."""

    global _catalog
    if _catalog is None:
        settings = settings or get_settings()
        _catalog = load_catalog(settings.catalog_path)
    return _catalog


__all__ = ["Procedure", "ProcedureCatalog", "load_catalog", "get_catalog"]
