"""Data loading and normalization utilities for the band constellation.

Given a student roster (JSON, CSV or Excel) with fields such as:
- id (unique student identifier) OPTIONAL; if absent a sequence id (s-1, s-2, ...) is used
- name (student name) OPTIONAL; falls back to id, then to a placeholder
- year (free text like "Year 7B"; the first 1-2 digit run is kept)
- instruments, genres, artists, roles, geek (multi-valued; a list or a comma separated string)
- collab (free text flag such as yes / maybe)

Normalization never rejects a record: every field has a fallback, so messy real-world
rosters always produce a complete set of Entities.
"""
from __future__ import annotations
import json
import logging
import re
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

TAG_FIELDS = ("instruments", "genres", "artists", "roles", "geek")

# Default configuration describing how to interpret raw fields
DEFAULT_CONFIG = {
    "id_prefix": "s-",            # sequence id fallback, 1-based
    "name_placeholder": "Student {n}",
    "aliases": {                  # alternate spellings seen in rosters
        "instruments": ["instrument"],
        "artists": ["arists"],
        "roles": ["role"],
    },
    "search_limit": 8,
}

_YEAR_RE = re.compile(r"(\d{1,2})")


@dataclass(frozen=True)
class Entity:
    """A normalized student record."""
    id: str
    name: str
    year: Optional[int] = None
    instruments: Tuple[str, ...] = ()
    genres: Tuple[str, ...] = ()
    artists: Tuple[str, ...] = ()
    roles: Tuple[str, ...] = ()
    geek: Tuple[str, ...] = ()
    collab: str = ""

    def tags(self, field: str) -> Tuple[str, ...]:
        return getattr(self, field, ()) or ()


ENTITY_FIELDS = tuple(f.name for f in fields(Entity))


def load_data(path: str) -> List[Dict[str, Any]]:
    """Load a roster file into a list of raw records.

    JSON files may hold a list of records or an object with a "students" list.
    CSV/Excel files are read with pandas; column names are lowercased and stripped."""
    lower = path.lower()
    if lower.endswith(".json"):
        with open(path, encoding="utf-8") as fh:
            payload = json.load(fh)
        if isinstance(payload, dict):
            payload = payload.get("students", [])
        return payload if isinstance(payload, list) else []
    if lower.endswith(".csv"):
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    elif lower.endswith((".xlsx", ".xls")):
        df = pd.read_excel(path, dtype=str)
    else:
        raise ValueError(f"Unsupported dataset format: {path}")
    df.columns = [str(c).strip().lower() for c in df.columns]
    return dataframe_to_records(df)


def dataframe_to_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Convert a DataFrame into raw records, dropping empty / NaN cells."""
    records = []
    for row in df.to_dict(orient="records"):
        records.append({k: v for k, v in row.items() if not _is_missing(v)})
    return records


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def split_tags(value: Any) -> List[str]:
    """Turn a list or comma separated string into trimmed, lowercase, non-empty tags.

    Order is preserved; repeated tags keep their first occurrence only."""
    if _is_missing(value) or value is False:
        return []
    if isinstance(value, (list, tuple, set)):
        items = [str(v) for v in value if not _is_missing(v)]
    else:
        items = str(value).split(",")
    return list(dict.fromkeys(p.strip().lower() for p in items if p.strip()))


def parse_year(value: Any) -> Optional[int]:
    """Extract the first 1-2 digit run ("Year 7B" -> 7); None when there is none."""
    if _is_missing(value):
        return None
    m = _YEAR_RE.search(str(value))
    if not m:
        return None
    year = int(m.group(1))
    return year if year > 0 else None


def _text(value: Any) -> str:
    return "" if _is_missing(value) else str(value).strip()


def _raw_field(record: Dict[str, Any], field: str, aliases: Dict[str, List[str]]) -> Any:
    value = record.get(field)
    if not _is_missing(value):
        return value
    for alt in aliases.get(field, []):
        if not _is_missing(record.get(alt)):
            return record.get(alt)
    return None


def normalize_record(record: Any, index: int, config: Dict[str, Any] = None) -> Entity:
    """Normalize one raw record; index is the 0-based position in the roster."""
    if config is None:
        config = DEFAULT_CONFIG
    if not isinstance(record, dict):
        record = {}
    aliases = config.get("aliases", {})
    n = index + 1
    raw_id = _text(record.get("id"))
    entity_id = raw_id or f"{config.get('id_prefix', 's-')}{n}"
    name = _text(record.get("name")) or raw_id or config.get("name_placeholder", "Student {n}").format(n=n)
    tags = {f: tuple(split_tags(_raw_field(record, f, aliases))) for f in TAG_FIELDS}
    return Entity(
        id=entity_id,
        name=name,
        year=parse_year(record.get("year")),
        collab=_text(record.get("collab")).lower(),
        **tags,
    )


def normalize(raw: Any, config: Dict[str, Any] = None) -> List[Entity]:
    """Normalize a loose roster into Entities, one per record, order preserved.

    Accepts a list of records or a DataFrame; anything else is an empty roster.
    Duplicate ids are made unique with a -2, -3, ... suffix."""
    if config is None:
        config = DEFAULT_CONFIG
    if isinstance(raw, pd.DataFrame):
        raw = dataframe_to_records(raw)
    if not isinstance(raw, (list, tuple)):
        if raw is not None:
            logger.debug("Roster of type %s treated as empty", type(raw).__name__)
        return []

    entities = [normalize_record(rec, i, config) for i, rec in enumerate(raw)]
    seen = {e.id for e in entities}
    used = set()
    out = []
    for e in entities:
        entity_id = e.id
        if entity_id in used:
            k = 2
            while f"{e.id}-{k}" in seen or f"{e.id}-{k}" in used:
                k += 1
            entity_id = f"{e.id}-{k}"
            logger.debug("Duplicate id %r renamed to %r", e.id, entity_id)
            e = Entity(**{**{f: getattr(e, f) for f in ENTITY_FIELDS}, "id": entity_id})
        used.add(entity_id)
        out.append(e)
    return out


def search(entities: List[Entity], query: str, limit: int = None) -> List[Entity]:
    """Case-insensitive substring search on names; an empty query matches nothing."""
    if limit is None:
        limit = DEFAULT_CONFIG["search_limit"]
    q = str(query or "").strip().lower()
    if not q:
        return []
    return [e for e in entities if q in e.name.lower()][:limit]


def find_entity(entities: List[Entity], entity_id: Optional[str]) -> Optional[Entity]:
    if not entity_id:
        return None
    return next((e for e in entities if e.id == entity_id), None)


def entities_to_dataframe(entities: List[Entity]) -> pd.DataFrame:
    """Build the student table; tag lists are joined with ", " for display."""
    data = []
    for e in entities:
        row = {"id": e.id, "name": e.name, "year": e.year}
        for f in TAG_FIELDS:
            row[f] = ", ".join(e.tags(f))
        row["collab"] = e.collab
        data.append(row)
    return pd.DataFrame(data, columns=["id", "name", "year", *TAG_FIELDS, "collab"])


__all__ = [
    "Entity",
    "TAG_FIELDS",
    "DEFAULT_CONFIG",
    "load_data",
    "normalize",
    "normalize_record",
    "split_tags",
    "parse_year",
    "search",
    "find_entity",
    "entities_to_dataframe",
]
