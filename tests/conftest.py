"""Pytest configuration and fixtures."""

import pytest

from data import Entity, normalize


RAW_ROSTER = [
    {"id": "s1", "name": "Ava", "year": "Year 7", "instruments": "guitar, drums",
     "genres": ["rock", "indie"], "artists": "radiohead", "roles": "lead", "geek": "chess", "collab": "yes"},
    {"id": "s2", "name": "Ben", "year": "7B", "instruments": ["Guitar"], "genres": "rock",
     "artists": "Radiohead, Blur", "roles": "rhythm", "collab": "maybe"},
    {"id": "s3", "name": "Cleo", "year": "Year 8", "instruments": "drums, bass",
     "genres": "jazz", "artists": "miles davis", "roles": "lead"},
    {"id": "s4", "name": "Dev", "year": 8, "instruments": "piano", "genres": "indie, rock",
     "artists": "radiohead", "geek": "chess, anime"},
    {"id": "s5", "name": "Eli", "year": "Year 9", "instruments": "guitar, piano", "genres": "metal"},
    {"name": "Fin", "instruments": "violin"},
]


@pytest.fixture
def raw_roster() -> list:
    return [dict(r) for r in RAW_ROSTER]


@pytest.fixture
def roster(raw_roster) -> list:
    return normalize(raw_roster)


def make_entity(entity_id: str, name: str = None, **tags) -> Entity:
    """Build an Entity directly; tag values are tuples of lowercase strings."""
    return Entity(
        id=entity_id,
        name=name or entity_id,
        year=tags.pop("year", None),
        collab=tags.pop("collab", ""),
        **{k: tuple(v) for k, v in tags.items()},
    )
