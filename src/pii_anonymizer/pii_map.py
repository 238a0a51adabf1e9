"""PIIMap — ordered placeholder → Entity mapping for one anonymization pass.

Design goals:
  - Deterministic: the same (type, value) pair maps to one token per pass
  - Ordered: entries keep the order in which tokens were minted
  - Rehydration-safe: a single substitution pass, so restored values are
    never re-scanned for tokens
"""

from __future__ import annotations
import re
from collections import defaultdict
from collections.abc import Iterator, Mapping

from .types import Entity


# Token format: «TYPE_NNN»; guillemets keep tokens out of normal text
_TOKEN_FMT = "«{type}_{idx:03d}»"
_TOKEN_INDEX_RE = re.compile(r"_(\d+)»$")


class PIIMap(Mapping[str, Entity]):
    """Read-mostly mapping from placeholder token to the entity it hides."""

    __slots__ = ("_entities", "_by_value", "_counters")

    def __init__(self, entities: list[Entity] | None = None) -> None:
        self._entities: dict[str, Entity] = {}                   # «EMAIL_ADDRESS_001» → Entity
        self._by_value: dict[tuple[str, str], str] = {}          # (type, value) → token
        self._counters: dict[str, int] = defaultdict(int)
        for entity in entities or ():
            self._add(entity)

    # ------------------------------------------------------------------
    # Mapping protocol
    # ------------------------------------------------------------------

    def __getitem__(self, token: str) -> Entity:
        return self._entities[token]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def __repr__(self) -> str:
        # Never print original values
        return f"PIIMap(tokens={list(self._entities)!r})"

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def get_or_create_token(
        self,
        entity_type: str,
        original: str,
        span: tuple[int, int],
        attributes: Mapping[str, str] | None = None,
    ) -> str:
        """Return the existing token for this value or mint a new one."""
        key = (entity_type, original)
        if key in self._by_value:
            return self._by_value[key]

        token = _TOKEN_FMT.format(type=entity_type, idx=self._counters[entity_type] + 1)
        self._add(Entity(
            entity_type=entity_type,
            original_value=original,
            placeholder_token=token,
            span=span,
            attributes=dict(attributes or {}),
        ))
        return token

    def _add(self, entity: Entity) -> None:
        self._entities[entity.placeholder_token] = entity
        self._by_value[(entity.entity_type, entity.original_value)] = entity.placeholder_token
        # Decoded maps keep numbering after their highest token
        m = _TOKEN_INDEX_RE.search(entity.placeholder_token)
        index = int(m.group(1)) if m else self._counters[entity.entity_type] + 1
        self._counters[entity.entity_type] = max(self._counters[entity.entity_type], index)

    # ------------------------------------------------------------------
    # Serialization (plaintext, only ever handed to the codec)
    # ------------------------------------------------------------------

    def to_records(self) -> list[dict]:
        records = []
        for e in self._entities.values():
            record = {
                "type": e.entity_type,
                "value": e.original_value,
                "token": e.placeholder_token,
                "span": list(e.span),
            }
            if e.attributes:
                record["attrs"] = dict(e.attributes)
            records.append(record)
        return records

    @classmethod
    def from_records(cls, records: list[dict]) -> "PIIMap":
        return cls([
            Entity(
                entity_type=r["type"],
                original_value=r["value"],
                placeholder_token=r["token"],
                span=(int(r["span"][0]), int(r["span"][1])),
                attributes=dict(r.get("attrs") or {}),
            )
            for r in records
        ])


def rehydrate(text: str, pii_map: Mapping[str, Entity]) -> str:
    """Replace every known placeholder in text with its original value.

    Tokens missing from the map are left as-is, so partially edited
    anonymized text still restores whatever it can.
    """
    if not pii_map or not text:
        return text
    # Longest first so overlapping custom tokens resolve to the full match
    alternation = "|".join(re.escape(t) for t in sorted(pii_map, key=len, reverse=True))
    return re.sub(alternation, lambda m: pii_map[m.group()].original_value, text)
