"""Merge user text and named presets into the characters a font must keep."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from fontpress.charsets import DEFAULT_REGISTRY, CharsetRegistry
from fontpress.errors import EmptyRepertoireError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Repertoire:
    """Deduplicated characters in first-appearance order.

    ``added`` records how many new characters each applied preset
    contributed; ``missing`` lists preset ids that were skipped.
    """

    text: str
    added: dict[str, int] = field(default_factory=dict)
    missing: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.text)

    def __str__(self) -> str:
        return self.text

    @property
    def codepoints(self) -> set[int]:
        return {ord(ch) for ch in self.text}


def dedupe(text: str) -> str:
    """Drop repeated code points, keeping the first occurrence of each."""
    return "".join(dict.fromkeys(text))


def text_stats(text: str) -> dict[str, int]:
    """Total and unique code point counts for a piece of text."""
    return {"total": len(text), "unique": len(set(text))}


class RepertoireResolver:
    """Combine free text with zero or more preset ids.

    Membership is checked per code point, so multi-byte characters and
    combining marks are handled as the font's cmap sees them. No Unicode
    normalization is applied.
    """

    def __init__(self, registry: CharsetRegistry = DEFAULT_REGISTRY):
        self.registry = registry

    def resolve(self, user_text: str | None, preset_ids: Sequence[str] = ()) -> Repertoire:
        accumulated = dedupe(user_text or "")
        seen = set(accumulated)
        added: dict[str, int] = {}
        missing: list[str] = []

        for preset_id in preset_ids:
            chars = self.registry.resolve(preset_id)
            if chars is None:
                logger.warning("Unknown charset id skipped: %r", preset_id)
                missing.append(preset_id)
                continue
            novel = []
            for ch in chars:
                if ch not in seen:
                    seen.add(ch)
                    novel.append(ch)
            accumulated += "".join(novel)
            added[preset_id] = added.get(preset_id, 0) + len(novel)
            logger.info("Charset %s added %d new characters", preset_id, len(novel))

        if not accumulated:
            msg = "No characters to keep: provide text or at least one valid charset id"
            raise EmptyRepertoireError(msg)

        return Repertoire(text=accumulated, added=added, missing=tuple(missing))
