from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Sequence

from ticketwise.gateway.models import NoteRecord, sort_notes
from ticketwise.services.lexicon import Lexicon

TRUNCATION_MARKER = " …[truncated]"


class EvidenceRole(str, enum.Enum):
    """Why a note was selected, highest priority first."""

    RESOLUTION = "resolution"
    CORRECTIVE_ACTION = "corrective_action"
    PROBLEM_CONTEXT = "problem_context"
    OUTCOME_CONTEXT = "outcome_context"

    @property
    def label(self) -> str:
        return _ROLE_LABELS[self]


_ROLE_LABELS = {
    EvidenceRole.RESOLUTION: "Resolution",
    EvidenceRole.CORRECTIVE_ACTION: "Action taken",
    EvidenceRole.PROBLEM_CONTEXT: "Problem context",
    EvidenceRole.OUTCOME_CONTEXT: "Outcome",
}


@dataclass(frozen=True)
class Evidence:
    """One selected note with its inferred role and prompt-ready text."""

    note: NoteRecord
    role: EvidenceRole
    text: str
    truncated: bool = False


@dataclass(frozen=True)
class MiningLimits:
    max_notes: int = 10
    max_action_notes: int = 3
    leading_notes: int = 2
    trailing_notes: int = 3
    note_chars: int = 500


class ResolutionMiner:
    """Pick the notes of a finished ticket that most likely describe the fix."""

    def __init__(self, lexicon: Lexicon, limits: MiningLimits | None = None) -> None:
        self._lexicon = lexicon
        self._limits = limits or MiningLimits()

    def should_mine(self, status_name: str | None) -> bool:
        """Only closed-like tickets have a settled resolution worth mining."""

        return self._lexicon.is_closed_status(status_name)

    def mine(self, notes: Iterable[NoteRecord]) -> list[Evidence]:
        limits = self._limits
        ordered = sort_notes(list(notes))

        resolution = [note for note in ordered if note.resolution_flag]
        actions = [note for note in ordered if self._lexicon.mentions_action(note.text)]
        if limits.max_action_notes > 0:
            actions = actions[-limits.max_action_notes :]
        else:
            actions = []
        leading = ordered[: limits.leading_notes]
        trailing = ordered[-limits.trailing_notes :] if limits.trailing_notes > 0 else []

        selected: dict[int, EvidenceRole] = {}
        for role, group in (
            (EvidenceRole.RESOLUTION, resolution),
            (EvidenceRole.CORRECTIVE_ACTION, actions),
            (EvidenceRole.PROBLEM_CONTEXT, leading),
            (EvidenceRole.OUTCOME_CONTEXT, trailing),
        ):
            for note in group:
                if len(selected) >= limits.max_notes:
                    break
                selected.setdefault(note.id, role)

        return [
            self._to_evidence(note, selected[note.id])
            for note in _unique(ordered)
            if note.id in selected
        ]

    def _to_evidence(self, note: NoteRecord, role: EvidenceRole) -> Evidence:
        text, truncated = truncate_text(note.text or "", self._limits.note_chars)
        return Evidence(note=note, role=role, text=text, truncated=truncated)


def truncate_text(text: str, max_chars: int) -> tuple[str, bool]:
    """Clamp text to `max_chars`, appending an explicit marker when cut."""

    cleaned = text.strip()
    if len(cleaned) <= max_chars:
        return cleaned, False
    return cleaned[:max_chars].rstrip() + TRUNCATION_MARKER, True


def _unique(notes: Sequence[NoteRecord]) -> list[NoteRecord]:
    seen: set[int] = set()
    unique: list[NoteRecord] = []
    for note in notes:
        if note.id in seen:
            continue
        seen.add(note.id)
        unique.append(note)
    return unique
