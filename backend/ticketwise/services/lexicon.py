from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

from ticketwise.core.config import Settings, parse_list

DEFAULT_STOP_WORDS = frozenset(
    {
        "user",
        "issue",
        "problem",
        "help",
        "keep",
        "keeps",
        "still",
        "need",
        "please",
        "urgent",
        "asap",
        "working",
        "work",
        "able",
        "unable",
        "cannot",
        "error",
        "having",
        "getting",
        "wants",
        "requested",
        "request",
        "support",
        "ticket",
        "client",
        "customer",
        "company",
        "staff",
        "employee",
        "team",
        "office",
        "site",
    }
)

DEFAULT_CLOSED_STATUSES = ("closed", "resolved", "completed")

DEFAULT_ACTION_VERBS = (
    "installed",
    "reinstalled",
    "uninstalled",
    "replaced",
    "reset",
    "reconfigured",
    "configured",
    "rebooted",
    "restarted",
    "updated",
    "upgraded",
    "patched",
    "repaired",
    "fixed",
    "removed",
    "cleared",
    "enabled",
    "disabled",
    "remapped",
    "re-enabled",
    "rolled back",
    "recreated",
)


@dataclass(frozen=True)
class Lexicon:
    """Word lists that drive keyword extraction and note classification."""

    stop_words: frozenset[str] = DEFAULT_STOP_WORDS
    closed_statuses: tuple[str, ...] = DEFAULT_CLOSED_STATUSES
    action_verbs: tuple[str, ...] = DEFAULT_ACTION_VERBS
    _action_pattern: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        verbs = sorted(
            {verb.strip().lower() for verb in self.action_verbs if verb.strip()},
            key=len,
            reverse=True,
        )
        alternation = "|".join(re.escape(verb) for verb in verbs) or r"(?!x)x"
        pattern = re.compile(rf"(?<![\w-])(?:{alternation})(?![\w-])", re.IGNORECASE)
        object.__setattr__(self, "_action_pattern", pattern)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Lexicon":
        """Build a lexicon, replacing any list configured in the environment."""

        stop_words = _lowered(parse_list(settings.lexicon_stop_words))
        closed = _lowered(parse_list(settings.lexicon_closed_statuses))
        verbs = _lowered(parse_list(settings.lexicon_action_verbs))
        return cls(
            stop_words=frozenset(stop_words) if stop_words else DEFAULT_STOP_WORDS,
            closed_statuses=tuple(closed) if closed else DEFAULT_CLOSED_STATUSES,
            action_verbs=tuple(verbs) if verbs else DEFAULT_ACTION_VERBS,
        )

    def is_closed_status(self, status_name: str | None) -> bool:
        """Return True when a status name looks closed/resolved."""

        name = (status_name or "").lower()
        return bool(name) and any(term in name for term in self.closed_statuses)

    def mentions_action(self, text: str | None) -> bool:
        """Return True when text contains a corrective-action verb as a whole word."""

        return bool(text) and self._action_pattern.search(text) is not None


def _lowered(items: Iterable[str]) -> list[str]:
    return [item.lower() for item in items]
