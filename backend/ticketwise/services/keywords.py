from __future__ import annotations

import re

from ticketwise.services.lexicon import Lexicon

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
MIN_KEYWORD_LENGTH = 4


def extract_keywords(summary: str | None, lexicon: Lexicon, limit: int = 4) -> list[str]:
    """Return up to `limit` search keywords from a ticket summary, in original order.

    Tokens of three characters or fewer and stop words are discarded. An empty
    list is a valid result and means no search should be issued.
    """

    cleaned = _NON_ALNUM.sub("", (summary or "").lower())
    keywords: list[str] = []
    for token in cleaned.split():
        if len(token) < MIN_KEYWORD_LENGTH or token in lexicon.stop_words:
            continue
        keywords.append(token)
        if len(keywords) >= limit:
            break
    return keywords
