from __future__ import annotations

from ticketwise.services.keywords import extract_keywords
from ticketwise.services.lexicon import Lexicon


def test_vpn_summary_drops_short_tokens_and_stop_words() -> None:
    keywords = extract_keywords("VPN keeps disconnecting every afternoon", Lexicon())
    assert keywords == ["disconnecting", "every", "afternoon"]


def test_keywords_strip_punctuation_and_respect_limit() -> None:
    keywords = extract_keywords(
        "Outlook: mailbox quota exceeded, archive failing (again)!", Lexicon(), limit=4
    )
    assert keywords == ["outlook", "mailbox", "quota", "exceeded"]


def test_summary_without_usable_tokens_yields_nothing() -> None:
    assert extract_keywords("PC is off - help!", Lexicon()) == []
    assert extract_keywords(None, Lexicon()) == []
    assert extract_keywords("", Lexicon()) == []


def test_custom_stop_words_replace_defaults() -> None:
    lexicon = Lexicon(stop_words=frozenset({"every"}))
    assert extract_keywords("VPN keeps disconnecting every afternoon", lexicon) == [
        "keeps",
        "disconnecting",
        "afternoon",
    ]
