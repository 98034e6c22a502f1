from __future__ import annotations

from conftest import make_note
from ticketwise.services.lexicon import Lexicon
from ticketwise.services.resolution_miner import (
    TRUNCATION_MARKER,
    EvidenceRole,
    MiningLimits,
    ResolutionMiner,
    truncate_text,
)


def _twelve_notes(action_ids=(4, 7, 9)):
    notes = []
    for index in range(1, 13):
        text = f"Update {index}: waiting on customer."
        if index in action_ids:
            text = f"Update {index}: rebooted the firewall and cleared the cache."
        flags = {"resolutionFlag": True} if index == 6 else {}
        notes.append(make_note(index, text, f"2024-05-{index:02d}T09:00:00Z", **flags))
    # Gateway order is not chronological.
    return list(reversed(notes))


def test_twelve_note_ticket_keeps_resolution_actions_and_edges() -> None:
    miner = ResolutionMiner(Lexicon())
    evidence = miner.mine(_twelve_notes())

    ids = [item.note.id for item in evidence]
    assert ids == [1, 2, 4, 6, 7, 9, 10, 11, 12]
    roles = {item.note.id: item.role for item in evidence}
    assert roles[6] is EvidenceRole.RESOLUTION
    assert roles[4] is EvidenceRole.CORRECTIVE_ACTION
    assert roles[1] is EvidenceRole.PROBLEM_CONTEXT
    assert roles[11] is EvidenceRole.OUTCOME_CONTEXT


def test_only_latest_three_action_notes_are_kept() -> None:
    miner = ResolutionMiner(Lexicon())
    evidence = miner.mine(_twelve_notes(action_ids=(3, 4, 5, 7, 8)))

    actions = [item.note.id for item in evidence if item.role is EvidenceRole.CORRECTIVE_ACTION]
    assert actions == [5, 7, 8]
    ids = [item.note.id for item in evidence]
    assert 3 not in ids
    assert 4 not in ids


def test_selection_is_capped_unique_and_ascending() -> None:
    miner = ResolutionMiner(Lexicon(), MiningLimits(max_notes=4))
    evidence = miner.mine(_twelve_notes())

    ids = [item.note.id for item in evidence]
    assert len(ids) == 4
    assert ids == sorted(set(ids))
    assert 6 in ids


def test_action_verbs_match_whole_words_only() -> None:
    lexicon = Lexicon()
    assert lexicon.mentions_action("Reset the user's password")
    assert lexicon.mentions_action("Settings were ROLLED BACK overnight")
    assert not lexicon.mentions_action("Customer is resetting their phone")
    assert not lexicon.mentions_action("unfixed")
    assert not lexicon.mentions_action(None)


def test_only_closed_like_tickets_are_mined() -> None:
    miner = ResolutionMiner(Lexicon())
    assert miner.should_mine("Closed")
    assert miner.should_mine(">Resolved - Awaiting Review")
    assert not miner.should_mine("In Progress")
    assert not miner.should_mine(None)


def test_long_notes_are_truncated_with_marker() -> None:
    text, truncated = truncate_text("x" * 600, 500)
    assert truncated
    assert text == "x" * 500 + TRUNCATION_MARKER

    text, truncated = truncate_text("  short  ", 500)
    assert (text, truncated) == ("short", False)


def test_notes_without_timestamps_sort_first() -> None:
    miner = ResolutionMiner(Lexicon(), MiningLimits(leading_notes=1, trailing_notes=0))
    notes = [
        make_note(2, "later", "2024-05-02T09:00:00Z"),
        make_note(1, "undated"),
    ]
    evidence = miner.mine(notes)
    assert [item.note.id for item in evidence] == [1]
