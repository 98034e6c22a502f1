from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from ticketwise.gateway.models import (
    ConfigurationRecord,
    NoteRecord,
    TicketRecord,
    sort_notes,
)
from ticketwise.services.resolution_miner import Evidence

UNKNOWN = "Unknown"
NOT_STATED = "Not stated"
MAX_PLAIN_SIMILAR = 10


@dataclass
class TicketContext:
    """Everything fetched for the open ticket in a single turn."""

    ticket: TicketRecord
    notes: list[NoteRecord] = field(default_factory=list)
    configurations: list[ConfigurationRecord] = field(default_factory=list)


@dataclass
class MinedTicket:
    """A similar ticket with the evidence mined from its notes (empty when open)."""

    ticket: TicketRecord
    evidence: list[Evidence] = field(default_factory=list)
    closed: bool = False


def format_ticket_context(context: TicketContext) -> str:
    """Render the open ticket as a Markdown document for the AI provider.

    Sections always appear in the same order: details, custom fields, initial
    description, notes, configurations. Values absent from the gateway record
    are written as explicit Unknown/Not stated markers.
    """

    ticket = context.ticket
    lines = [f"# Ticket #{ticket.id}: {_value(ticket.summary, NOT_STATED)}", ""]
    lines.extend(_details_block(ticket))

    custom = [item for item in ticket.custom_fields if _has_value(item.value)]
    if custom:
        lines.extend(["", "### Custom Fields"])
        for item in custom:
            lines.append(f"- **{_value(item.caption)}:** {item.value}")

    if ticket.initial_description and ticket.initial_description.strip():
        lines.extend(["", "## Initial Description", "", ticket.initial_description.strip()])

    notes = sort_notes(context.notes)
    if notes:
        lines.extend(["", f"## Ticket Notes ({len(notes)})", ""])
        for note in notes:
            lines.append(f"### {note_role_label(note)} by {_value(note.author)}{_date_suffix(note)}")
            lines.append(note.text.strip() if note.text and note.text.strip() else "(empty)")
            lines.append("")

    if context.configurations:
        lines.extend(["", f"## Attached Configurations ({len(context.configurations)})", ""])
        for config in context.configurations:
            lines.extend(_configuration_block(config))
            lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def format_similar_tickets(tickets: Sequence[TicketRecord]) -> str:
    """Plain summary list of tickets (used for configuration history)."""

    blocks = []
    for ticket in list(tickets)[:MAX_PLAIN_SIMILAR]:
        blocks.append(
            "\n".join(
                [
                    f"## Ticket #{ticket.id}: {_value(ticket.summary, NOT_STATED)}",
                    f"- Status: {_value(ticket.status_name)}",
                    f"- Company: {_value(ticket.company.name if ticket.company else None)}",
                    f"- Date: {_value(ticket.date_entered)}",
                    f"- Type: {_value(ticket.type.name if ticket.type else None)}",
                ]
            )
        )
    return "\n\n".join(blocks)


def format_similar_tickets_with_notes(mined: Iterable[MinedTicket]) -> str:
    """Similar tickets with the notes most likely to hold their resolution."""

    blocks = []
    for item in mined:
        ticket = item.ticket
        lines = [
            f"## Ticket #{ticket.id}: {_value(ticket.summary, NOT_STATED)}",
            f"- Status: {_value(ticket.status_name)}",
            f"- Company: {_value(ticket.company.name if ticket.company else None)}",
            f"- Date: {_value(ticket.date_entered)}",
        ]
        if ticket.initial_resolution and ticket.initial_resolution.strip():
            lines.append(f"- Recorded resolution: {ticket.initial_resolution.strip()}")
        if not item.closed:
            lines.append("- Still open: no settled resolution yet.")
        elif item.evidence:
            lines.append("")
            lines.append("Key notes:")
            for evidence in item.evidence:
                note = evidence.note
                lines.append(
                    f"- [{evidence.role.label}] {_value(note.author)}{_date_suffix(note)}: {evidence.text or '(empty)'}"
                )
        else:
            lines.append(f"- Notes: {NOT_STATED}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def note_role_label(note: NoteRecord) -> str:
    if note.detail_description_flag:
        return "Description"
    if note.internal_analysis_flag:
        return "Internal"
    if note.resolution_flag:
        return "Resolution"
    return "Note"


def _details_block(ticket: TicketRecord) -> list[str]:
    ticket_type = _value(ticket.type.name if ticket.type else None)
    if ticket.sub_type and ticket.sub_type.name:
        ticket_type = f"{ticket_type} > {ticket.sub_type.name}"
    last_updated = ticket.last_updated or (ticket.info.last_updated if ticket.info else None)
    lines = [
        "## Details",
        f"- **Company:** {_value(ticket.company.name if ticket.company else None)}",
        f"- **Contact:** {_value(ticket.contact_name or (ticket.contact.name if ticket.contact else None))}",
        f"- **Board:** {_value(ticket.board.name if ticket.board else None)}",
        f"- **Status:** {_value(ticket.status_name)}",
        f"- **Priority:** {_value(ticket.priority.name if ticket.priority else None)}",
        f"- **Type:** {ticket_type}",
        f"- **Assigned To:** {_value(ticket.resources or (ticket.owner.name if ticket.owner else None), 'Unassigned')}",
        f"- **Created:** {_value(ticket.date_entered)}",
        f"- **Last Updated:** {_value(last_updated)}",
    ]
    if ticket.budget_hours:
        lines.append(f"- **Budget Hours:** {ticket.budget_hours:g}")
    if ticket.actual_hours:
        lines.append(f"- **Actual Hours:** {ticket.actual_hours:g}")
    return lines


def _configuration_block(config: ConfigurationRecord) -> list[str]:
    lines = [
        f"### {_value(config.name)} ({_value(config.type.name if config.type else None, 'Unknown type')})",
        f"- **Status:** {_value(config.status.name if config.status else None)}",
    ]
    if config.serial_number:
        lines.append(f"- **Serial:** {config.serial_number}")
    if config.model_number:
        lines.append(f"- **Model:** {config.model_number}")
    if config.os_type or config.os_info:
        os_text = " ".join(part for part in (config.os_type, config.os_info) if part)
        lines.append(f"- **OS:** {os_text}")
    if config.last_login_name:
        lines.append(f"- **Last Login:** {config.last_login_name}")
    if config.notes:
        lines.append(f"- **Notes:** {config.notes}")
    return lines


def _date_suffix(note: NoteRecord) -> str:
    return f" ({note.date_created})" if note.date_created else ""


def _value(value: Optional[object], fallback: str = UNKNOWN) -> str:
    if value is None:
        return fallback
    text = str(value).strip()
    return text or fallback


def _has_value(value: Optional[object]) -> bool:
    return value is not None and str(value).strip() != ""
