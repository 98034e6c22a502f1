from __future__ import annotations

from ticketwise.services.prompt_builder import (
    SLASH_COMMANDS,
    PromptBuilder,
    detect_slash_command,
)


def test_prompt_builder_orders_system_context_history_and_user_turn() -> None:
    builder = PromptBuilder()
    messages = builder.build_messages(
        ticket_context="# Ticket #1: Printer offline\n",
        history=[
            {"role": "user", "content": "What happened?"},
            {"role": "assistant", "content": "The printer went offline."},
            {"role": "tool", "content": "ignored"},
        ],
        user_content="Any ideas?",
    )

    assert [item["role"] for item in messages] == ["system", "system", "user", "assistant", "user"]
    assert "TicketWise" in messages[0]["content"]
    assert messages[1]["content"].startswith("# Current Ticket")
    assert "# Similar Tickets" not in messages[1]["content"]
    assert messages[-1]["content"] == "Any ideas?"


def test_prompt_builder_appends_evidence_sections_and_slash_prompt() -> None:
    builder = PromptBuilder()
    command, remainder = detect_slash_command("/SIMILAR  vpn drops")
    assert command is SLASH_COMMANDS["/similar"]
    assert remainder == "vpn drops"

    messages = builder.build_messages(
        ticket_context="ctx",
        history=[],
        user_content=remainder,
        slash_command=command,
        similar_tickets="## Ticket #7: VPN",
        config_history="## Ticket #9: Laptop",
    )
    context = messages[1]["content"]
    assert context.index("# Current Ticket") < context.index("# Similar Tickets")
    assert context.index("# Similar Tickets") < context.index("# Configuration History")
    assert messages[-1]["content"].startswith(command.prompt)
    assert messages[-1]["content"].endswith("User query: vpn drops")


def test_slash_command_without_query_uses_placeholder() -> None:
    command, remainder = detect_slash_command("/summary")
    messages = PromptBuilder().build_messages("ctx", [], remainder, slash_command=command)
    assert messages[-1]["content"].endswith("User query: (no additional context)")


def test_plain_message_is_not_a_command() -> None:
    command, remainder = detect_slash_command("summary please")
    assert command is None
    assert remainder == "summary please"


def test_history_is_capped() -> None:
    history = [{"role": "user", "content": f"turn {index}"} for index in range(30)]
    messages = PromptBuilder(max_history=5).build_messages("ctx", history, "latest")
    replayed = [item["content"] for item in messages[2:-1]]
    assert replayed == [f"turn {index}" for index in range(25, 30)]
