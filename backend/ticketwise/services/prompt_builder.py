from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

SYSTEM_PROMPT = (
    "You are TicketWise, an AI assistant for IT service desk technicians using ConnectWise PSA.\n"
    "\n"
    "Your role is to help technicians work more efficiently by:\n"
    "- Summarising tickets clearly and concisely\n"
    "- Suggesting troubleshooting steps and solutions\n"
    "- Identifying patterns from similar past tickets\n"
    "- Highlighting important details they might miss\n"
    "- Recommending next actions\n"
    "\n"
    "CRITICAL RULES:\n"
    "- ONLY use information explicitly stated in the ticket data provided.\n"
    "- NEVER invent technician names, dates, steps taken, or details not in the data.\n"
    '- If information is missing or unclear, say "Not stated in ticket" or "Unknown".\n'
    "- Quote specific notes/entries when referencing what was tried or discussed.\n"
    "- If asked about something not in the ticket, clearly state the information is not available.\n"
    "\n"
    "Guidelines:\n"
    "- Be concise but thorough. Technicians are busy.\n"
    "- Use bullet points and clear structure.\n"
    "- When suggesting solutions, prioritise quick wins first.\n"
    "- Reference specific details from ticket NOTES, not just the summary.\n"
    "- Consider the full conversation history in the notes.\n"
    "- Use British English spelling (e.g. colour, prioritise, organisation).\n"
    "\n"
    "Format your responses in Markdown for readability."
)

NO_SIMILAR_TICKETS = "No similar tickets found for this specific issue."
NO_CONFIG_HISTORY = "No ticket history found for this configuration."
EMPTY_COMPLETION = "I couldn't generate a response. Please try again."


@dataclass(frozen=True)
class SlashCommand:
    command: str
    description: str
    prompt: str


SLASH_COMMANDS: dict[str, SlashCommand] = {
    item.command: item
    for item in (
        SlashCommand(
            "/summary",
            "Summarise this ticket",
            "Provide a clear, concise summary of this ticket.\n\n"
            "For CLOSED/RESOLVED tickets, use this format:\n"
            "**Issue:** [One-line description of the problem]\n"
            "**Resolution:** [THE SPECIFIC ACTION that fixed it - dig through the notes to find exactly what worked]\n"
            "**Details:** [Brief context if needed]\n\n"
            "For OPEN tickets, use this format:\n"
            "**Issue:** [One-line description of the problem]\n"
            "**Tried so far:** [Bullet list of steps taken]\n"
            "**Current status:** [Where things stand]\n"
            "**Blockers:** [What's preventing progress, if any]\n\n"
            "IMPORTANT: For closed tickets, the resolution is often buried in the notes, not marked as a "
            '"resolution". Look for phrases like "fixed it", "resolved", "that worked", "sorted", or the '
            "last technical action before the customer confirmed it was working.",
        ),
        SlashCommand(
            "/suggest",
            "Suggest troubleshooting steps",
            "Based on this ticket, suggest the most likely troubleshooting steps to resolve the issue. "
            "Prioritise quick wins and common solutions first. Consider what's already been tried.",
        ),
        SlashCommand(
            "/next",
            "Recommend next steps",
            "What should the technician do next with this ticket? Consider: urgency, what's pending, "
            "who needs to be contacted, and any escalation needs.",
        ),
        SlashCommand(
            "/similar",
            "Find similar resolved tickets",
            "You are helping a technician find similar past tickets to avoid reinventing the wheel.\n\n"
            "TASK: Review the similar tickets provided and identify ONLY those that are genuinely "
            "relevant to the current issue.\n\n"
            "RESPONSE FORMAT:\n"
            "If you find relevant matches, respond with:\n\n"
            "**Similar Tickets Found:**\n"
            "- **#[ID]** - [Brief issue] → [How it was resolved]\n\n"
            "**Recommendation:** [What the tech should try based on these]\n\n"
            'If this appears to be a TREND (same issue recurring), note: "Trend detected - [details]"\n\n'
            "If NO tickets are genuinely similar, respond ONLY with:\n"
            f'"{NO_SIMILAR_TICKETS}"\n\n'
            "RULES:\n"
            "- ONLY include tickets where the issue genuinely matches\n"
            "- Do NOT list tickets just because they share a keyword\n"
            "- Focus on CLOSED/RESOLVED tickets that show what worked\n"
            "- Use the Key notes of each ticket to state the actual fix\n"
            "- Be concise - ticket number, brief problem, brief solution\n"
            "- If configuration data suggests a known hardware issue (e.g. specific laptop model), mention it",
        ),
        SlashCommand(
            "/config",
            "Analyse configuration history",
            "Analyse the ticket history for the attached configuration/device.\n\n"
            "IF historical tickets are provided:\n"
            "- List recurring issues (brief)\n"
            "- Note any patterns\n"
            "- Highlight solutions that worked before\n"
            "- Flag underlying problems\n\n"
            "IF NO historical tickets found:\n"
            f'Reply ONLY with: "{NO_CONFIG_HISTORY}"\n'
            "Do NOT analyse the current ticket - that's what /summary is for.\n\n"
            "Keep response under 200 words.",
        ),
        SlashCommand(
            "/draft",
            "Draft a customer response",
            "Draft a professional, friendly response to send to the customer. Acknowledge their issue, "
            "explain what's being done or next steps, and set appropriate expectations.",
        ),
        SlashCommand(
            "/escalate",
            "Prepare escalation notes",
            "Prepare concise escalation notes for this ticket. Include: issue summary, what's been tried, "
            "current findings, and specific questions for the escalation team.",
        ),
        SlashCommand(
            "/5whys",
            "Root cause analysis (5 Whys)",
            "Perform a 5 Whys root cause analysis on this ticket to identify the underlying cause of the issue.\n\n"
            "Structure your analysis as follows:\n\n"
            "**Problem Statement:** Clearly state the problem from the ticket.\n\n"
            "**The 5 Whys:**\n"
            "1. **Why did [problem] occur?** → [Answer based on ticket evidence]\n"
            "2. **Why did [answer 1] happen?** → [Answer based on ticket evidence or logical inference]\n"
            "3. **Why did [answer 2] happen?** → [Continue drilling down]\n"
            "4. **Why did [answer 3] happen?** → [Continue drilling down]\n"
            "5. **Why did [answer 4] happen?** → [Root cause identified]\n\n"
            "**Root Cause:** State the identified root cause clearly.\n\n"
            "**Recommendations:** Based on this analysis, suggest:\n"
            "- Immediate fix for this ticket\n"
            "- Preventive measures to stop recurrence\n"
            "- Any process/training improvements\n\n"
            "IMPORTANT: Only use information from the ticket. Where you must infer or make assumptions, "
            'clearly state "Possible cause (not confirmed):" and explain your reasoning. If there isn\'t '
            "enough information to complete all 5 levels, stop where the evidence ends and note what "
            "additional investigation is needed.",
        ),
    )
}


def detect_slash_command(message: str) -> tuple[Optional[SlashCommand], str]:
    """Split a leading slash command from the rest of the message."""

    trimmed = message.strip()
    lowered = trimmed.lower()
    for name, command in SLASH_COMMANDS.items():
        if lowered.startswith(name):
            return command, trimmed[len(name) :].strip()
    return None, message


class PromptBuilder:
    """Compose the ordered message list sent to the AI provider."""

    def __init__(self, max_history: int = 20) -> None:
        self._max_history = max_history

    def build_messages(
        self,
        ticket_context: str,
        history: Iterable[dict],
        user_content: str,
        slash_command: SlashCommand | None = None,
        similar_tickets: str | None = None,
        config_history: str | None = None,
    ) -> List[dict]:
        """Create the message list for an LLM provider."""

        context_message = f"# Current Ticket\n\n{ticket_context}"
        if similar_tickets:
            context_message += f"\n\n# Similar Tickets\n\n{similar_tickets}"
        if config_history:
            context_message += f"\n\n# Configuration History\n\n{config_history}"

        messages: list[dict] = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "system", "content": context_message},
        ]
        for item in list(history)[-self._max_history :]:
            role = item.get("role")
            content = item.get("content")
            # Only user and assistant turns are replayed.
            if role not in {"user", "assistant"} or not isinstance(content, str):
                continue
            messages.append({"role": role, "content": content})

        if slash_command:
            query = user_content.strip() or "(no additional context)"
            messages.append(
                {"role": "user", "content": f"{slash_command.prompt}\n\nUser query: {query}"}
            )
        else:
            messages.append({"role": "user", "content": user_content})
        return messages
