from __future__ import annotations

from stopover_chat.application.tools.definitions import ToolName
from stopover_chat.domain.entities.conversation_state import ConversationStep

Step = ConversationStep
Tool = ToolName

STEP_ORDER: tuple[ConversationStep, ...] = tuple(ConversationStep)
TERMINAL_STEPS = frozenset({Step.CONFIRMATION})

# (current step, tool) -> next step. Repeating the previous step's tool
# re-opens that choice without moving the funnel backwards.
TRANSITIONS: dict[tuple[ConversationStep, ToolName], ConversationStep] = {
    (Step.WELCOME, Tool.SHOW_CATEGORIES): Step.CATEGORY_SELECTION,
    (Step.CATEGORY_SELECTION, Tool.SHOW_CATEGORIES): Step.CATEGORY_SELECTION,
    (Step.CATEGORY_SELECTION, Tool.SELECT_CATEGORY): Step.HOTEL_SELECTION,
    (Step.HOTEL_SELECTION, Tool.SELECT_CATEGORY): Step.HOTEL_SELECTION,
    (Step.HOTEL_SELECTION, Tool.SELECT_HOTEL): Step.TIMING_DURATION,
    (Step.TIMING_DURATION, Tool.SELECT_HOTEL): Step.TIMING_DURATION,
    (Step.TIMING_DURATION, Tool.SELECT_TIMING): Step.EXTRAS_SELECTION,
    (Step.EXTRAS_SELECTION, Tool.SELECT_TIMING): Step.EXTRAS_SELECTION,
    (Step.EXTRAS_SELECTION, Tool.SELECT_EXTRAS): Step.BOOKING_SUMMARY,
    (Step.BOOKING_SUMMARY, Tool.SELECT_EXTRAS): Step.BOOKING_SUMMARY,
    (Step.BOOKING_SUMMARY, Tool.INITIATE_PAYMENT): Step.PAYMENT,
    (Step.PAYMENT, Tool.INITIATE_PAYMENT): Step.PAYMENT,
    (Step.PAYMENT, Tool.COMPLETE_BOOKING): Step.CONFIRMATION,
}


def next_step(
    current: ConversationStep,
    tool_name: str,
    table: dict[tuple[ConversationStep, ToolName], ConversationStep] = TRANSITIONS,
) -> ConversationStep | None:
    """Step reached by calling `tool_name` from `current`, or None if the call is out of order."""
    try:
        tool = ToolName(tool_name)
    except ValueError:
        return None
    return table.get((current, tool))


def validate_transition_table(
    table: dict[tuple[ConversationStep, ToolName], ConversationStep] = TRANSITIONS,
) -> None:
    """Raise ValueError if the table misses a tool, skips a step or strands a step."""
    problems: list[str] = []
    index = {step: i for i, step in enumerate(STEP_ORDER)}

    used_tools = {tool for _, tool in table}
    for tool in ToolName:
        if tool not in used_tools:
            problems.append(f"tool '{tool.value}' has no transition")

    for (source, tool), target in table.items():
        if source in TERMINAL_STEPS:
            problems.append(f"terminal step '{source.value}' has an outgoing transition via '{tool.value}'")
        if index[target] - index[source] not in (0, 1):
            problems.append(f"'{source.value}' -> '{target.value}' via '{tool.value}' skips or reverses a step")

    for step in STEP_ORDER:
        if step in TERMINAL_STEPS:
            continue
        if not any(src == step and index[dst] == index[step] + 1 for (src, _), dst in table.items()):
            problems.append(f"step '{step.value}' has no way forward")

    if problems:
        raise ValueError("Invalid transition table: " + "; ".join(problems))
