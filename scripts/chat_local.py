#!/usr/bin/env python3
"""
Interactive local chat harness (no HTTP).

Usage:
  python3 scripts/chat_local.py

What it does:
- Builds the same AppContext the API uses (mock model when OPENROUTER_API_KEY is unset in dev)
- Keeps one booking session across turns, like the web widget
- Prints the agent reply, the widget to render, the step and the suggested replies
"""

from __future__ import annotations

import json

from stopover_chat.application.exceptions import AllModelsFailedError, LLMUpstreamError
from stopover_chat.application.use_cases.handle_chat_turn import ChatTurnInput
from stopover_chat.application.utils.ui_components import describe_interaction, render_descriptor
from stopover_chat.core.config import settings
from stopover_chat.infrastructure.knowledge.catalog_data import SAMPLE_BOOKING, SAMPLE_CUSTOMER
from stopover_chat.wiring.dependencies import build_context


def _print_header(session_id: str | None) -> None:
    print("\nStopover Chat Harness")
    print("-" * 60)
    print(f"customer: {SAMPLE_CUSTOMER.name}  booking: {SAMPLE_BOOKING.pnr}")
    print(f"session_id: {session_id or '(new)'}")
    print("Type your message and press Enter.")
    print("Commands: /new (new session), /click <action> <json>, /quit, /help")
    print("-" * 60)


def main() -> None:
    context = build_context(settings)
    use_case = context.require_chat()
    session_id: str | None = None
    history: list[dict[str, str]] = []
    _print_header(session_id)

    while True:
        try:
            user_text = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nBye!")
            return

        if not user_text:
            continue

        cmd = user_text.lower()
        if cmd in ("/quit", "/exit"):
            print("Bye!")
            return
        if cmd == "/help":
            print("Commands:")
            print("  /new -> start a new booking session")
            print('  /click extras-select {"includeTransfers": true} -> simulate a widget click')
            print("  /quit -> exit")
            continue
        if cmd == "/new":
            session_id = None
            history = []
            _print_header(session_id)
            continue
        if cmd.startswith("/click "):
            _, action, *rest = user_text.split(" ", 2)
            try:
                data = json.loads(rest[0]) if rest else {}
            except json.JSONDecodeError as e:
                print(f"Bad JSON: {e}")
                continue
            user_text = describe_interaction(action, data)
            print(f"(as text) {user_text}")

        history.append({"role": "user", "content": user_text})
        turn = ChatTurnInput(
            messages=list(history),
            customer=SAMPLE_CUSTOMER,
            booking=SAMPLE_BOOKING,
            session_id=session_id,
            entry_point="local",
        )
        try:
            result = use_case.handle(turn)
        except (LLMUpstreamError, AllModelsFailedError) as e:
            print(f"ERROR ({type(e).__name__}): {e}")
            continue

        session_id = result.session_id
        history.append({"role": "assistant", "content": result.message})

        print("\n--- Reply ---")
        print(result.message)
        widget = render_descriptor(result.ui_component)
        if widget["widget"] != "none":
            print(f"\n[widget: {widget['widget']}]")
            print(json.dumps(widget["data"], indent=2)[:1500])
        print(f"\nstep: {result.current_step}  model: {result.model or '-'}")
        if result.suggested_replies:
            print("suggested: " + " | ".join(result.suggested_replies))
        print("-" * 60)


if __name__ == "__main__":
    main()
