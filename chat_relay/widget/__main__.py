#!/usr/bin/env python3
"""
Terminal front end for the chat widget.

    python -m chat_relay.widget

Reads USE_LLM / USE_WS / CHAT_BACKEND_URL / PROXY_TOKEN from the environment
(or .env). Pick a button by number, type free text where an input is shown,
`r` restarts, `q` quits.
"""

from __future__ import annotations

import sys
from typing import List

from dotenv import load_dotenv

from ..enums import ControlKind
from .controller import ConversationController, InvalidTransition, Message
from .settings import WidgetSettings


class TerminalView:
    def __init__(self) -> None:
        self._seen: List[Message] = []
        self._printed_len = 0
        self.controller: ConversationController | None = None

    def refresh(self) -> None:
        transcript = self.controller.transcript
        if any(a is not b for a, b in zip(self._seen, transcript)) or len(transcript) < len(self._seen):
            print("\n" + "-" * 40)
            self._seen, self._printed_len = [], 0

        # streamed bubble still growing
        if self._seen and len(transcript[len(self._seen) - 1].text) > self._printed_len:
            tail = transcript[len(self._seen) - 1].text[self._printed_len:]
            sys.stdout.write(tail)
            sys.stdout.flush()
            self._printed_len += len(tail)

        for msg in transcript[len(self._seen):]:
            prefix = "bot> " if msg.role == "agent" else "you> "
            sys.stdout.write(("\n" if self._seen else "") + prefix + msg.text)
            sys.stdout.flush()
            self._seen.append(msg)
            self._printed_len = len(msg.text)

    def prompt(self) -> str:
        print()
        if self.controller.notice:
            print(f"  ! {self.controller.notice}")
        for i, control in enumerate(self.controller.controls, start=1):
            if control.kind == ControlKind.BUTTON:
                print(f"  [{i}] {control.label}")
            elif control.kind == ControlKind.INPUT:
                print(f"  ({control.placeholder})")
            else:
                print("  (contact form)")
        return input("> ").strip()


def _handle(controller: ConversationController, line: str) -> None:
    controls = controller.controls
    if any(c.kind == ControlKind.FORM for c in controls):
        name = input("  Your name: ")
        email = input("  Email: ")
        note = input("  Short message: ")
        controller.submit_contact(name, email, note)
    elif line.isdigit() and 0 < int(line) <= len(controls):
        control = controls[int(line) - 1]
        controller.dispatch(control.event, control.value)
    elif any(c.kind == ControlKind.INPUT for c in controls):
        controller.submit(line)
    else:
        raise InvalidTransition(f"unrecognized choice {line!r}")


def main() -> None:
    load_dotenv()
    view = TerminalView()
    controller = ConversationController(WidgetSettings.from_env(), open_url=lambda url: print(f"\n  -> {url}"), on_update=view.refresh)
    view.controller = controller
    controller.open()

    while True:
        try:
            line = view.prompt()
        except (EOFError, KeyboardInterrupt):
            break
        if line == "q":
            break
        if line == "r":
            controller.restart()
            continue
        try:
            _handle(controller, line)
        except InvalidTransition as exc:
            print(f"  ! {exc}")
    controller.close()
    print()


if __name__ == "__main__":
    main()
