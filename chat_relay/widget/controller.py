"""
Conversation Controller for the chat widget.

A finite-state machine over ConversationState. Every user interaction is an
event raised by one of the currently rendered controls; TRANSITIONS maps
(state, event) to the next state and the action that renders it. Rendering is
data only (a transcript of Messages and a list of Controls), so any front end
can draw it and every transition can be tested without one.

    controller = ConversationController(WidgetSettings(), open_url=print)
    controller.open()
    controller.press("Website")
    controller.press("10+ years")
"""

from __future__ import annotations

import dataclasses
import logging
import webbrowser
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from ..enums import ControlKind, ConversationState, Track
from . import script
from .relay_client import RelayClient, RelayClientError, StreamHandle
from .settings import WidgetSettings

log = logging.getLogger(__name__)

S = ConversationState


@dataclass
class Message:
    role: str  # "agent" | "user"
    text: str


@dataclass(frozen=True)
class Control:
    event: str
    label: str
    kind: ControlKind = ControlKind.BUTTON
    value: Any = None
    primary: bool = False
    # record the user's choice in the transcript before acting on it
    echo: bool = True
    placeholder: str = ""


class Transition(NamedTuple):
    next_state: ConversationState
    action: str


class InvalidTransition(ValueError):
    pass


TRANSITIONS: Dict[Tuple[ConversationState, str], Transition] = {
    (S.START, "website"): Transition(S.WEBSITE_AGE, "_ask_website_age"),
    (S.START, "ai"): Transition(S.AI_BUSINESS, "_ask_business_type"),
    (S.START, "something_else"): Transition(S.START, "_open_contact_page"),
    (S.WEBSITE_AGE, "age"): Transition(S.WEBSITE_IMPROVEMENTS, "_website_improvements"),
    (S.AI_BUSINESS, "business"): Transition(S.AI_BENEFITS, "_ai_benefits"),
    (S.WEBSITE_IMPROVEMENTS, "retry"): Transition(S.WEBSITE_IMPROVEMENTS, "_retry"),
    (S.WEBSITE_IMPROVEMENTS, "fallback"): Transition(S.WEBSITE_IMPROVEMENTS, "_fallback"),
    (S.AI_BENEFITS, "retry"): Transition(S.AI_BENEFITS, "_retry"),
    (S.AI_BENEFITS, "fallback"): Transition(S.AI_BENEFITS, "_fallback"),
    (S.CLOSING, "yes"): Transition(S.CONTACT, "_accept_contact"),
    (S.CLOSING, "no"): Transition(S.ENDED, "_decline"),
    (S.CLOSING, "restart"): Transition(S.START, "restart"),
    (S.CONTACT, "submit"): Transition(S.CONTACT, "_submit_contact"),
    (S.CONTACT, "restart"): Transition(S.START, "restart"),
}

START_OVER = Control("restart", "Start Over", echo=False)


def _log_contact(data: Dict[str, str]) -> None:
    log.info(f"CONTACT_SUBMITTED | has_name={bool(data.get('name'))} | has_note={bool(data.get('note'))}")


class ConversationController:
    def __init__(
        self,
        settings: WidgetSettings,
        relay: Optional[RelayClient] = None,
        open_url: Optional[Callable[[str], Any]] = None,
        on_contact: Optional[Callable[[Dict[str, str]], None]] = None,
        on_update: Optional[Callable[[], None]] = None,
    ) -> None:
        self._settings = dataclasses.replace(settings)
        self._relay = relay or RelayClient(self._settings)
        self._open_url = open_url or (lambda url: webbrowser.open(url, new=2))
        self._on_contact = on_contact or _log_contact
        self._on_update = on_update or (lambda: None)

        self.state = S.START
        self.is_open = False
        self.notice: Optional[str] = None
        self.contact_accepted = False
        self._transcript: List[Message] = []
        self._controls: List[Control] = []
        self._pending: Optional[Tuple[Track, str]] = None
        self._active: Optional[StreamHandle] = None

    # ------------------------------------------------------------------
    # view
    # ------------------------------------------------------------------
    @property
    def transcript(self) -> Tuple[Message, ...]:
        return tuple(self._transcript)

    @property
    def controls(self) -> Tuple[Control, ...]:
        return tuple(self._controls)

    @property
    def tailored_content(self) -> bool:
        return self._settings.tailored_content

    def disable_tailored_content(self) -> None:
        """One-way for the rest of the session."""
        if self._settings.tailored_content:
            log.info("WIDGET_FALLBACK | tailored content disabled for session")
        self._settings.tailored_content = False

    def _push_agent(self, text: str) -> Message:
        msg = Message("agent", text)
        self._transcript.append(msg)
        self._on_update()
        return msg

    def _push_user(self, text: str) -> None:
        self._transcript.append(Message("user", text))
        self._on_update()

    def _set_controls(self, controls: List[Control]) -> None:
        self._controls = list(controls)

    # ------------------------------------------------------------------
    # user interaction
    # ------------------------------------------------------------------
    def open(self) -> None:
        self.is_open = True
        if self.state == S.START and not self._transcript:
            self._run_start()

    def close(self) -> None:
        self.is_open = False
        self._cancel_active()

    def dispatch(self, event: str, value: Any = None) -> None:
        control = self._find_control(event, value)
        transition = TRANSITIONS.get((self.state, event))
        if control is None or transition is None:
            raise InvalidTransition(f"event {event!r} not available in state {self.state.value}")

        self.notice = None
        if control.echo:
            self._push_user(str(value) if control.kind == ControlKind.INPUT else control.label)
        log.debug(f"WIDGET_TRANSITION | {self.state.value} --{event}--> {transition.next_state.value}")
        self.state = transition.next_state
        getattr(self, transition.action)(value)

    def press(self, label: str) -> None:
        for control in self._controls:
            if control.kind == ControlKind.BUTTON and control.label == label:
                self.dispatch(control.event, control.value)
                return
        raise InvalidTransition(f"no button {label!r} in state {self.state.value}")

    def submit(self, text: str) -> None:
        """Text entry (Enter key). Blank input is ignored."""
        text = (text or "").strip()
        for control in self._controls:
            if control.kind == ControlKind.INPUT:
                if text:
                    self.dispatch(control.event, text)
                return
        raise InvalidTransition(f"no text input in state {self.state.value}")

    def submit_contact(self, name: str = "", email: str = "", note: str = "") -> None:
        self.dispatch("submit", {"name": name or "", "email": email or "", "note": note or ""})

    def restart(self, _value: Any = None) -> None:
        self._cancel_active()
        self._transcript.clear()
        self._set_controls([])
        self._pending = None
        self.notice = None
        self._run_start()

    def _find_control(self, event: str, value: Any) -> Optional[Control]:
        for control in self._controls:
            if control.event != event:
                continue
            if control.kind == ControlKind.BUTTON and control.value is not None and control.value != value:
                continue
            return control
        return None

    def _cancel_active(self) -> None:
        handle, self._active = self._active, None
        if handle is not None:
            handle.cancel()

    # ------------------------------------------------------------------
    # actions
    # ------------------------------------------------------------------
    def _run_start(self) -> None:
        self.state = S.START
        self._push_agent(script.GREETING)
        self._set_controls([
            Control("website", "Website"),
            Control("ai", "AI"),
            Control("something_else", "Something else"),
        ])

    def _open_contact_page(self, _value: Any = None) -> None:
        self._open_url(self._settings.contact_url)
        self._push_agent(script.OPENING_CONTACT)

    def _ask_website_age(self, _value: Any = None) -> None:
        self._push_agent(script.WEBSITE_AGE_QUESTION)
        self._set_controls([Control("age", c, value=c) for c in script.WEBSITE_AGE_CHOICES])

    def _ask_business_type(self, _value: Any = None) -> None:
        self._push_agent(script.AI_BUSINESS_QUESTION)
        self._set_controls([Control("business", "Business type", ControlKind.INPUT, placeholder=script.AI_BUSINESS_PLACEHOLDER)])

    def _website_improvements(self, age: str) -> None:
        self._pending = (Track.WEBSITE, age)
        self._run_step()

    def _ai_benefits(self, business_type: str) -> None:
        self._pending = (Track.AI, business_type)
        self._run_step()

    def _retry(self, attempt: int) -> None:
        self._run_step(attempt=int(attempt))

    def _fallback(self, _value: Any = None) -> None:
        self.disable_tailored_content()
        self._render_canned()

    def _run_step(self, attempt: int = 0) -> None:
        if not self._settings.tailored_content:
            self._render_canned()
            return
        track, user_input = self._pending
        if track == Track.WEBSITE:
            self._render_tailored(script.website_prompt(user_input), script.WEBSITE_GENERATING, attempt)
        else:
            self._render_tailored(script.ai_prompt(user_input), script.AI_GENERATING, attempt)

    def _render_canned(self) -> None:
        track, user_input = self._pending
        if track == Track.WEBSITE:
            self._push_agent(script.website_improvements(user_input))
        else:
            self._push_agent(f"Here are benefits for {user_input}:")
            self._push_agent(script.numbered(script.ai_benefits(user_input)))
        self._enter_closing()

    def _render_tailored(self, prompt: str, loading: str, attempt: int) -> None:
        self._push_agent(script.RETRYING if attempt > 0 else loading)
        self._set_controls([])

        bubble: Optional[Message] = None

        def on_chunk(text: str) -> None:
            nonlocal bubble
            if bubble is None:
                bubble = self._push_agent("")
            bubble.text += text
            self._on_update()

        try:
            handle = self._relay.stream(prompt)
            self._active = handle
            completed = handle.consume(on_chunk, timeout=self._settings.timeout_seconds)
        except RelayClientError as exc:
            log.warning(f"WIDGET_RELAY_FAILED | attempt={attempt} | error={exc}")
            self._active = None
            self._on_relay_failure(attempt)
            return

        self._active = None
        if not completed:
            # closed mid-stream; a restart has already re-rendered the start menu
            if self.state in (S.WEBSITE_IMPROVEMENTS, S.AI_BENEFITS):
                self._set_controls(self._retry_controls(attempt))
            return
        if bubble is None:
            log.warning(f"WIDGET_RELAY_EMPTY | attempt={attempt}")
            self._on_relay_failure(attempt)
            return
        self._enter_closing()

    @staticmethod
    def _retry_controls(next_attempt: int) -> List[Control]:
        return [
            Control("retry", "Try Again Now", value=next_attempt, primary=True, echo=False),
            Control("fallback", "Show Default Results", echo=False),
        ]

    def _on_relay_failure(self, attempt: int) -> None:
        if attempt < self._settings.max_retries:
            self._push_agent(script.CONNECTION_ISSUE)
            self._set_controls(self._retry_controls(attempt + 1))
            return
        self._push_agent(script.BACKEND_UNAVAILABLE)
        self.disable_tailored_content()
        self._render_canned()

    def _enter_closing(self) -> None:
        self.state = S.CLOSING
        self._push_agent(script.CLOSING_QUESTION)
        self._set_controls([
            Control("yes", "Yes", primary=True),
            Control("no", "No"),
            START_OVER,
        ])

    def _accept_contact(self, _value: Any = None) -> None:
        self.contact_accepted = True
        self._open_contact_page()
        self._push_agent(script.CONTACT_PROMPT)
        self._set_controls([Control("submit", "Send", ControlKind.FORM, primary=True, echo=False)])

    def _decline(self, _value: Any = None) -> None:
        track = self._pending[0] if self._pending else Track.WEBSITE
        self._push_agent(script.WEBSITE_GOODBYE if track == Track.WEBSITE else script.AI_GOODBYE)
        self._set_controls([])

    def _submit_contact(self, data: Dict[str, str]) -> None:
        data = {k: (data.get(k) or "").strip() for k in ("name", "email", "note")}
        if not data["email"]:
            self.notice = script.CONTACT_EMAIL_REQUIRED
            return
        self._push_user(f"Contact: {data['name'] or '-'} | {data['email']}")
        self._push_agent(script.CONTACT_THANKS)
        self._on_contact(data)
        self._set_controls([START_OVER])
