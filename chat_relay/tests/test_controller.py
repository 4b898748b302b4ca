from __future__ import annotations

from typing import Callable, List, Optional

import pytest

from chat_relay.enums import ControlKind, ConversationState
from chat_relay.widget import TRANSITIONS, ConversationController, InvalidTransition, WidgetSettings
from chat_relay.widget import script
from chat_relay.widget.relay_client import RelayClientError, RelayTimeout

S = ConversationState
CONTACT_URL = "https://example.test/contact/"


class FakeHandle:
    def __init__(self, chunks=(), error: Optional[Exception] = None,
                 during: Optional[Callable[[], None]] = None) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.during = during
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def consume(self, on_chunk, timeout):
        for chunk in self.chunks:
            on_chunk(chunk)
            if self.during:
                self.during()
            if self.cancelled:
                return False
        if self.error:
            raise self.error
        return True


class ScriptedRelay:
    """Plays back one outcome per stream() call, then keeps failing."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.prompts: List[str] = []

    def stream(self, prompt: str):
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0) if self.outcomes else RelayClientError("connection refused")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _controller(tailored=False, relay=None, **kwargs):
    opened: List[str] = []
    contacts: List[dict] = []
    settings = WidgetSettings(tailored_content=tailored, contact_url=CONTACT_URL)
    ctl = ConversationController(
        settings,
        relay=relay or ScriptedRelay(),
        open_url=opened.append,
        on_contact=contacts.append,
        **kwargs,
    )
    ctl.opened = opened
    ctl.contacts = contacts
    ctl.open()
    return ctl


def _texts(ctl):
    return [m.text for m in ctl.transcript]


def _labels(ctl):
    return [c.label for c in ctl.controls]


def _to_closing(ctl, track="website"):
    if track == "website":
        ctl.press("Website")
        ctl.press("10+ years")
    else:
        ctl.press("AI")
        ctl.submit("ecommerce")
    assert ctl.state == S.CLOSING


# ─────────────────────────────────────────────────────────────
# scripted flows
# ─────────────────────────────────────────────────────────────
def test_open_shows_greeting_and_menu():
    ctl = _controller()
    assert ctl.state == S.START
    assert _texts(ctl) == [script.GREETING]
    assert _labels(ctl) == ["Website", "AI", "Something else"]


def test_reopening_does_not_repeat_greeting():
    ctl = _controller()
    ctl.close()
    ctl.open()
    assert _texts(ctl) == [script.GREETING]


def test_website_track_canned():
    relay = ScriptedRelay()
    ctl = _controller(relay=relay)
    ctl.press("Website")
    assert ctl.state == S.WEBSITE_AGE
    assert _labels(ctl) == ["Never", "10+ years", "5-10 years", "1-5 years"]

    ctl.press("10+ years")

    assert _texts(ctl)[-3:] == [
        "10+ years",
        "Older sites often need: mobile-friendly redesign, updated security, faster loading speeds, and modern design standards.",
        script.CLOSING_QUESTION,
    ]
    assert ctl.transcript[-3].role == "user"
    assert _labels(ctl) == ["Yes", "No", "Start Over"]
    assert ctl.state == S.CLOSING
    assert relay.prompts == []


@pytest.mark.parametrize(
    "business,first_benefit",
    [
        ("Online SHOP", "Product recommendations to increase AOV"),
        ("ecommerce", "Product recommendations to increase AOV"),
        ("Consulting services", "Automated scheduling and reminders"),
        ("Healthcare", "Patient triage assistants"),
        ("dental clinic", "Patient triage assistants"),
        ("Plumbing", "Automation of repetitive tasks"),
    ],
)
def test_ai_track_canned(business, first_benefit):
    ctl = _controller()
    ctl.press("AI")
    assert ctl.state == S.AI_BUSINESS
    assert ctl.controls[0].kind == ControlKind.INPUT

    ctl.submit(f"  {business} ")

    texts = _texts(ctl)
    assert texts[-4] == business
    assert texts[-3] == f"Here are benefits for {business}:"
    assert texts[-2].startswith(f"1. {first_benefit}\n2. ")
    assert texts[-1] == script.CLOSING_QUESTION


def test_blank_business_type_is_ignored():
    ctl = _controller()
    ctl.press("AI")
    before = _texts(ctl)
    ctl.submit("   ")
    assert ctl.state == S.AI_BUSINESS
    assert _texts(ctl) == before


def test_something_else_opens_contact_page():
    ctl = _controller()
    ctl.press("Something else")
    assert ctl.opened == [CONTACT_URL]
    assert _texts(ctl)[-1] == script.OPENING_CONTACT
    assert ctl.state == S.START
    assert _labels(ctl) == ["Website", "AI", "Something else"]


# ─────────────────────────────────────────────────────────────
# tailored content
# ─────────────────────────────────────────────────────────────
def test_tailored_response_fills_one_bubble():
    updates = []
    relay = ScriptedRelay(FakeHandle(["1. Faster pages", "\n2. Better SEO"]))
    ctl = _controller(tailored=True, relay=relay, on_update=lambda: updates.append(1))
    ctl.press("Website")
    ctl.press("5-10 years")

    assert relay.prompts == [script.website_prompt("5-10 years")]
    assert _texts(ctl)[-3:] == [
        script.WEBSITE_GENERATING,
        "1. Faster pages\n2. Better SEO",
        script.CLOSING_QUESTION,
    ]
    assert sum(1 for t in _texts(ctl) if "Faster pages" in t) == 1
    assert ctl.state == S.CLOSING
    assert len(updates) >= 2


def test_tailored_ai_prompt():
    relay = ScriptedRelay(FakeHandle(["ok"]))
    ctl = _controller(tailored=True, relay=relay)
    ctl.press("AI")
    ctl.submit("bakery")
    assert relay.prompts == [script.ai_prompt("bakery")]
    assert _texts(ctl)[-3:] == [script.AI_GENERATING, "ok", script.CLOSING_QUESTION]


def test_failure_offers_retry_then_succeeds():
    relay = ScriptedRelay(RelayClientError("refused"), FakeHandle(["recovered"]))
    ctl = _controller(tailored=True, relay=relay)
    ctl.press("Website")
    ctl.press("Never")

    assert _texts(ctl)[-1] == script.CONNECTION_ISSUE
    assert _labels(ctl) == ["Try Again Now", "Show Default Results"]
    assert ctl.state == S.WEBSITE_IMPROVEMENTS

    ctl.press("Try Again Now")

    assert _texts(ctl)[-3:] == [script.RETRYING, "recovered", script.CLOSING_QUESTION]
    assert "Try Again Now" not in _texts(ctl)
    assert ctl.tailored_content


def test_unreachable_relay_falls_back_for_rest_of_session():
    relay = ScriptedRelay()
    ctl = _controller(tailored=True, relay=relay)
    ctl.press("Website")
    ctl.press("1-5 years")
    ctl.press("Try Again Now")
    ctl.press("Try Again Now")

    assert len(relay.prompts) == 3
    texts = _texts(ctl)
    assert texts[-3:] == [
        script.BACKEND_UNAVAILABLE,
        script.website_improvements("1-5 years"),
        script.CLOSING_QUESTION,
    ]
    assert not ctl.tailored_content

    ctl.press("Start Over")
    ctl.press("AI")
    ctl.submit("services")
    assert len(relay.prompts) == 3
    assert _texts(ctl)[-3] == "Here are benefits for services:"


def test_show_default_results_disables_tailored_content():
    relay = ScriptedRelay(RelayTimeout("Request timeout"))
    ctl = _controller(tailored=True, relay=relay)
    ctl.press("AI")
    ctl.submit("retail shop")
    ctl.press("Show Default Results")

    assert not ctl.tailored_content
    assert len(relay.prompts) == 1
    assert _texts(ctl)[-3] == "Here are benefits for retail shop:"
    assert ctl.state == S.CLOSING


def test_partial_text_kept_when_stream_fails():
    relay = ScriptedRelay(FakeHandle(["1. Half an ans"], error=RelayClientError("dropped")))
    ctl = _controller(tailored=True, relay=relay)
    ctl.press("Website")
    ctl.press("Never")
    assert _texts(ctl)[-2:] == ["1. Half an ans", script.CONNECTION_ISSUE]


def test_caller_settings_are_not_mutated():
    settings = WidgetSettings(tailored_content=True)
    ctl = ConversationController(settings, relay=ScriptedRelay(), open_url=lambda url: None)
    ctl.open()
    ctl.press("Website")
    ctl.press("Never")
    ctl.press("Show Default Results")
    assert not ctl.tailored_content
    assert settings.tailored_content


def test_close_cancels_active_stream():
    holder = {}
    handle = FakeHandle(["first", "second"], during=lambda: holder["ctl"].close())
    ctl = _controller(tailored=True, relay=ScriptedRelay(handle))
    holder["ctl"] = ctl
    ctl.press("Website")
    ctl.press("Never")

    assert handle.cancelled
    assert not ctl.is_open
    assert "second" not in "".join(_texts(ctl))
    assert script.CLOSING_QUESTION not in _texts(ctl)


def test_reopen_after_close_mid_stream_can_continue():
    holder = {}
    handle = FakeHandle(["first", "second"], during=lambda: holder["ctl"].close())
    relay = ScriptedRelay(handle, FakeHandle(["again"]))
    ctl = _controller(tailored=True, relay=relay)
    holder["ctl"] = ctl
    ctl.press("Website")
    ctl.press("Never")

    ctl.open()

    assert ctl.state == S.WEBSITE_IMPROVEMENTS
    assert _labels(ctl) == ["Try Again Now", "Show Default Results"]
    assert script.CONNECTION_ISSUE not in _texts(ctl)

    ctl.press("Try Again Now")

    assert _texts(ctl)[-2:] == ["again", script.CLOSING_QUESTION]
    assert ctl.state == S.CLOSING
    assert len(relay.prompts) == 2


def test_reopen_after_close_mid_stream_can_fall_back():
    holder = {}
    handle = FakeHandle(["first"], during=lambda: holder["ctl"].close())
    ctl = _controller(tailored=True, relay=ScriptedRelay(handle))
    holder["ctl"] = ctl
    ctl.press("AI")
    ctl.submit("bakery")
    ctl.open()

    ctl.press("Show Default Results")

    assert ctl.state == S.CLOSING
    assert _texts(ctl)[-3] == "Here are benefits for bakery:"


def test_restart_mid_stream_keeps_start_menu():
    holder = {}
    handle = FakeHandle(["first", "second"], during=lambda: holder["ctl"].restart())
    ctl = _controller(tailored=True, relay=ScriptedRelay(handle))
    holder["ctl"] = ctl
    ctl.press("Website")
    ctl.press("Never")

    assert handle.cancelled
    assert ctl.state == S.START
    assert _texts(ctl) == [script.GREETING]
    assert _labels(ctl) == ["Website", "AI", "Something else"]


def test_empty_stream_counts_as_relay_failure():
    relay = ScriptedRelay(FakeHandle([]), FakeHandle(["recovered"]))
    ctl = _controller(tailored=True, relay=relay)
    ctl.press("Website")
    ctl.press("Never")

    assert _texts(ctl)[-2:] == [script.WEBSITE_GENERATING, script.CONNECTION_ISSUE]
    assert _labels(ctl) == ["Try Again Now", "Show Default Results"]

    ctl.press("Try Again Now")

    assert _texts(ctl)[-3:] == [script.RETRYING, "recovered", script.CLOSING_QUESTION]


# ─────────────────────────────────────────────────────────────
# closing and contact
# ─────────────────────────────────────────────────────────────
@pytest.mark.parametrize("track,goodbye", [("website", script.WEBSITE_GOODBYE), ("ai", script.AI_GOODBYE)])
def test_decline_ends_conversation(track, goodbye):
    ctl = _controller()
    _to_closing(ctl, track)
    ctl.press("No")
    assert _texts(ctl)[-2:] == ["No", goodbye]
    assert ctl.controls == ()
    assert ctl.state == S.ENDED


def test_accept_opens_contact_page_and_form():
    ctl = _controller()
    _to_closing(ctl)
    ctl.press("Yes")
    assert ctl.opened == [CONTACT_URL]
    assert ctl.contact_accepted
    assert _texts(ctl)[-3:] == ["Yes", script.OPENING_CONTACT, script.CONTACT_PROMPT]
    assert [c.kind for c in ctl.controls] == [ControlKind.FORM]
    assert ctl.state == S.CONTACT


def test_contact_form_requires_email():
    ctl = _controller()
    _to_closing(ctl)
    ctl.press("Yes")
    before = _texts(ctl)

    ctl.submit_contact(name="Ada", email="   ")

    assert ctl.notice == script.CONTACT_EMAIL_REQUIRED
    assert _texts(ctl) == before
    assert ctl.contacts == []
    assert ctl.state == S.CONTACT


def test_contact_form_submission():
    ctl = _controller()
    _to_closing(ctl)
    ctl.press("Yes")
    ctl.submit_contact(name="", email="ada@example.com", note=" call me ")

    assert _texts(ctl)[-2:] == ["Contact: - | ada@example.com", script.CONTACT_THANKS]
    assert ctl.contacts == [{"name": "", "email": "ada@example.com", "note": "call me"}]
    assert _labels(ctl) == ["Start Over"]
    assert ctl.notice is None


# ─────────────────────────────────────────────────────────────
# restart and invalid input
# ─────────────────────────────────────────────────────────────
def _reach(ctl, state):
    if state == S.WEBSITE_AGE:
        ctl.press("Website")
    elif state == S.AI_BUSINESS:
        ctl.press("AI")
    elif state == S.WEBSITE_IMPROVEMENTS:
        ctl.press("Website")
        ctl.press("Never")
    elif state == S.CLOSING:
        _to_closing(ctl)
    elif state == S.CONTACT:
        _to_closing(ctl)
        ctl.press("Yes")
    elif state == S.ENDED:
        _to_closing(ctl)
        ctl.press("No")


@pytest.mark.parametrize(
    "state",
    [S.START, S.WEBSITE_AGE, S.AI_BUSINESS, S.WEBSITE_IMPROVEMENTS, S.CLOSING, S.CONTACT, S.ENDED],
)
def test_restart_from_any_state(state):
    # relay failures keep the tailored track parked on its retry prompt
    ctl = _controller(tailored=state == S.WEBSITE_IMPROVEMENTS)
    _reach(ctl, state)
    assert ctl.state == state

    ctl.restart()

    assert ctl.state == S.START
    assert _texts(ctl) == [script.GREETING]
    assert _labels(ctl) == ["Website", "AI", "Something else"]


def test_start_over_button_is_not_echoed():
    ctl = _controller()
    _to_closing(ctl)
    ctl.press("Start Over")
    assert _texts(ctl) == [script.GREETING]


def test_unavailable_events_are_rejected():
    ctl = _controller()
    with pytest.raises(InvalidTransition):
        ctl.dispatch("yes")
    with pytest.raises(InvalidTransition):
        ctl.press("Yes")
    with pytest.raises(InvalidTransition):
        ctl.submit("hello")
    with pytest.raises(InvalidTransition):
        ctl.dispatch("age", "20 years")
    assert ctl.state == S.START


def test_every_transition_action_exists():
    for (state, event), transition in TRANSITIONS.items():
        assert callable(getattr(ConversationController, transition.action, None)), (state, event)
