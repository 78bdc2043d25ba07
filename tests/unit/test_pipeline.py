"""
Module: tests/unit/test_pipeline.py

What:
    Walk the briefing state machine through every terminal state.

Why:
    Marking mail read is irreversible. These tests pin down that it happens
    only after a successful delivery (or when every unread message is
    self-authored) and that a failed delivery leaves the whole inbox unread.

How:
    Run :class:`TriagePipeline` with the file-backed store, the scripted LLM,
    and :class:`FakeMailGateway`; assert on the returned outcome and the
    gateway's recorded side effects.
"""

from datetime import datetime, timezone

import pytest
from fakes import RECIPIENT, FakeMailGateway, ScriptedLLM, make_message, make_thread

from mailbrief.config.schema import ServiceConfig
from mailbrief.core.pipeline import INBOX_QUERY, BriefingState, TriagePipeline, group_by_sender
from mailbrief.core.ranker import Ranker
from mailbrief.core.summarizer import API_ERROR_SENTINEL, Summarizer
from mailbrief.errors import QuotaExceeded, TransportError

NOW = datetime(2024, 3, 1, 17, 0, tzinfo=timezone.utc)


@pytest.fixture
def configured(store):
    store.save_snapshot(ServiceConfig(recipient_email=RECIPIENT, frequency_hours=12))
    return store


def _pipeline(store, gateway, llm, **kwargs):
    return TriagePipeline(
        store=store,
        gateway=gateway,
        summarizer=Summarizer(llm),
        ranker=Ranker(llm),
        clock=lambda: NOW,
        **kwargs,
    )


def test_no_recipient_aborts_silently(store, gateway):
    outcome = _pipeline(store, gateway, ScriptedLLM()).run()
    assert outcome.state is BriefingState.NO_RECIPIENT
    assert gateway.searches == []


def test_quota_exhausted_aborts_before_search(configured):
    gateway = FakeMailGateway(quota=0)
    outcome = _pipeline(configured, gateway, ScriptedLLM()).run()
    assert outcome.state is BriefingState.QUOTA_EXHAUSTED
    assert gateway.searches == []


def test_empty_inbox(configured, gateway):
    outcome = _pipeline(configured, gateway, ScriptedLLM()).run()
    assert outcome.state is BriefingState.INBOX_EMPTY
    assert gateway.searches == [(INBOX_QUERY, None)]
    assert gateway.sent == []


def test_self_only_marks_read_without_sending(configured, gateway):
    thread = make_thread("t1", make_message(f"Me <{RECIPIENT.upper()}>", "Note to self", thread_id="t1"))
    gateway.results[INBOX_QUERY] = [thread]
    llm = ScriptedLLM()

    outcome = _pipeline(configured, gateway, llm).run()

    assert outcome.state is BriefingState.SELF_ONLY
    assert gateway.sent == []
    assert gateway.marked_read == ["t1"]
    assert llm.calls == []


def test_delivered_briefing_groups_ranks_and_marks_everything_read(configured, gateway):
    alice_late = make_message("Alice <alice@example.com>", "Second", thread_id="t1", message_id="2", minutes=30)
    alice_early = make_message("alice@example.com", "First", thread_id="t2", message_id="3", minutes=5)
    bob = make_message("Bob <bob@example.com>", "Invoice", thread_id="t3", message_id="4")
    own = make_message(RECIPIENT, "My reply", thread_id="t1", message_id="5")
    gateway.results[INBOX_QUERY] = [
        make_thread("t1", alice_late, own),
        make_thread("t2", alice_early),
        make_thread("t3", bob),
    ]
    llm = ScriptedLLM("Summary two", "Summary one", "Summary bob", "bob@example.com,alice@example.com")

    outcome = _pipeline(configured, gateway, llm).run()

    assert outcome.state is BriefingState.DELIVERED
    assert (outcome.threads_fetched, outcome.groups, outcome.threads_marked_read) == (3, 2, 3)
    assert len(gateway.sent) == 1
    mail = gateway.sent[0]
    assert mail.to == RECIPIENT
    assert mail.subject == "✨ AI Smart Briefing - 3/1/2024, 12:00:00 PM"
    html = mail.html_body
    assert html.index("From: bob@example.com") < html.index("From: alice@example.com")
    assert html.index("First") < html.index("Second")
    assert "My reply" not in html
    assert "mailto:briefing@example.com?subject=" in html
    assert gateway.marked_read == ["t1", "t2", "t3"]


def test_already_read_messages_are_not_summarised(configured, gateway):
    thread = make_thread(
        "t1",
        make_message("old@example.com", "Old", thread_id="t1", message_id="1", unread=False),
        make_message("new@example.com", "New", thread_id="t1", message_id="2"),
    )
    gateway.results[INBOX_QUERY] = [thread]
    llm = ScriptedLLM("summary", "new@example.com")

    outcome = _pipeline(configured, gateway, llm).run()

    assert outcome.groups == 1
    assert "From: old@example.com" not in gateway.sent[0].html_body


def test_delivery_failure_leaves_everything_unread(configured, gateway):
    gateway.results[INBOX_QUERY] = [make_thread("t1", make_message("a@example.com", thread_id="t1"))]
    gateway.send_error = TransportError("relay refused")

    outcome = _pipeline(configured, gateway, ScriptedLLM("s", "a@example.com")).run()

    assert outcome.state is BriefingState.DELIVERY_FAILED
    assert gateway.marked_read == []


def test_quota_race_at_send_is_a_delivery_failure(configured, gateway):
    gateway.results[INBOX_QUERY] = [make_thread("t1", make_message("a@example.com", thread_id="t1"))]
    gateway.send_error = QuotaExceeded("spent")

    outcome = _pipeline(configured, gateway, ScriptedLLM("s", "a@example.com")).run()
    assert outcome.state is BriefingState.DELIVERY_FAILED
    assert gateway.marked_read == []


def test_mark_read_failure_does_not_stop_other_threads(configured, gateway):
    gateway.results[INBOX_QUERY] = [
        make_thread("t1", make_message("a@example.com", thread_id="t1")),
        make_thread("t2", make_message("b@example.com", thread_id="t2", message_id="2")),
        make_thread("t3", make_message("c@example.com", thread_id="t3", message_id="3")),
    ]
    gateway.failing_mark_read.add("t2")

    outcome = _pipeline(configured, gateway, ScriptedLLM(default="x@example.com")).run()

    assert outcome.state is BriefingState.DELIVERED
    assert gateway.marked_read == ["t1", "t3"]
    assert (outcome.threads_marked_read, outcome.mark_read_failures) == (2, 1)


def test_llm_outage_still_delivers_in_first_seen_order(configured, gateway):
    gateway.results[INBOX_QUERY] = [
        make_thread("t1", make_message("z@example.com", "Zed", thread_id="t1")),
        make_thread("t2", make_message("a@example.com", "Ay", thread_id="t2", message_id="2")),
    ]
    outage = TransportError("503", status_code=503)
    llm = ScriptedLLM(outage, outage, outage)

    outcome = _pipeline(configured, gateway, llm).run()

    html = gateway.sent[0].html_body
    assert outcome.state is BriefingState.DELIVERED
    assert html.count(API_ERROR_SENTINEL) == 2
    assert html.index("From: z@example.com") < html.index("From: a@example.com")


def test_include_unranked_keeps_groups_the_model_dropped(configured, gateway):
    gateway.results[INBOX_QUERY] = [
        make_thread("t1", make_message("a@example.com", "Ay", thread_id="t1")),
        make_thread("t2", make_message("b@example.com", "Bee", thread_id="t2", message_id="2")),
    ]
    llm = ScriptedLLM("s1", "s2", "b@example.com")

    _pipeline(configured, gateway, llm, include_unranked=True).run()

    html = gateway.sent[0].html_body
    assert html.index("From: b@example.com") < html.index("From: a@example.com")


def _two_senders(gateway):
    gateway.results[INBOX_QUERY] = [
        make_thread("t1", make_message("z@example.com", "Zed", thread_id="t1")),
        make_thread("t2", make_message("a@example.com", "Ay", thread_id="t2", message_id="2")),
    ]


def test_refusal_instead_of_ranking_still_lists_every_sender(configured, gateway):
    _two_senders(gateway)
    llm = ScriptedLLM("s1", "s2", "Sorry, I cannot rank these senders")

    outcome = _pipeline(configured, gateway, llm).run()

    html = gateway.sent[0].html_body
    assert outcome.state is BriefingState.DELIVERED
    assert html.index("From: z@example.com") < html.index("From: a@example.com")
    assert sorted(gateway.marked_read) == ["t1", "t2"]


def test_ranking_naming_no_sender_falls_back_to_first_seen(configured, gateway):
    class GhostRanker:
        def rank(self, groups):
            return ["ghost@example.com"]

    _two_senders(gateway)
    pipeline = TriagePipeline(
        store=configured,
        gateway=gateway,
        summarizer=Summarizer(ScriptedLLM("s1", "s2")),
        ranker=GhostRanker(),
        clock=lambda: NOW,
    )

    outcome = pipeline.run()

    html = gateway.sent[0].html_body
    assert outcome.state is BriefingState.DELIVERED
    assert html.index("From: z@example.com") < html.index("From: a@example.com")


def test_unreadable_state_file_aborts_silently(store, gateway):
    store.path.parent.mkdir(parents=True, exist_ok=True)
    store.path.write_text("recipientEmail: [unclosed\n")

    outcome = _pipeline(store, gateway, ScriptedLLM()).run()

    assert outcome.state is BriefingState.NO_RECIPIENT
    assert gateway.searches == []


def test_group_by_sender_orders_by_timestamp_and_first_seen():
    threads = [
        make_thread("t1", make_message("B <b@x.com>", "b-late", thread_id="t1", minutes=10)),
        make_thread(
            "t2",
            make_message("a@x.com", "a", thread_id="t2", message_id="2"),
            make_message("b@x.com", "b-early", thread_id="t2", message_id="3", minutes=1),
        ),
    ]
    groups = group_by_sender(threads, recipient=RECIPIENT, summarize=lambda body: body.upper())

    assert list(groups) == ["b@x.com", "a@x.com"]
    assert [item.subject for item in groups["b@x.com"]] == ["b-early", "b-late"]
    assert groups["a@x.com"][0].summary_text == "BODY OF A"
    assert groups["a@x.com"][0].link.endswith("#inbox/t2")
