"""Tests for output routing, the shared-stream sink and status rendering."""

import io

import pytest
from rich.console import Console

from agent_teams.agents.worker import ManagedWorker, WorkerRole
from agent_teams.backend.base import SessionConfig
from agent_teams.backend.echo import EchoSession
from agent_teams.coordination.message_bus import MessageBus
from agent_teams.output import display
from agent_teams.output.router import OutputRouter, PaneOutputSink, StreamOutputSink, create_router
from agent_teams.output.tmux import TmuxManager


def test_prefix_once_per_line_across_chunks(console_buffer):
    console, buffer = console_buffer
    sink = StreamOutputSink(console)

    for chunk in ("hel", "lo\nwor", "ld\n"):
        sink.write("alpha", "alpha", chunk)

    assert buffer.getvalue().splitlines() == ["[alpha] hello", "[alpha] world"]


def test_interleaved_workers_keep_their_own_line_state(console_buffer):
    console, buffer = console_buffer
    sink = StreamOutputSink(console)

    sink.write("a", "alpha", "one\n")
    sink.write("b", "beta", "two\n")
    sink.write("a", "alpha", "three\n")

    assert buffer.getvalue().splitlines() == ["[alpha] one", "[beta] two", "[alpha] three"]


def test_end_turn_starts_a_new_line(console_buffer):
    console, buffer = console_buffer
    sink = StreamOutputSink(console)

    sink.write("a", "alpha", "partial")
    sink.end_turn("a", "alpha")
    sink.write("a", "alpha", "next\n")

    assert buffer.getvalue().splitlines() == ["[alpha] partial", "[alpha] next"]


def test_stream_sink_has_no_channels(console_buffer):
    console, _ = console_buffer
    sink = StreamOutputSink(console)
    sink.create_channel("a", "alpha", "teammate", None)

    assert sink.has_channel("a") is False


def test_write_status_rejects_unknown_status(stream_router):
    with pytest.raises(ValueError):
        stream_router.write_status("a", "sleeping")


def test_status_and_title_skipped_without_channel(recording_router, recording_sink):
    recording_router.write_status("ghost", "working")
    recording_router.update_title("ghost", "⏳")

    assert recording_sink.statuses == []
    assert recording_sink.titles == []


@pytest.mark.asyncio
async def test_streaming_listeners_forward_deltas(recording_router, recording_sink):
    worker = ManagedWorker(id="alpha", name="alpha", role=WorkerRole.TEAMMATE)
    session = EchoSession(SessionConfig(worker_id="alpha", name="alpha", model="sonnet"), chunk_size=4)
    recording_router.attach_streaming_listeners(session, worker)

    await session.send_and_wait("hi")

    text = "".join(t for worker_id, t in recording_sink.writes if worker_id == "alpha")
    assert text == "[alpha] received: hi\n"
    assert recording_sink.turns_ended == ["alpha"]


@pytest.mark.asyncio
async def test_streaming_disabled_writes_nothing(recording_sink):
    router = OutputRouter(recording_sink, streaming=False)
    worker = ManagedWorker(id="alpha", name="alpha", role=WorkerRole.TEAMMATE)
    session = EchoSession(SessionConfig(worker_id="alpha", name="alpha", model="sonnet"))
    router.attach_streaming_listeners(session, worker)

    await session.send_and_wait("hi")

    assert recording_sink.writes == []
    assert recording_sink.turns_ended == []


def test_create_router_outside_tmux_uses_stream_sink():
    router = create_router(TmuxManager(available=False), console=Console(file=io.StringIO()))

    assert isinstance(router.sink, StreamOutputSink)


def test_pane_sink_falls_back_for_workers_without_pane(console_buffer):
    console, buffer = console_buffer
    tmux = TmuxManager(available=False)
    sink = PaneOutputSink(tmux, StreamOutputSink(console))

    sink.create_channel("a", "alpha", "teammate", None)
    sink.write("a", "alpha", "hello\n")

    assert not sink.has_channel("a")
    assert buffer.getvalue().splitlines() == ["[alpha] hello"]


def test_render_status_lists_workers_and_tasks():
    bus = MessageBus()
    bus.register_agent("lead")
    task = bus.create_task("Write the report", "lead")
    bus.claim_task(task.id, "lead")
    lead = ManagedWorker(id="lead", name="Lead", role=WorkerRole.LEAD, model="opus", busy=True)

    out = io.StringIO()
    Console(file=out, width=160, color_system=None).print(
        display.render_status([lead], bus.list_tasks())
    )
    rendered = out.getvalue()

    assert "Active Agents" in rendered
    assert "BUSY" in rendered
    assert "Write the report" in rendered
    assert "in-progress" in rendered
    assert "1 busy" in rendered


def test_notifications_escape_markup():
    text = display.notify_agent_spawned("[evil]", "reviewer", "sonnet")

    assert "\\[evil]" in text
