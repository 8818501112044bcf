"""Tests for the orchestrator lifecycle using in-process backends."""

import asyncio

import pytest

from agent_teams.agents.dispatch import DispatchOutcome
from agent_teams.agents.worker import WorkerRole
from agent_teams.backend.echo import EchoBackend
from agent_teams.config.settings import Settings
from agent_teams.coordination.errors import (
    AuthenticationFailure,
    BackendError,
    BackendTimeout,
    CoordinationError,
    WorkerNotFound,
)
from agent_teams.orchestrator import AGENT_SHUTDOWN, AGENT_SPAWNED, Orchestrator
from conftest import FakeBackend


async def _wait_until(predicate, timeout=2.0):
    loop = asyncio.get_event_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def _orchestrator(settings, backend, router):
    return Orchestrator(settings=settings, backend=backend, router=router)


@pytest.mark.asyncio
async def test_create_lead(echo_settings, recording_router):
    backend = EchoBackend()
    orch = _orchestrator(echo_settings, backend, recording_router)
    await orch.start()

    lead = await orch.create_lead()

    assert lead.id == "lead"
    assert lead.role == WorkerRole.LEAD
    assert lead.model == echo_settings.model
    assert orch.get_worker("lead") is lead
    assert orch.get_bus().is_registered("lead")
    tool_names = {t.name for t in backend.sessions[0].config.tools}
    assert {"spawn_teammate", "shutdown_teammate", "send_message"} <= tool_names
    await orch.stop()


@pytest.mark.asyncio
async def test_submit_task_requires_lead(echo_settings, recording_router):
    orch = _orchestrator(echo_settings, EchoBackend(), recording_router)

    with pytest.raises(WorkerNotFound):
        await orch.submit_task("do something")


@pytest.mark.asyncio
async def test_submit_task_runs_a_lead_turn(echo_settings, recording_router):
    backend = EchoBackend()
    orch = _orchestrator(echo_settings, backend, recording_router)
    await orch.start()
    lead = await orch.create_lead()

    outcome = await orch.submit_task("Summarize the repo")

    assert outcome == DispatchOutcome.COMPLETED
    assert backend.sessions[0].prompts == ["Summarize the repo"]
    assert lead.turn_count == 1
    assert lead.busy is False
    await orch.stop()


@pytest.mark.asyncio
async def test_spawn_teammate_sends_initial_prompt(echo_settings, recording_router):
    backend = EchoBackend()
    orch = _orchestrator(echo_settings, backend, recording_router)
    await orch.start()
    await orch.create_lead()
    spawned = []
    orch.bus.events.subscribe(AGENT_SPAWNED, lambda w: spawned.append(w.id))

    mate = await orch.spawn_teammate("alice", "researcher", "Look into caching", model="haiku")

    assert mate.id == "teammate-1-alice"
    assert mate.model == "haiku"
    assert mate.specialty == "researcher"
    assert spawned == ["teammate-1-alice"]
    session = backend.sessions[1]
    await _wait_until(lambda: session.prompts)
    assert session.prompts == ["Look into caching"]
    assert [w.id for w in orch.get_all_workers()] == ["lead", "teammate-1-alice"]
    await orch.stop()


@pytest.mark.asyncio
async def test_teammate_ids_are_unique(echo_settings, recording_router):
    orch = _orchestrator(echo_settings, EchoBackend(), recording_router)
    await orch.start()
    await orch.create_lead()

    first = await orch.spawn_teammate("dev", "backend", "A")
    second = await orch.spawn_teammate("dev", "frontend", "B")

    assert first.id != second.id
    assert second.model == echo_settings.teammate_model
    await orch.stop()


@pytest.mark.asyncio
async def test_non_english_teammate_gets_language_directive(recording_router):
    settings = Settings(backend="echo", poll_interval=0.01, language="ja", _env_file=None)
    backend = EchoBackend()
    orch = _orchestrator(settings, backend, recording_router)
    await orch.start()
    await orch.create_lead()

    await orch.spawn_teammate("yui", "writer", "Write the intro")

    session = backend.sessions[1]
    await _wait_until(lambda: session.prompts)
    assert session.prompts[0].startswith("[SYSTEM] You MUST respond and work entirely in Japanese")
    assert session.prompts[0].endswith("Write the intro")
    await orch.stop()


@pytest.mark.asyncio
async def test_language_detected_from_first_task(recording_router):
    settings = Settings(backend="echo", poll_interval=0.01, language="auto", _env_file=None)
    backend = EchoBackend()
    orch = _orchestrator(settings, backend, recording_router)
    await orch.start()
    await orch.create_lead()

    await orch.submit_task("コードをレビューしてください")

    assert orch.language == "ja"
    assert "SAME language" in backend.sessions[0].prompts[0]
    await orch.stop()


@pytest.mark.asyncio
async def test_mail_is_delivered_by_the_poller(echo_settings, recording_router):
    backend = EchoBackend()
    orch = _orchestrator(echo_settings, backend, recording_router)
    await orch.start()
    await orch.create_lead()
    mate = await orch.spawn_teammate("alice", "researcher", "Start")
    session = backend.sessions[1]
    await _wait_until(lambda: session.prompts)

    orch.bus.send_message("lead", mate.id, "Please also check the tests")

    await _wait_until(lambda: len(session.prompts) == 2)
    assert "[Message from lead]: Please also check the tests" in session.prompts[1]
    await orch.stop()


@pytest.mark.asyncio
async def test_shutdown_agent(echo_settings, recording_router, recording_sink):
    backend = EchoBackend()
    orch = _orchestrator(echo_settings, backend, recording_router)
    await orch.start()
    await orch.create_lead()
    mate = await orch.spawn_teammate("alice", "researcher", "Start")
    gone = []
    orch.bus.events.subscribe(AGENT_SHUTDOWN, lambda w: gone.append(w.id))

    await orch.shutdown_agent(mate.id)

    assert orch.get_worker(mate.id) is None
    assert not orch.bus.is_registered(mate.id)
    assert not orch.poller.is_polling(mate.id)
    assert backend.sessions[1].destroyed
    assert mate.id not in recording_sink.channels
    assert gone == [mate.id]
    await orch.stop()


@pytest.mark.asyncio
async def test_shutdown_agent_errors(echo_settings, recording_router):
    orch = _orchestrator(echo_settings, EchoBackend(), recording_router)
    await orch.start()
    await orch.create_lead()

    with pytest.raises(WorkerNotFound):
        await orch.shutdown_agent("teammate-9-nobody")
    with pytest.raises(CoordinationError):
        await orch.shutdown_agent("lead")
    await orch.stop()


@pytest.mark.asyncio
async def test_stop_clears_everything(echo_settings, recording_router, recording_sink):
    backend = FakeBackend()
    orch = _orchestrator(echo_settings, backend, recording_router)
    await orch.start()
    await orch.create_lead()
    await orch.spawn_teammate("alice", "researcher", "Start")
    orch.bus.create_task("A", "lead")

    await orch.stop()
    await orch.stop()

    assert orch.get_all_workers() == []
    assert orch.bus.list_tasks() == []
    assert orch.bus.registered_agents() == []
    assert all(s.destroyed for s in backend.sessions.values())
    assert recording_sink.channels == {}
    assert backend.stopped
    assert orch.running is False


@pytest.mark.asyncio
async def test_wait_for_completion(echo_settings, recording_router):
    orch = _orchestrator(echo_settings, EchoBackend(), recording_router)
    await orch.start()
    await orch.create_lead()

    assert await orch.wait_for_completion(timeout=1.0, check_interval=0.01) is True

    task = orch.bus.create_task("Open work", "lead")
    assert await orch.wait_for_completion(timeout=0.05, check_interval=0.01) is False

    orch.bus.claim_task(task.id, "lead")
    orch.bus.complete_task(task.id, "lead", "done")
    assert await orch.wait_for_completion(timeout=1.0, check_interval=0.01) is True
    await orch.stop()


@pytest.mark.asyncio
async def test_failed_initial_prompt_notifies_lead(recording_router):
    settings = Settings(backend="echo", poll_interval=60.0, language="en", _env_file=None)
    backend = FakeBackend(errors={"alice": BackendError("model overloaded")})
    orch = _orchestrator(settings, backend, recording_router)
    await orch.start()
    await orch.create_lead()

    await orch.spawn_teammate("alice", "researcher", "Start")

    await _wait_until(lambda: orch.bus.has_unread_messages("lead"))
    [msg] = orch.bus.read_messages("lead")
    assert msg.sender == "teammate-1-alice"
    assert 'Teammate "alice" failed to initialize' in msg.content
    await orch.stop()


@pytest.mark.asyncio
async def test_auth_failures_are_collected(echo_settings, recording_router):
    backend = FakeBackend(errors={"Lead": AuthenticationFailure("401 invalid api key")})
    orch = _orchestrator(echo_settings, backend, recording_router)
    await orch.start()
    await orch.create_lead()

    outcome = await orch.submit_task("anything")

    assert outcome == DispatchOutcome.FAILED
    assert len(orch.auth_failures) == 1
    assert isinstance(orch.auth_failures[0], AuthenticationFailure)
    await orch.stop()


@pytest.mark.asyncio
async def test_session_creation_timeout(recording_router):
    settings = Settings(backend="echo", session_timeout=0.01, language="en", _env_file=None)
    orch = _orchestrator(settings, FakeBackend(create_delay=1.0), recording_router)

    with pytest.raises(BackendTimeout):
        await orch.create_lead()

    assert not orch.bus.is_registered("lead")
    assert orch.get_all_workers() == []


@pytest.mark.asyncio
async def test_lead_tool_spawns_teammate(echo_settings, recording_router):
    backend = EchoBackend()
    orch = _orchestrator(echo_settings, backend, recording_router)
    await orch.start()
    await orch.create_lead()
    spawn = next(t for t in backend.sessions[0].config.tools if t.name == "spawn_teammate")

    result = await spawn.invoke({"name": "bob", "role": "tester", "prompt": "Write tests"})

    assert result["success"] is True
    assert orch.get_worker(result["teammate_id"]).name == "bob"
    await orch.stop()
