"""Tests for the team tools exposed to backend sessions."""

import pytest

from agent_teams.agents.tools import create_agent_tools, create_lead_tools
from agent_teams.coordination.message_bus import TaskStatus


def _tools(bus, agent_id):
    return {tool.name: tool for tool in create_agent_tools(agent_id, bus)}


@pytest.fixture
def team(bus):
    for agent_id in ("lead", "alice", "bob"):
        bus.register_agent(agent_id)
    return bus


def test_tool_catalogue(team):
    names = set(_tools(team, "alice"))

    assert names == {
        "send_message", "broadcast", "read_messages", "create_task", "claim_task",
        "complete_task", "fail_task", "list_tasks", "list_teammates",
    }


def test_parameters_are_json_schema(team):
    schema = _tools(team, "alice")["send_message"].parameters

    assert schema["type"] == "object"
    assert set(schema["required"]) == {"to", "content"}


@pytest.mark.asyncio
async def test_send_and_read_messages(team):
    alice, bob = _tools(team, "alice"), _tools(team, "bob")

    sent = await alice["send_message"].invoke({"to": "bob", "content": "found a bug"})
    received = await bob["read_messages"].invoke({})
    empty = await bob["read_messages"].invoke({})

    assert sent["success"] is True
    assert received["messages"][0]["from"] == "alice"
    assert received["messages"][0]["content"] == "found a bug"
    assert empty == {"messages": [], "note": "No unread messages."}


@pytest.mark.asyncio
async def test_send_to_unknown_agent_reports_failure(team):
    result = await _tools(team, "alice")["send_message"].invoke({"to": "carol", "content": "hi"})

    assert result["success"] is False
    assert "carol" in result["error"]


@pytest.mark.asyncio
async def test_broadcast(team):
    result = await _tools(team, "lead")["broadcast"].invoke({"content": "kickoff"})

    assert result["success"] is True
    assert [m.content for m in team.read_messages("alice")] == ["kickoff"]
    assert team.read_messages("lead") == []


@pytest.mark.asyncio
async def test_invalid_arguments_return_structured_failure(team):
    result = await _tools(team, "alice")["send_message"].invoke({"to": "bob"})

    assert result["success"] is False
    assert "Invalid arguments for send_message" in result["error"]


@pytest.mark.asyncio
async def test_task_workflow_through_tools(team):
    lead, alice = _tools(team, "lead"), _tools(team, "alice")

    first = await lead["create_task"].invoke({"description": "Research"})
    second = await lead["create_task"].invoke(
        {"description": "Write", "depends_on": [first["task_id"]]}
    )

    blocked = await alice["claim_task"].invoke({"task_id": second["task_id"]})
    assert blocked["success"] is False
    assert "blocked" in blocked["error"]

    claimed = await alice["claim_task"].invoke({"task_id": first["task_id"]})
    assert claimed["task"]["description"] == "Research"

    done = await alice["complete_task"].invoke({"task_id": first["task_id"], "result": "notes"})
    assert done == {"success": True}

    listing = await alice["list_tasks"].invoke({"status": "completed"})
    assert [t["id"] for t in listing["tasks"]] == [first["task_id"]]
    assert listing["tasks"][0]["result"] == "notes"


@pytest.mark.asyncio
async def test_create_task_with_unknown_dependency(team):
    result = await _tools(team, "lead")["create_task"].invoke(
        {"description": "Write", "depends_on": ["task-9"]}
    )

    assert result["success"] is False


@pytest.mark.asyncio
async def test_complete_task_by_non_assignee_fails(team):
    task = team.create_task("Review", "lead")
    team.claim_task(task.id, "alice")

    result = await _tools(team, "bob")["complete_task"].invoke({"task_id": task.id, "result": "x"})

    assert result["success"] is False
    assert team.get_task(task.id).status == TaskStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_fail_task(team):
    task = team.create_task("Deploy", "lead")

    result = await _tools(team, "alice")["fail_task"].invoke({"task_id": task.id, "reason": "no access"})

    assert result == {"success": True}
    assert team.get_task(task.id).status == TaskStatus.FAILED


@pytest.mark.asyncio
async def test_list_tasks_rejects_unknown_status(team):
    result = await _tools(team, "alice")["list_tasks"].invoke({"status": "someday"})

    assert result["success"] is False


@pytest.mark.asyncio
async def test_list_teammates_excludes_caller(team):
    result = await _tools(team, "alice")["list_teammates"].invoke()

    assert result == {"teammates": ["lead", "bob"], "your_id": "alice"}


@pytest.mark.asyncio
async def test_lead_tools_call_back_into_coordinator():
    spawned, shut_down = [], []

    async def on_spawn(name, role, prompt, model):
        spawned.append((name, role, prompt, model))
        return f"teammate-1-{name}"

    async def on_shutdown(teammate_id):
        shut_down.append(teammate_id)

    tools = {t.name: t for t in create_lead_tools("lead", on_spawn, on_shutdown)}

    result = await tools["spawn_teammate"].invoke(
        {"name": "reviewer", "role": "security review", "prompt": "Review auth.py"}
    )
    assert result == {"success": True, "teammate_id": "teammate-1-reviewer", "model": "default"}
    assert spawned == [("reviewer", "security review", "Review auth.py", None)]

    assert await tools["shutdown_teammate"].invoke({"teammate_id": "teammate-1-reviewer"}) == {"success": True}
    assert shut_down == ["teammate-1-reviewer"]


@pytest.mark.asyncio
async def test_lead_tool_errors_become_failures():
    async def on_spawn(name, role, prompt, model):
        raise RuntimeError("backend down")

    async def on_shutdown(teammate_id):
        raise KeyError(teammate_id)

    tools = {t.name: t for t in create_lead_tools("lead", on_spawn, on_shutdown)}

    spawn = await tools["spawn_teammate"].invoke({"name": "x", "role": "y", "prompt": "z"})
    shutdown = await tools["shutdown_teammate"].invoke({"teammate_id": "nobody"})

    assert spawn == {"success": False, "error": "backend down"}
    assert shutdown["success"] is False
