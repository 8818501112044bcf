"""
Team tools: the operations a worker's backend session may call to talk to the
rest of the team through the MessageBus.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, Field, ValidationError

from ..config.models import AVAILABLE_MODELS
from ..coordination.errors import CoordinationError
from ..coordination.message_bus import BROADCAST, MessageBus, TaskStatus

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Awaitable[Dict[str, Any]]]


@dataclass
class AgentTool:
    """A named operation with pydantic-validated arguments."""
    name: str
    description: str
    params: Type[BaseModel]
    handler: ToolHandler

    @property
    def parameters(self) -> Dict[str, Any]:
        """JSON schema of the arguments, for backends that advertise tools."""
        return self.params.model_json_schema()

    async def invoke(self, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Validate arguments and run the handler.

        Invalid arguments come back as a structured failure instead of raising,
        so the calling session always gets a result it can read.
        """
        try:
            args = self.params.model_validate(arguments or {})
        except ValidationError as e:
            return {"success": False, "error": f"Invalid arguments for {self.name}: {e}"}
        return await self.handler(**args.model_dump())


# Argument models

class NoArgs(BaseModel):
    pass


class SendMessageArgs(BaseModel):
    to: str = Field(description="The agent ID to send the message to")
    content: str = Field(description="The message content")


class BroadcastArgs(BaseModel):
    content: str = Field(description="The message to broadcast")


class CreateTaskArgs(BaseModel):
    description: str = Field(description="What needs to be done")
    assignee: Optional[str] = Field(
        default=None, description="Agent ID to assign the task to (leave empty for unassigned)"
    )
    depends_on: List[str] = Field(
        default_factory=list, description="Task IDs that must complete before this task can start"
    )


class ClaimTaskArgs(BaseModel):
    task_id: str = Field(description="The ID of the task to claim")


class CompleteTaskArgs(BaseModel):
    task_id: str = Field(description="The ID of the task to complete")
    result: str = Field(description="Summary of what was accomplished")


class FailTaskArgs(BaseModel):
    task_id: str = Field(description="The ID of the task that failed")
    reason: str = Field(description="Why the task could not be finished")


class ListTasksArgs(BaseModel):
    status: Optional[TaskStatus] = Field(default=None, description="Filter by status")


class SpawnTeammateArgs(BaseModel):
    name: str = Field(description="A short identifier for the teammate (e.g., 'security-reviewer')")
    role: str = Field(description="The role/specialty of this teammate")
    prompt: str = Field(description="Detailed instructions for what this teammate should work on")
    model: Optional[str] = Field(
        default=None,
        description="Model for this teammate: " + ", ".join(AVAILABLE_MODELS),
    )


class ShutdownTeammateArgs(BaseModel):
    teammate_id: str = Field(description="The agent ID of the teammate to shut down")


def create_agent_tools(agent_id: str, bus: MessageBus) -> List[AgentTool]:
    """
    Build the communication and task tools for one agent.
    Each handler is bound to ``agent_id`` and the shared bus.
    """

    async def send_message(to: str, content: str) -> Dict[str, Any]:
        logger.info("[%s] send_message -> %s: %s", agent_id, to, content[:120])
        try:
            msg = bus.send_message(agent_id, to, content)
        except CoordinationError as e:
            logger.error("[%s] send_message failed: %s", agent_id, e)
            return {"success": False, "error": str(e)}
        return {"success": True, "message_id": msg.id}

    async def broadcast(content: str) -> Dict[str, Any]:
        logger.info("[%s] broadcast: %s", agent_id, content[:120])
        msg = bus.send_message(agent_id, BROADCAST, content)
        return {"success": True, "message_id": msg.id}

    async def read_messages() -> Dict[str, Any]:
        msgs = bus.read_messages(agent_id)
        logger.info("[%s] read_messages: %d unread", agent_id, len(msgs))
        if not msgs:
            return {"messages": [], "note": "No unread messages."}
        return {
            "messages": [
                {"from": m.sender, "content": m.content, "timestamp": m.timestamp.isoformat()}
                for m in msgs
            ]
        }

    async def create_task(description: str, assignee: Optional[str],
                          depends_on: List[str]) -> Dict[str, Any]:
        logger.info("[%s] create_task: %r -> %s", agent_id, description[:80], assignee or "unassigned")
        try:
            task = bus.create_task(description, agent_id, assignee=assignee, depends_on=depends_on)
        except CoordinationError as e:
            logger.warning("[%s] create_task failed: %s", agent_id, e)
            return {"success": False, "error": str(e)}
        return {"success": True, "task_id": task.id}

    async def claim_task(task_id: str) -> Dict[str, Any]:
        logger.info("[%s] claim_task: %s", agent_id, task_id)
        try:
            task = bus.claim_task(task_id, agent_id)
        except CoordinationError as e:
            logger.warning("[%s] claim_task failed: %s", agent_id, e)
            return {"success": False, "error": str(e)}
        return {"success": True, "task": {"id": task.id, "description": task.description}}

    async def complete_task(task_id: str, result: str) -> Dict[str, Any]:
        logger.info("[%s] complete_task: %s - %s", agent_id, task_id, result[:120])
        try:
            bus.complete_task(task_id, agent_id, result)
        except CoordinationError as e:
            logger.error("[%s] complete_task failed: %s", agent_id, e)
            return {"success": False, "error": str(e)}
        return {"success": True}

    async def fail_task(task_id: str, reason: str) -> Dict[str, Any]:
        logger.info("[%s] fail_task: %s - %s", agent_id, task_id, reason[:120])
        try:
            bus.fail_task(task_id, agent_id, reason)
        except CoordinationError as e:
            logger.error("[%s] fail_task failed: %s", agent_id, e)
            return {"success": False, "error": str(e)}
        return {"success": True}

    async def list_tasks(status: Optional[TaskStatus]) -> Dict[str, Any]:
        tasks = bus.list_tasks(status=status)
        logger.debug("[%s] list_tasks(%s): %d tasks", agent_id, status.value if status else "all", len(tasks))
        return {"tasks": [t.to_dict() for t in tasks]}

    async def list_teammates() -> Dict[str, Any]:
        teammates = [a for a in bus.registered_agents() if a != agent_id]
        logger.debug("[%s] list_teammates: %s", agent_id, ", ".join(teammates))
        return {"teammates": teammates, "your_id": agent_id}

    return [
        AgentTool(
            "send_message",
            "Send a direct message to another teammate. Use this to share findings, "
            "ask questions, or coordinate work.",
            SendMessageArgs, send_message,
        ),
        AgentTool(
            "broadcast",
            "Broadcast a message to ALL teammates. Prefer send_message for targeted communication.",
            BroadcastArgs, broadcast,
        ),
        AgentTool(
            "read_messages",
            "Read unread messages from your mailbox.",
            NoArgs, read_messages,
        ),
        AgentTool(
            "create_task",
            "Create a new task on the shared task list. Optionally assign it to a teammate "
            "and list the task IDs it depends on.",
            CreateTaskArgs, create_task,
        ),
        AgentTool(
            "claim_task",
            "Claim a pending task from the shared task list. The task will be assigned to you.",
            ClaimTaskArgs, claim_task,
        ),
        AgentTool(
            "complete_task",
            "Mark a task you are working on as completed and provide the result.",
            CompleteTaskArgs, complete_task,
        ),
        AgentTool(
            "fail_task",
            "Mark a task as failed and explain why.",
            FailTaskArgs, fail_task,
        ),
        AgentTool(
            "list_tasks",
            "View the shared task list with each task's status and assignee.",
            ListTasksArgs, list_tasks,
        ),
        AgentTool(
            "list_teammates",
            "List all currently registered teammates so you know who you can talk to.",
            NoArgs, list_teammates,
        ),
    ]


def create_lead_tools(
    agent_id: str,
    on_spawn_teammate: Callable[[str, str, str, Optional[str]], Awaitable[str]],
    on_shutdown_teammate: Callable[[str], Awaitable[None]],
) -> List[AgentTool]:
    """Extra tools that only the lead gets: spawning and shutting down teammates."""

    async def spawn_teammate(name: str, role: str, prompt: str, model: Optional[str]) -> Dict[str, Any]:
        logger.info("[%s] spawn_teammate: %r (%s) [model: %s]", agent_id, name, role, model or "default")
        try:
            teammate_id = await on_spawn_teammate(name, role, prompt, model)
        except Exception as e:
            logger.error("[%s] spawn_teammate failed: %s", agent_id, e)
            return {"success": False, "error": str(e)}
        return {"success": True, "teammate_id": teammate_id, "model": model or "default"}

    async def shutdown_teammate(teammate_id: str) -> Dict[str, Any]:
        logger.info("[%s] shutdown_teammate: %s", agent_id, teammate_id)
        try:
            await on_shutdown_teammate(teammate_id)
        except Exception as e:
            logger.error("[%s] shutdown_teammate failed: %s", agent_id, e)
            return {"success": False, "error": str(e)}
        return {"success": True}

    return [
        AgentTool(
            "spawn_teammate",
            "Spawn a new teammate agent with a role and initial instructions. "
            "Only the team lead can do this. Choose the model that fits the task.",
            SpawnTeammateArgs, spawn_teammate,
        ),
        AgentTool(
            "shutdown_teammate",
            "Shut down a teammate that has finished its work.",
            ShutdownTeammateArgs, shutdown_teammate,
        ),
    ]
