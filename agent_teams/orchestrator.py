"""
Main Orchestrator - creates the lead, spawns teammates and wires the message
bus, dispatch gate, poller and output router together.
"""
import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional, Set

import typer
from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.panel import Panel

from .agents.dispatch import DispatchGate, DispatchOutcome
from .agents.prompts import build_system_message
from .agents.tools import create_agent_tools, create_lead_tools
from .agents.worker import ManagedWorker, WorkerRole
from .backend.base import Backend, SessionConfig
from .backend.claude_cli import ClaudeCliBackend
from .backend.echo import EchoBackend
from .config.language import detect_language, language_display_name
from .config.log import configure_logging
from .config.settings import Settings
from .coordination import events
from .coordination.errors import (
    AuthenticationFailure,
    BackendError,
    BackendTimeout,
    CoordinationError,
    WorkerNotFound,
)
from .coordination.message_bus import MessageBus
from .coordination.poller import MessagePoller
from .output import display
from .output.router import OutputRouter, create_router
from .output.tmux import TmuxManager

logger = logging.getLogger(__name__)

console = Console()

LEAD_ID = "lead"

# Orchestrator-level events, published on the bus's event hub
AGENT_SPAWNED = "agent:spawned"
AGENT_SHUTDOWN = "agent:shutdown"


def create_backend(settings: Settings) -> Backend:
    """Instantiate the backend selected in settings."""
    if settings.backend == "echo":
        return EchoBackend()
    return ClaudeCliBackend(binary=settings.claude_binary, allowed_tools=settings.claude_tools)


class Orchestrator:
    """
    Owns the workers of one team and exposes the team lifecycle.

    Everything runs on a single asyncio event loop. The orchestrator never
    blocks on a teammate: initial prompts and polled mail are dispatched as
    background tasks.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        backend: Optional[Backend] = None,
        router: Optional[OutputRouter] = None,
        console: Optional[Console] = None,
    ):
        """
        Args:
            settings: Configuration (defaults from environment / .env)
            backend: Backend that creates worker sessions
            router: Output router; picked from tmux availability when omitted
            console: Console used by the shared-stream sink
        """
        self.settings = settings or Settings()
        self.backend = backend or create_backend(self.settings)
        self.bus = MessageBus()
        self.tmux: Optional[TmuxManager] = None
        if router is None:
            self.tmux = TmuxManager()
            router = create_router(self.tmux, self.settings.streaming, console)
        self.router = router

        self.gate = DispatchGate(
            self.router,
            max_turns=self.settings.max_turns_per_agent,
            on_auth_failure=self._on_auth_failure,
        )
        self.poller = MessagePoller(self.bus, self.gate.dispatch, self.settings.poll_interval)

        self.workers: Dict[str, ManagedWorker] = {}
        self.agent_counter = 0
        self.auth_failures: List[AuthenticationFailure] = []
        self.language: Optional[str] = None
        if self.settings.language != "auto":
            self.language = self.settings.language
        self.running = False
        self._background: Set[asyncio.Task] = set()

    # Lifecycle

    async def start(self):
        """Check the backend is usable. Raises BackendError otherwise."""
        logger.info("Starting %s backend...", self.backend.name)
        try:
            await self.backend.check_ready()
        except BackendError as e:
            logger.error("Failed to start backend: %s", e)
            raise
        self.running = True
        if self.tmux is not None:
            self.tmux.set_main_pane_title("@main")
        logger.info("Backend ready.")

    async def stop(self):
        """
        Stop timers, destroy every session, close output channels and clear
        all state. Safe to call more than once.
        """
        self.running = False
        logger.info("Shutting down all agents...")

        self.poller.stop_all()

        errors = []
        for worker in list(self.workers.values()):
            try:
                await worker.session.destroy()
            except Exception as e:
                errors.append(e)
                logger.debug("Error destroying session for %s: %s", worker.id, e)
        self.workers.clear()

        self.router.close_all()
        await self.backend.stop()
        self.bus.reset()
        logger.info("Orchestrator stopped. (%d cleanup errors)", len(errors))

    # Agent management

    async def create_lead(self, model: Optional[str] = None) -> ManagedWorker:
        """Create the lead worker. Must be called before submit_task()."""
        worker = ManagedWorker(id=LEAD_ID, name="Lead", role=WorkerRole.LEAD)
        return await self._create_worker(worker, model or self.settings.model)

    async def spawn_teammate(self, name: str, role: str, initial_prompt: str,
                             model: Optional[str] = None) -> ManagedWorker:
        """
        Create a teammate and send its initial prompt without waiting for it.

        Args:
            name: Short display name
            role: Specialty of the teammate
            initial_prompt: Instructions for the first turn
            model: Backend model; defaults to the teammate model setting

        Returns:
            The new worker
        """
        self.agent_counter += 1
        worker = ManagedWorker(
            id=f"teammate-{self.agent_counter}-{name}",
            name=name,
            role=WorkerRole.TEAMMATE,
            specialty=role,
        )
        selected_model = model or self.settings.teammate_model
        if model:
            logger.info('Lead chose model "%s" for teammate "%s" (%s)', model, name, role)
        else:
            logger.info('Using default teammate model "%s" for "%s" (%s)', selected_model, name, role)

        worker = await self._create_worker(worker, selected_model)

        prompt = initial_prompt
        if self.language and self.language != "en":
            lang = language_display_name(self.language)
            prompt = (
                f"[SYSTEM] You MUST respond and work entirely in {lang}. "
                f"All output, messages, and task results MUST be in {lang}.\n\n{initial_prompt}"
            )

        logger.info('Teammate "%s" spawned. Sending initial prompt (async)...', name)
        self._spawn_background(self._send_initial_prompt(worker, prompt))
        return worker

    async def shutdown_agent(self, worker_id: str):
        """Stop a teammate's polling, destroy its session and drop its mailbox."""
        worker = self.workers.get(worker_id)
        if worker is None:
            raise WorkerNotFound(worker_id)
        if worker.is_lead:
            raise CoordinationError("Cannot shut down the lead agent")

        self.poller.stop_polling(worker_id)
        self.workers.pop(worker_id)
        try:
            await worker.session.destroy()
        finally:
            self.bus.unregister_agent(worker_id)
            self.router.close_channel(worker_id)
        logger.info('Agent "%s" shut down.', worker.name)
        self.bus.events.emit(AGENT_SHUTDOWN, worker)

    async def _create_worker(self, worker: ManagedWorker, model: str) -> ManagedWorker:
        worker.model = model
        self.bus.register_agent(worker.id)
        team_size = len(self.workers) + 1

        tools = create_agent_tools(worker.id, self.bus)
        if worker.is_lead:
            tools += create_lead_tools(
                worker.id,
                on_spawn_teammate=self._spawn_from_tool,
                on_shutdown_teammate=self.shutdown_agent,
            )

        config = SessionConfig(
            worker_id=worker.id,
            name=worker.name,
            model=model,
            system_message=build_system_message(worker, team_size, self.language),
            tools=tools,
            streaming=self.settings.streaming,
            turn_timeout=self.settings.agent_timeout,
        )
        try:
            worker.session = await asyncio.wait_for(
                self.backend.create_session(config),
                timeout=self.settings.session_timeout,
            )
        except asyncio.TimeoutError:
            self.bus.unregister_agent(worker.id)
            logger.error('Session creation for "%s" timed out; check backend authentication.', worker.name)
            raise BackendTimeout(
                f"create_session({worker.name}) timed out after {self.settings.session_timeout:.0f}s"
            )
        except Exception as e:
            self.bus.unregister_agent(worker.id)
            logger.error('Failed to create session for agent "%s": %s', worker.name, e)
            raise

        self.workers[worker.id] = worker
        self.router.create_channel(worker.id, worker.name, worker.label, model)
        self.router.attach_streaming_listeners(worker.session, worker)
        self.poller.start_polling(worker)

        logger.info('Agent "%s" (%s) created.', worker.name, worker.id)
        self.bus.events.emit(AGENT_SPAWNED, worker)
        return worker

    async def _spawn_from_tool(self, name: str, role: str, prompt: str,
                               model: Optional[str]) -> str:
        worker = await self.spawn_teammate(name, role, prompt, model)
        return worker.id

    async def _send_initial_prompt(self, worker: ManagedWorker, prompt: str):
        try:
            outcome = await self.gate.dispatch(worker, prompt)
        except Exception as e:
            outcome, reason = DispatchOutcome.FAILED, str(e)
        else:
            reason = "the first turn failed"
        if outcome != DispatchOutcome.FAILED:
            return

        logger.error("[%s] initial prompt failed: %s", worker.name, reason)
        try:
            self.bus.send_message(
                worker.id,
                LEAD_ID,
                f'Teammate "{worker.name}" failed to initialize: {reason}. '
                "The assigned task may need to be reassigned.",
            )
        except CoordinationError:
            logger.warning("[%s] Could not notify lead about initialization failure", worker.name)

    def _on_auth_failure(self, worker: ManagedWorker, error: BaseException):
        failure = error if isinstance(error, AuthenticationFailure) else AuthenticationFailure(str(error))
        self.auth_failures.append(failure)

    def _spawn_background(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # Public API

    async def submit_task(self, prompt: str) -> DispatchOutcome:
        """Send a user prompt to the lead and let the team process it."""
        lead = self.workers.get(LEAD_ID)
        if lead is None:
            raise WorkerNotFound(LEAD_ID)

        if self.language is None and self.settings.language == "auto":
            self.language = detect_language(prompt)
            logger.info(
                "Detected input language: %s (%s)", language_display_name(self.language), self.language
            )

        effective_prompt = prompt
        if self.language and self.language != "en":
            lang = language_display_name(self.language)
            effective_prompt = (
                f"[SYSTEM] The user is communicating in {lang}. You MUST respond, delegate "
                f"tasks, and communicate with all teammates in the SAME language. All task "
                f"descriptions, spawn_teammate prompts, and messages MUST be in {lang}.\n\n{prompt}"
            )

        logger.info('Submitting task to lead: "%s..."', prompt[:80])
        return await self.gate.dispatch(lead, effective_prompt)

    def send_to_worker(self, worker_id: str, prompt: str) -> asyncio.Task:
        """Dispatch a prompt to a worker in the background."""
        worker = self.workers.get(worker_id)
        if worker is None:
            raise WorkerNotFound(worker_id)
        return self._spawn_background(self.gate.dispatch(worker, prompt))

    async def wait_for_completion(self, timeout: float = 300.0, check_interval: float = 1.0) -> bool:
        """
        Wait until no worker is busy and no task is pending or in progress.

        Returns:
            True when the team settled, False on timeout
        """
        loop = asyncio.get_event_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            all_idle = not any(w.busy for w in self.workers.values())
            if all_idle and not self.bus.has_open_tasks():
                logger.info("All agents idle, all tasks completed.")
                return True
            await asyncio.sleep(check_interval)

        logger.warning("Timed out waiting for completion.")
        return False

    def get_worker(self, worker_id: str) -> Optional[ManagedWorker]:
        return self.workers.get(worker_id)

    def get_all_workers(self) -> List[ManagedWorker]:
        return list(self.workers.values())

    def get_bus(self) -> MessageBus:
        return self.bus


def subscribe_notifications(orchestrator: Orchestrator, out: Console):
    """Print team events on the main console."""
    hub = orchestrator.bus.events
    hub.subscribe(AGENT_SPAWNED, lambda w: out.print(display.notify_agent_spawned(w.name, w.label, w.model)))
    hub.subscribe(AGENT_SHUTDOWN, lambda w: out.print(display.notify_agent_shutdown(w.name)))
    hub.subscribe(events.TASK_CREATED, lambda t: out.print(display.notify_task_created(t)))
    hub.subscribe(events.TASK_COMPLETED, lambda t: out.print(display.notify_task_completed(t)))


def _check_auth(orchestrator: Orchestrator):
    if orchestrator.auth_failures:
        raise orchestrator.auth_failures[0]


async def single_shot_mode(orchestrator: Orchestrator, task: str, timeout: float) -> bool:
    """Submit one task, wait for the team to settle, then stop."""
    try:
        await orchestrator.submit_task(task)
        _check_auth(orchestrator)
        settled = await orchestrator.wait_for_completion(timeout)
        _check_auth(orchestrator)
        console.print(display.render_status(orchestrator.get_all_workers(), orchestrator.bus.list_tasks()))
        return settled
    finally:
        await orchestrator.stop()


async def interactive_mode(orchestrator: Orchestrator):
    """Read tasks and commands from the user until 'quit'."""
    console.print(Panel(
        "[bold cyan]Agent Teams[/bold cyan]\nMulti-agent orchestration with a shared mailbox and task board",
        expand=False,
    ))
    console.print(f"Lead model    : {orchestrator.settings.model}")
    console.print(f"Teammate model: {orchestrator.settings.teammate_model}\n")
    console.print("Commands:")
    console.print("  /status           - show agents and tasks")
    console.print("  /agents           - list active agents")
    console.print("  /tasks            - list all tasks")
    console.print("  /msg <id> <text>  - send a message to an agent")
    console.print("  quit              - shut down\n")

    session = PromptSession()
    while True:
        try:
            with patch_stdout():
                user_input = await session.prompt_async("Task> ")
        except (EOFError, KeyboardInterrupt):
            break

        user_input = user_input.strip()
        if not user_input:
            continue

        if user_input in ("quit", "exit"):
            break

        if user_input == "/status":
            console.print(display.render_status(orchestrator.get_all_workers(), orchestrator.bus.list_tasks()))

        elif user_input == "/agents":
            console.print(display.worker_table(orchestrator.get_all_workers()))

        elif user_input == "/tasks":
            console.print(display.task_table(orchestrator.bus.list_tasks()))

        elif user_input.startswith("/msg"):
            parts = user_input.split(maxsplit=2)
            if len(parts) < 3:
                console.print("Usage: /msg <agentId> <message>")
                continue
            try:
                orchestrator.send_to_worker(parts[1], f"[User message]: {parts[2]}")
                console.print(f"Message sent to {parts[1]}.")
            except WorkerNotFound as e:
                console.print(f"[red]{e}[/red]")

        else:
            try:
                await orchestrator.submit_task(user_input)
                _check_auth(orchestrator)
            except AuthenticationFailure:
                raise
            except Exception as e:
                console.print(f"[red]Error: {e}[/red]")

    console.print("[yellow]Shutting down...[/yellow]")
    await orchestrator.stop()


async def run(
    task: Optional[str] = None,
    backend: Optional[str] = None,
    model: Optional[str] = None,
    timeout: float = 300.0,
) -> int:
    overrides = {}
    if backend:
        overrides["backend"] = backend
    if model:
        overrides["model"] = model
    settings = Settings(**overrides)
    configure_logging(settings)

    orchestrator = Orchestrator(settings)
    subscribe_notifications(orchestrator, console)
    try:
        await orchestrator.start()
        await orchestrator.create_lead()

        if task:
            settled = await single_shot_mode(orchestrator, task, timeout)
            return 0 if settled else 2

        await interactive_mode(orchestrator)
        return 0
    except (BackendError, CoordinationError) as e:
        console.print(f"[red]Fatal: {e}[/red]")
        await orchestrator.stop()
        return 1


class BackendChoice(str, Enum):
    claude = "claude"
    echo = "echo"


app = typer.Typer(help="Agent teams: a lead agent coordinating teammates over a shared message bus")


@app.command()
def start(
    task: Optional[str] = typer.Option(None, "--task", "-t", help="Run a single task and exit"),
    backend: Optional[BackendChoice] = typer.Option(
        None, "--backend", "-b", help="Backend to drive the agents"
    ),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model for the lead agent"),
    timeout: float = typer.Option(
        300.0, "--timeout", help="Seconds to wait for the team in --task mode"
    ),
):
    """Start the lead agent, interactively or for a single task."""
    try:
        code = asyncio.run(run(task, backend.value if backend else None, model, timeout))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        raise typer.Exit(code=130)

    raise typer.Exit(code=code)


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
