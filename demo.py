#!/usr/bin/env python3
"""
Demo script for the agent teams coordination engine.

Runs entirely in-process on the echo backend, so no CLI login or API key is
needed. It shows:
1. The message bus: mailboxes, broadcast and the dependency-aware task board
2. The dispatch gate: a busy worker queues prompts instead of starting a turn
3. The orchestrator: lead, teammates and poller-driven mail delivery

Usage:
    python3 demo.py
"""
import asyncio
import io

from rich.console import Console
from rich.panel import Panel

from agent_teams.agents import DispatchGate, DispatchOutcome, ManagedWorker, WorkerRole
from agent_teams.backend import EchoBackend, SessionConfig
from agent_teams.config import Settings
from agent_teams.coordination import BROADCAST, DependencyBlocked, MessageBus
from agent_teams.orchestrator import Orchestrator, subscribe_notifications
from agent_teams.output import OutputRouter, StreamOutputSink
from agent_teams.output.display import render_status, task_table

console = Console()


def demo_message_bus():
    """Mailboxes and task board without any backend."""
    console.print(Panel("[bold cyan]Demo 1: Message Bus[/bold cyan]"))

    bus = MessageBus()
    for agent_id in ("lead", "alice", "bob"):
        bus.register_agent(agent_id)
    console.print("[green]✓[/green] Registered lead, alice, bob")

    bus.send_message("lead", "alice", "Please research caching options")
    bus.send_message("lead", BROADCAST, "Kickoff in 5 minutes")
    for agent_id in ("alice", "bob"):
        for msg in bus.read_messages(agent_id):
            console.print(f"  [cyan]{agent_id}[/cyan] <- {msg.sender}: {msg.content}")

    research = bus.create_task("Research caching", "lead", assignee="alice")
    write = bus.create_task("Write the proposal", "lead", depends_on=[research.id])

    try:
        bus.claim_task(write.id, "bob")
    except DependencyBlocked as e:
        console.print(f"[yellow]Expected:[/yellow] {e}")

    bus.claim_task(research.id, "alice")
    bus.complete_task(research.id, "alice", "Redis with a 5 minute TTL")
    bus.claim_task(write.id, "bob")
    console.print(task_table(bus.list_tasks()))


async def demo_dispatch_gate():
    """A second prompt to a busy worker is queued, not started."""
    console.print(Panel("[bold cyan]Demo 2: Dispatch Gate[/bold cyan]"))

    backend = EchoBackend(delay=0.05)
    session = await backend.create_session(
        SessionConfig(worker_id="alice", name="alice", model="sonnet", streaming=False)
    )
    worker = ManagedWorker(id="alice", name="alice", role=WorkerRole.TEAMMATE, session=session)
    gate = DispatchGate(OutputRouter(StreamOutputSink(Console(file=io.StringIO()))), max_turns=3)

    first = asyncio.ensure_future(gate.dispatch(worker, "first prompt"))
    await asyncio.sleep(0.01)
    second = await gate.dispatch(worker, "second prompt")
    console.print(f"  second dispatch while busy: [yellow]{second.value}[/yellow]")
    console.print(f"  first dispatch: [green]{(await first).value}[/green]")
    console.print(f"  prompts the session ran: {session.prompts}")
    console.print(f"  turns counted: {worker.turn_count}")

    for i in range(3):
        outcome = await gate.dispatch(worker, f"extra {i}")
        if outcome == DispatchOutcome.DROPPED:
            console.print(f"  [red]extra {i} dropped[/red]: turn budget exhausted")
    await session.destroy()


async def demo_orchestrator():
    """Full team on the echo backend with streamed, prefixed output."""
    console.print(Panel("[bold cyan]Demo 3: Orchestrator[/bold cyan]"))

    settings = Settings(backend="echo", poll_interval=0.1, language="en")
    orchestrator = Orchestrator(settings, router=OutputRouter(StreamOutputSink(console)))
    subscribe_notifications(orchestrator, console)

    await orchestrator.start()
    await orchestrator.create_lead()
    await orchestrator.submit_task("Plan a caching layer")

    alice = await orchestrator.spawn_teammate("alice", "researcher", "Compare Redis and memcached")
    task = orchestrator.bus.create_task("Compare caches", "lead", assignee=alice.id)
    orchestrator.bus.send_message("lead", alice.id, f"Please take {task.id}")

    await asyncio.sleep(0.5)
    orchestrator.bus.claim_task(task.id, alice.id)
    orchestrator.bus.complete_task(task.id, alice.id, "Redis: richer types, persistence")

    settled = await orchestrator.wait_for_completion(timeout=5.0, check_interval=0.1)
    console.print(render_status(orchestrator.get_all_workers(), orchestrator.bus.list_tasks()))
    console.print(f"[green]✓[/green] Team settled: {settled}")
    await orchestrator.stop()


def main():
    console.print("[bold cyan]Agent Teams - Demo[/bold cyan]\n")
    demo_message_bus()
    asyncio.run(demo_dispatch_gate())
    asyncio.run(demo_orchestrator())


if __name__ == "__main__":
    main()
