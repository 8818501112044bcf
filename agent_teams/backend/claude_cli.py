"""
Backend that drives each worker through the `claude` CLI.

Every round of a turn runs ``claude --print --output-format json`` as an async
subprocess. Team tools are advertised in the system prompt; the model calls
them by writing fenced ``tool`` blocks, which are executed against the
MessageBus and fed back as the next round's input.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import psutil

from ..coordination.errors import (
    AuthenticationFailure,
    BackendError,
    BackendTimeout,
    BackendUnavailable,
    is_auth_failure,
)
from .base import MESSAGE_DELTA, Backend, BackendSession, SessionConfig

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_TOOLS = "Read,Glob,Grep,Write,Edit,Bash"

TOOL_PROTOCOL = """## Calling team tools
You can call the team tools listed below. To call one, write a fenced block
tagged `tool` containing a JSON object (or a JSON list of objects):

```tool
{"tool": "send_message", "args": {"to": "lead", "content": "Done with the review."}}
```

Results come back in the next message as "Tool results". Keep calling tools
until your work for this turn is done, then answer without a tool block."""


def extract_tool_calls(text: str) -> List[Tuple[Optional[Dict[str, Any]], Optional[str]]]:
    """
    Find ``tool`` blocks in a reply.

    Returns:
        One ``(call, error)`` pair per call. ``call`` is a dict with ``tool``
        and ``args``; ``error`` is set instead when a block is not valid JSON.
    """
    calls = []
    block: Optional[List[str]] = None

    for line in text.split('\n'):
        stripped = line.strip()
        if block is None:
            if stripped.startswith('```') and stripped[3:].strip().lower() == 'tool':
                block = []
            continue

        if stripped.startswith('```'):
            body = '\n'.join(block).strip()
            block = None
            if not body:
                continue
            try:
                parsed = json.loads(body)
            except json.JSONDecodeError as e:
                calls.append((None, f"Invalid tool block: {e}"))
                continue
            for item in parsed if isinstance(parsed, list) else [parsed]:
                if isinstance(item, dict) and isinstance(item.get('tool'), str):
                    calls.append(({'tool': item['tool'], 'args': item.get('args') or {}}, None))
                else:
                    calls.append((None, f"Tool call must be an object with a 'tool' name: {item!r}"))
        else:
            block.append(line)

    return calls


def kill_process_tree(pid: int):
    """Kill a process and everything it spawned."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    procs = parent.children(recursive=True) + [parent]
    for proc in procs:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
    psutil.wait_procs(procs, timeout=3)


class ClaudeCliSession(BackendSession):
    """One worker's conversation, replayed into each CLI call."""

    def __init__(self, config: SessionConfig, binary: str = "claude",
                 allowed_tools: str = DEFAULT_ALLOWED_TOOLS, max_tool_rounds: int = 5):
        super().__init__(config)
        self.binary = binary
        self.allowed_tools = allowed_tools
        self.max_tool_rounds = max_tool_rounds
        self.tools = {tool.name: tool for tool in config.tools}
        self.conversation_history: List[Dict[str, str]] = []
        self._process: Optional[asyncio.subprocess.Process] = None

    def get_system_prompt(self) -> str:
        if not self.tools:
            return self.config.system_message
        catalogue = "\n".join(
            f"- `{tool.name}`: {tool.description}\n  args schema: {json.dumps(tool.parameters)}"
            for tool in self.tools.values()
        )
        return f"{self.config.system_message}\n\n{TOOL_PROTOCOL}\n\nAvailable tools:\n{catalogue}"

    def _format_conversation(self) -> str:
        """Format conversation history as a single prompt string."""
        if not self.conversation_history:
            return ""

        *previous, current = self.conversation_history
        if not previous:
            return current['content']

        context = "\n\n".join(
            f"{msg['role'].title()}: {msg['content']}" for msg in previous
        )
        return f"Previous conversation:\n{context}\n\nCurrent message:\n{current['content']}"

    async def _run_turn(self, prompt: str) -> str:
        self.conversation_history.append({"role": "user", "content": prompt})
        replies = []

        for _ in range(self.max_tool_rounds + 1):
            reply = await self._call_cli(self._format_conversation())
            self.conversation_history.append({"role": "assistant", "content": reply})
            replies.append(reply)
            if self.config.streaming:
                self._emit(MESSAGE_DELTA, reply if reply.endswith("\n") else reply + "\n")

            calls = extract_tool_calls(reply)
            if not calls or self.destroyed:
                break
            results = await self._execute_tool_calls(calls)
            self.conversation_history.append({
                "role": "user",
                "content": "Tool results:\n" + json.dumps(results, indent=2, default=str),
            })
        else:
            logger.warning("[%s] Stopped after %d tool rounds", self.config.name, self.max_tool_rounds)

        return "\n".join(replies)

    async def _execute_tool_calls(self, calls) -> List[Dict[str, Any]]:
        results = []
        for call, error in calls:
            if error:
                results.append({"success": False, "error": error})
                continue
            tool = self.tools.get(call['tool'])
            if tool is None:
                results.append({"tool": call['tool'], "success": False,
                                "error": f"Unknown tool: {call['tool']}"})
                continue
            result = await tool.invoke(call['args'])
            results.append({"tool": tool.name, **result})
        return results

    async def _call_cli(self, prompt: str) -> str:
        cmd = [
            self.binary,
            '--print',
            '--output-format', 'json',
            '--system-prompt', self.get_system_prompt(),
            '--tools', self.allowed_tools,
            '--no-session-persistence',
            '--model', self.config.model,
            prompt,
        ]

        logger.debug("[%s] Calling Claude CLI...", self.config.name)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise BackendUnavailable(f"Could not start {self.binary}: {e}") from e

        process = self._process
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.config.turn_timeout,
            )
        except asyncio.TimeoutError:
            kill_process_tree(process.pid)
            raise BackendTimeout(
                f"Claude command timed out after {self.config.turn_timeout:.0f} seconds"
            )
        finally:
            self._process = None

        stdout_text = stdout.decode('utf-8', errors='replace')
        stderr_text = stderr.decode('utf-8', errors='replace')

        if process.returncode != 0:
            raise self._failure(
                f"Claude CLI exited with code {process.returncode}: {stderr_text.strip() or stdout_text[:500]}"
            )

        try:
            response_data = json.loads(stdout_text)
        except json.JSONDecodeError as e:
            raise BackendError(f"Failed to parse Claude response: {e}\nOutput: {stdout_text[:500]}") from e

        if response_data.get('is_error'):
            raise self._failure(f"Claude error: {response_data.get('result', 'Unknown error')}")

        cost = response_data.get('total_cost_usd', 0) or 0
        duration = response_data.get('duration_ms', 0)
        logger.info("[%s] Query completed - Cost: $%.4f, Duration: %sms", self.config.name, cost, duration)
        return response_data.get('result', '')

    @staticmethod
    def _failure(message: str) -> BackendError:
        error = BackendError(message)
        if is_auth_failure(error):
            return AuthenticationFailure(message)
        return error

    async def _teardown(self):
        if self._process is not None and self._process.returncode is None:
            kill_process_tree(self._process.pid)


class ClaudeCliBackend(Backend):
    """Creates ClaudeCliSession instances after checking the CLI is installed."""

    name = "claude"

    def __init__(self, binary: str = "claude", allowed_tools: str = DEFAULT_ALLOWED_TOOLS):
        self.binary = binary
        self.allowed_tools = allowed_tools

    async def check_ready(self):
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary, '--version',
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise BackendUnavailable(f"'{self.binary}' not found. Install the Claude CLI first.") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=10.0)
        except asyncio.TimeoutError:
            kill_process_tree(process.pid)
            raise BackendUnavailable(f"'{self.binary} --version' timed out")

        if process.returncode != 0:
            raise BackendUnavailable(
                f"'{self.binary} --version' failed: {stderr.decode('utf-8', errors='replace').strip()}"
            )
        logger.info("Claude CLI ready: %s", stdout.decode('utf-8', errors='replace').strip())

    async def create_session(self, config: SessionConfig) -> ClaudeCliSession:
        return ClaudeCliSession(config, binary=self.binary, allowed_tools=self.allowed_tools)
