"""
Workers, the dispatch gate, team tools and system prompts.
"""
from .worker import ManagedWorker, WorkerRole
from .dispatch import DispatchGate, DispatchOutcome
from .tools import AgentTool, create_agent_tools, create_lead_tools
from .prompts import build_system_message

__all__ = [
    'ManagedWorker',
    'WorkerRole',
    'DispatchGate',
    'DispatchOutcome',
    'AgentTool',
    'create_agent_tools',
    'create_lead_tools',
    'build_system_message',
]
