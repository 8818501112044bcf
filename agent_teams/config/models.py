"""
Model catalogue for lead and teammate sessions.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass
class ModelDefinition:
    """A model a worker session can run on."""
    name: str
    description: str


MODEL_DEFINITIONS: Dict[str, ModelDefinition] = {
    "opus": ModelDefinition(
        name="opus",
        description="complex multi-step reasoning, architecture, security, deep debugging",
    ),
    "sonnet": ModelDefinition(
        name="sonnet",
        description="code generation, review, testing, research and analysis (recommended default)",
    ),
    "haiku": ModelDefinition(
        name="haiku",
        description="documentation, formatting, translation, simple or repetitive tasks",
    ),
}

AVAILABLE_MODELS: List[str] = list(MODEL_DEFINITIONS)

DEFAULT_LEAD_MODEL = "opus"
DEFAULT_TEAMMATE_MODEL = "sonnet"


def get_model_definition(name: str) -> Optional[ModelDefinition]:
    """Get a model definition by name."""
    return MODEL_DEFINITIONS.get(name)


def register_model_definition(definition: ModelDefinition):
    """Register an additional model (e.g. a full model id)."""
    MODEL_DEFINITIONS[definition.name] = definition
    if definition.name not in AVAILABLE_MODELS:
        AVAILABLE_MODELS.append(definition.name)


def shorten_model(model: str) -> str:
    """Short form for pane titles: 'claude-sonnet-4-5' -> 'sonnet-4-5'."""
    if model.startswith("claude-"):
        return model[len("claude-"):]
    return model
