"""Action interpreter and tick loop."""

from .actions import (
    ActionDefinition,
    ActionInterpreter,
    load_actions,
    render_description,
)
from .world import TickRecord, WorldDefinition, WorldEngine, build_engine, load_world

__all__ = [
    "ActionDefinition",
    "ActionInterpreter",
    "TickRecord",
    "WorldDefinition",
    "WorldEngine",
    "build_engine",
    "load_actions",
    "load_world",
    "render_description",
]
