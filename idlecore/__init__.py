# idlecore: Data-Driven Idle Game Economy Engine

from idlecore.errors import (
    IdleCoreError,
    ParseError,
    EvaluationError,
    AffordabilityError,
    AlreadyOwnedError,
    NotFoundError,
    PersistenceError,
)
from idlecore.cache import ExpirationCache
from idlecore.effect import EffectType, EffectPhase, EffectDef, EffectBlock, Effect
from idlecore.content import ContentItem, AchievementLevel, ContentPlugin, ContentRegistry
from idlecore.expression import ExpressionEngine, BUILTINS
from idlecore.state import PlayerState, ShinyState
from idlecore.events import (
    GameEvent,
    BuildingBought,
    UpgradeBought,
    BuildingSold,
    Prestige,
    AchievementUnlocked,
    EventBus,
)
from idlecore.resolver import EffectResolver
from idlecore.cost_scaling import CostScaling
from idlecore.economy import EconomyEngine
from idlecore.persistence import Database, InMemoryDatabase, JSONFileDatabase
from idlecore.scheduler import UpdateScheduler, TickReport
from idlecore.config import EngineConfig, GameConfig, load_config
from idlecore.service import GameService, CommandResult
from idlecore.simulator import GameSimulator, SimulationReport, DaySnapshot

__all__ = [
    # Errors
    "IdleCoreError",
    "ParseError",
    "EvaluationError",
    "AffordabilityError",
    "AlreadyOwnedError",
    "NotFoundError",
    "PersistenceError",
    # Cache
    "ExpirationCache",
    # Effects
    "EffectType",
    "EffectPhase",
    "EffectDef",
    "EffectBlock",
    "Effect",
    # Content
    "ContentItem",
    "AchievementLevel",
    "ContentPlugin",
    "ContentRegistry",
    # Formulas
    "ExpressionEngine",
    "BUILTINS",
    # State
    "PlayerState",
    "ShinyState",
    # Events
    "GameEvent",
    "BuildingBought",
    "UpgradeBought",
    "BuildingSold",
    "Prestige",
    "AchievementUnlocked",
    "EventBus",
    # Economy
    "EffectResolver",
    "CostScaling",
    "EconomyEngine",
    # Persistence
    "Database",
    "InMemoryDatabase",
    "JSONFileDatabase",
    # Scheduling
    "UpdateScheduler",
    "TickReport",
    # Configuration
    "EngineConfig",
    "GameConfig",
    "load_config",
    # Service
    "GameService",
    "CommandResult",
    # Simulation
    "GameSimulator",
    "SimulationReport",
    "DaySnapshot",
]
