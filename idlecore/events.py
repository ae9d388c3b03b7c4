"""Typed game events and a synchronous publish/subscribe bus."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Any, Callable, ClassVar, TypeVar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GameEvent:
    name: ClassVar[str] = ""
    player_id: str

    def payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BuildingBought(GameEvent):
    """*amount* is the number owned after the purchase."""

    name: ClassVar[str] = "BuildingBought"
    building_name: str
    amount: int


@dataclass(frozen=True)
class UpgradeBought(GameEvent):
    name: ClassVar[str] = "UpgradeBought"
    upgrade_name: str


@dataclass(frozen=True)
class BuildingSold(GameEvent):
    """*amount* is the number still owned after the sale."""

    name: ClassVar[str] = "BuildingSold"
    building_name: str
    amount: int


@dataclass(frozen=True)
class Prestige(GameEvent):
    name: ClassVar[str] = "Prestige"
    prestige_level: int


@dataclass(frozen=True)
class AchievementUnlocked(GameEvent):
    name: ClassVar[str] = "AchievementUnlocked"
    achievement_name: str
    level: int


EVENT_TYPES: dict[str, type[GameEvent]] = {
    cls.name: cls
    for cls in (BuildingBought, UpgradeBought, BuildingSold, Prestige, AchievementUnlocked)
}

E = TypeVar("E", bound=GameEvent)


class EventBus:
    """Dispatches events to handlers registered for their exact type.

    Handlers run synchronously on the emitting thread. A failing handler is
    logged and does not stop the remaining handlers or the emitter.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[type[GameEvent], list[Callable[[Any], None]]] = {}

    def on(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def off(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type)
            if handlers is None:
                return
            try:
                handlers.remove(handler)
            except ValueError:
                pass

    def emit(self, event: GameEvent) -> None:
        with self._lock:
            handlers = list(self._handlers.get(type(event), ()))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Handler for %s failed", event.name)
