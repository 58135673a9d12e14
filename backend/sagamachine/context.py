"""
Context provider interface between the core and its host.

The core never reaches into host globals (current user, targets, world
items). Everything it needs is asked of a GameContext passed in
explicitly. World is an in-memory implementation used by scripts and tests.
"""

import random
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, PrivateAttr

from .actor_state import Actor, Item

logger = logging.getLogger(__name__)


class Notice(BaseModel):
    """A narrative message the core asks the host to post."""

    message: str
    whisper: bool = False


class GameContext(ABC):
    """What the resolution engine needs from the host."""

    @abstractmethod
    def resolve_actor(self, ref: Any) -> Optional[Actor]:
        """Resolve an actor reference (Actor, id string or {"uuid": id})."""

    @abstractmethod
    def current_target(self) -> Optional[Actor]:
        """The actor currently targeted by the rolling user, if any."""

    @abstractmethod
    def find_consequence_template(self, name: str) -> Optional[Item]:
        """A world-level consequence definition with this exact name."""

    @abstractmethod
    def create_consequence_template(self, name: str, **fields: Any) -> Item:
        """Create and register a world-level consequence definition."""

    def draw_table(self, name: str) -> Optional[str]:
        """Draw a result from a named random table; None when unavailable."""
        return None

    def notify(self, message: str, whisper: bool = False) -> None:
        """Post a narrative message to the host's log."""
        logger.info(message)


class World(BaseModel, GameContext):
    """In-memory world: actors, world-level items, targets and roll tables."""

    actors: Dict[str, Actor] = Field(default_factory=dict)
    items: List[Item] = Field(default_factory=list)
    targets: List[str] = Field(default_factory=list)  # targeted actor ids
    tables: Dict[str, List[str]] = Field(default_factory=dict)
    notices: List[Notice] = Field(default_factory=list)
    seed: Optional[int] = None

    _rng: random.Random = PrivateAttr(default=None)

    def model_post_init(self, __context: Any) -> None:
        self._rng = random.Random(self.seed)

    def add_actor(self, actor: Actor) -> Actor:
        self.actors[actor.id] = actor
        return actor

    def target(self, *actors: Actor) -> None:
        """Replace the current target list."""
        self.targets = [a.id for a in actors]

    def resolve_actor(self, ref: Any) -> Optional[Actor]:
        if isinstance(ref, Actor):
            return ref
        if isinstance(ref, dict):
            ref = ref.get("uuid") or ref.get("actor_id") or ref.get("id")
        if not ref:
            return None
        return self.actors.get(str(ref))

    def current_target(self) -> Optional[Actor]:
        for actor_id in self.targets:
            actor = self.actors.get(actor_id)
            if actor is not None:
                return actor
        return None

    def find_consequence_template(self, name: str) -> Optional[Item]:
        for item in self.items:
            if item.type == "consequence" and item.name == name:
                return item
        return None

    def create_consequence_template(self, name: str, **fields: Any) -> Item:
        fields.setdefault("rank", 1)
        template = Item(name=name, type="consequence", **fields)
        self.items.append(template)
        logger.debug(f"Created consequence template: {name}")
        return template

    def draw_table(self, name: str) -> Optional[str]:
        results = self.tables.get(name)
        if not results:
            return None
        return self._rng.choice(results)

    def notify(self, message: str, whisper: bool = False) -> None:
        self.notices.append(Notice(message=message, whisper=whisper))
        logger.info(message)
