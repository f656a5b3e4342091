"""
Run State Module

Holds everything one run owns: each entity's private history and notes, the
append-only exchange log, the round counter, live status and the
cancellation token. A fresh RunContext is created for every run; nothing is
shared between runs or kept in module globals.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple
import base64
import logging

from retry import CancellationToken, RetryStatus
from shapes import DrawingPrimitive

logger = logging.getLogger(__name__)

EntityId = Literal["A", "B"]
ENTITY_IDS: Tuple[EntityId, EntityId] = ("A", "B")


class RunState(Enum):
    """Lifecycle of a run."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class HistoryTurn:
    """One role-tagged entry in an entity's private conversation history."""
    role: Literal["user", "assistant"]
    text: str
    image: Optional[bytes] = None


@dataclass
class EntityState:
    """Private per-entity memory: bounded history, notes, and its latest image."""
    entity_id: EntityId
    history: List[HistoryTurn] = field(default_factory=list)
    notes: str = ""
    last_image: Optional[bytes] = None

    def record_turn(
        self,
        user_turn: HistoryTurn,
        assistant_turn: HistoryTurn,
        window: int
    ) -> None:
        """
        Append a user/assistant pair and keep only the most recent entries.

        Args:
            user_turn: What the entity was shown
            assistant_turn: What the entity replied
            window: Maximum number of history entries to retain
        """
        self.history.append(user_turn)
        self.history.append(assistant_turn)
        if len(self.history) > window:
            dropped = len(self.history) - window
            self.history = self.history[-window:]
            logger.debug(f"Entity {self.entity_id}: dropped {dropped} old history entries")

    def update_notes(self, notes: Optional[str]) -> bool:
        """Replace notes if new, non-blank notes were provided."""
        if notes is None or not notes.strip():
            return False
        self.notes = notes
        return True


@dataclass(frozen=True)
class Exchange:
    """Immutable record of one completed turn."""
    entity_id: EntityId
    round_number: int
    primitives: Tuple[DrawingPrimitive, ...]
    intent: str
    notes: str
    image: bytes
    provider: str = ""
    model: str = ""
    hypothesis: str = ""
    next_test: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def exchange_id(self) -> str:
        return f"{self.round_number}-{self.entity_id}"

    def to_dict(self, include_image: bool = False) -> Dict:
        """Convert exchange to dictionary format."""
        data = {
            "id": self.exchange_id,
            "entity": self.entity_id,
            "round": self.round_number,
            "provider": self.provider,
            "model": self.model,
            "shapes": [p.to_dict() for p in self.primitives],
            "intent": self.intent,
            "hypothesis": self.hypothesis,
            "next_test": self.next_test,
            "notes": self.notes,
            "timestamp": self.timestamp.isoformat()
        }
        if include_image:
            data["image"] = base64.b64encode(self.image).decode("ascii")
        return data


@dataclass(frozen=True)
class RunStatus:
    """Live status snapshot for observers."""
    state: RunState
    current_entity: Optional[EntityId]
    round_number: int
    total_rounds: int
    retry: Optional[RetryStatus]
    error: Optional[str]

    def describe(self) -> str:
        if self.retry:
            return (
                f"RATE LIMITED: retry {self.retry.attempt}/{self.retry.max_attempts} "
                f"in {self.retry.wait_seconds:.0f}s"
            )
        if self.state == RunState.FAILED:
            return f"FAILED: {self.error}"
        if self.state == RunState.RUNNING and self.current_entity:
            return f"Entity {self.current_entity}: round {self.round_number}/{self.total_rounds}"
        return self.state.value.upper()


class RunContext:
    """
    Mutable state for a single run, owned by the orchestrator.

    Only the step processing an entity's turn touches that entity's history
    and notes. Exchanges are append-only.
    """

    def __init__(self, total_rounds: int, history_window: int):
        """
        Initialize a new run context.

        Args:
            total_rounds: Round budget (one round is A then B)
            history_window: Maximum history entries kept per entity
        """
        self.total_rounds = total_rounds
        self.history_window = history_window
        self.state = RunState.IDLE
        self.entities: Dict[EntityId, EntityState] = {
            entity_id: EntityState(entity_id) for entity_id in ENTITY_IDS
        }
        self.exchanges: List[Exchange] = []
        self.completed_rounds = 0
        self.next_entity: EntityId = "A"
        self.current_entity: Optional[EntityId] = None
        self.retry_status: Optional[RetryStatus] = None
        self.error: Optional[BaseException] = None
        self.cancel_token = CancellationToken()
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None

    @staticmethod
    def other(entity_id: EntityId) -> EntityId:
        return "B" if entity_id == "A" else "A"

    @property
    def round_number(self) -> int:
        """1-indexed round currently in progress (or last finished)."""
        return min(self.completed_rounds + 1, self.total_rounds)

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    def image_for(self, entity_id: EntityId) -> Optional[bytes]:
        """Latest image rendered by the other entity, or None before it has drawn."""
        return self.entities[self.other(entity_id)].last_image

    def budget_exhausted(self) -> bool:
        return self.completed_rounds >= self.total_rounds

    def advance(self) -> None:
        """Hand the turn to the other entity, closing the round after B."""
        if self.next_entity == "B":
            self.completed_rounds += 1
        self.next_entity = self.other(self.next_entity)

    def append_exchange(self, exchange: Exchange) -> None:
        self.exchanges.append(exchange)

    def newest_first(self) -> List[Exchange]:
        """Exchanges in display order."""
        return list(reversed(self.exchanges))

    def is_terminal(self) -> bool:
        return self.state in (RunState.COMPLETED, RunState.CANCELLED, RunState.FAILED)

    def status(self) -> RunStatus:
        return RunStatus(
            state=self.state,
            current_entity=self.current_entity,
            round_number=self.round_number,
            total_rounds=self.total_rounds,
            retry=self.retry_status,
            error=self.error_message
        )

    def to_dict(self) -> Dict:
        """Export the run (without images) to dictionary format."""
        return {
            "state": self.state.value,
            "total_rounds": self.total_rounds,
            "completed_rounds": self.completed_rounds,
            "error": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "exchanges": [exchange.to_dict() for exchange in self.exchanges]
        }
