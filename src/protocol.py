"""
Protocol Module

Defines the turn-taking protocol between the two entities. The protocol
drives strictly alternating half-turns (A then B per round): call the
acting entity's provider through the retry controller, parse the reply,
render the marks, and log an Exchange. Entities cannot modify or reason
about this protocol; it operates at the system level.
"""

from typing import Awaitable, Callable, Dict, Optional
from datetime import datetime
from enum import Enum
import asyncio
import logging

from config import RunConfiguration
from entities import Entity, EntityFactory
from providers import ProviderGateway
from renderer import ShapeRenderer
from response_parser import parse
from retry import RetryController, RetryStatus, RunCancelled
from run_state import EntityId, Exchange, HistoryTurn, RunContext, RunState, RunStatus
from shapes import placeholder_primitive

logger = logging.getLogger(__name__)

SleepFunction = Callable[[float], Awaitable[None]]


class ProtocolEvent(Enum):
    """Events that can occur during protocol execution."""
    RUN_STARTED = "run_started"
    TURN_STARTED = "turn_started"
    RETRY_SCHEDULED = "retry_scheduled"
    EXCHANGE_RECORDED = "exchange_recorded"
    TURN_COMPLETED = "turn_completed"
    ROUND_COMPLETED = "round_completed"
    RUN_COMPLETED = "run_completed"
    RUN_CANCELLED = "run_cancelled"
    RUN_FAILED = "run_failed"


class ContactProtocol:
    """
    Turn orchestrator for one first-contact run.

    State machine: IDLE -> RUNNING -> COMPLETED | CANCELLED | FAILED.
    Each run gets a fresh RunContext, so histories, notes and exchanges
    never leak between runs. Cancellation is cooperative: it is polled
    before every provider call and after every pacing delay, and never
    interrupts a call already in flight.
    """

    def __init__(
        self,
        entity_a: Entity,
        entity_b: Entity,
        config: RunConfiguration,
        renderer: Optional[ShapeRenderer] = None,
        event_callback: Optional[Callable[[ProtocolEvent, Dict], None]] = None,
        sleep: Optional[SleepFunction] = None
    ):
        """
        Initialize the protocol controller.

        Args:
            entity_a: Entity that opens every round
            entity_b: Entity that answers
            config: Run configuration (validated here)
            renderer: Shape renderer (defaults to a 400x400 canvas)
            event_callback: Optional callback for protocol events
            sleep: Awaitable used for pacing and backoff waits; defaults to a
                cancellable sleep bound to the current run
        """
        self.config = config.validate()
        self.entities_map: Dict[EntityId, Entity] = {
            "A": entity_a,
            "B": entity_b
        }
        self.renderer = renderer or ShapeRenderer()
        self.event_callback = event_callback
        self._sleep_override = sleep
        self.context = RunContext(config.rounds, config.history_window)

        logger.info(
            f"Initialized ContactProtocol: {entity_a.label} vs {entity_b.label}, "
            f"{config.rounds} rounds, pace {config.pace_seconds:g}s"
        )

    def _emit_event(
        self,
        event: ProtocolEvent,
        data: Optional[Dict] = None
    ) -> None:
        """
        Emit a protocol event.

        Args:
            event: Protocol event type
            data: Optional event data
        """
        if self.event_callback:
            event_data = data or {}
            event_data["event"] = event.value
            event_data["timestamp"] = datetime.now().isoformat()
            try:
                self.event_callback(event, event_data)
            except Exception as e:
                logger.error(f"Error in event callback: {e}", exc_info=True)

    async def _sleep(self, seconds: float) -> None:
        if self._sleep_override is not None:
            await self._sleep_override(seconds)
        else:
            await self.context.cancel_token.sleep(seconds)

    def _on_retry_status(self, status: Optional[RetryStatus]) -> None:
        self.context.retry_status = status
        if status is not None:
            self._emit_event(
                ProtocolEvent.RETRY_SCHEDULED,
                {"agent_id": self.context.current_entity, **status.to_dict()}
            )

    def cancel(self) -> None:
        """Request cooperative cancellation of the current run."""
        logger.info("Cancellation requested")
        self.context.cancel_token.cancel()

    def status(self) -> RunStatus:
        return self.context.status()

    def begin(self) -> RunContext:
        """
        Enter RUNNING with fresh histories, notes and round counter.

        Returns:
            The new RunContext

        Raises:
            RuntimeError: If a run is already in progress
        """
        if self.context.state == RunState.RUNNING:
            raise RuntimeError("A run is already in progress")

        self.context = RunContext(self.config.rounds, self.config.history_window)
        self.context.state = RunState.RUNNING
        self.context.started_at = datetime.now()

        logger.info(f"Run started ({self.config.rounds} rounds)")
        self._emit_event(ProtocolEvent.RUN_STARTED, {"total_rounds": self.config.rounds})
        return self.context

    async def _execute_turn(self, entity_id: EntityId) -> Exchange:
        """
        Execute a single half-turn for one entity.

        This is the atomic unit of the protocol: call, parse, remember, render, log.

        Args:
            entity_id: Acting entity

        Returns:
            The recorded Exchange
        """
        ctx = self.context
        entity = self.entities_map[entity_id]
        state = ctx.entities[entity_id]
        image = ctx.image_for(entity_id)

        ctx.current_entity = entity_id
        self._emit_event(
            ProtocolEvent.TURN_STARTED,
            {"agent_id": entity_id, "round": ctx.round_number}
        )

        controller = RetryController(
            max_attempts=self.config.max_attempts,
            sleep=self._sleep,
            observer=self._on_retry_status,
            cancel_token=ctx.cancel_token
        )
        raw_text = await controller.run(lambda: entity.respond(state, image))
        response = parse(raw_text)

        primitives = response.primitives
        if not primitives:
            logger.warning(f"Entity {entity_id} drew nothing valid; using placeholder")
            primitives = [placeholder_primitive()]

        if state.update_notes(response.notes):
            logger.debug(f"Entity {entity_id} notes updated ({len(state.notes)} chars)")

        state.record_turn(
            entity.shown_turn(image),
            HistoryTurn(role="assistant", text=response.to_json()),
            ctx.history_window
        )

        png = self.renderer.render(primitives, entity.color)
        state.last_image = png

        exchange = Exchange(
            entity_id=entity_id,
            round_number=ctx.round_number,
            primitives=tuple(primitives),
            intent=response.intent,
            notes=state.notes,
            image=png,
            provider=entity.provider,
            model=entity.model,
            hypothesis=response.hypothesis,
            next_test=response.next_test
        )
        ctx.append_exchange(exchange)

        logger.info(
            f"Round {exchange.round_number}: entity {entity_id} drew "
            f"{len(primitives)} primitive(s) [{response.decode_path}]"
        )
        self._emit_event(ProtocolEvent.EXCHANGE_RECORDED, {"exchange": exchange})
        self._emit_event(
            ProtocolEvent.TURN_COMPLETED,
            {"agent_id": entity_id, "round": exchange.round_number}
        )
        return exchange

    async def step(self) -> Exchange:
        """
        Run the next half-turn, then wait the pacing interval if more turns remain.

        Returns:
            The recorded Exchange

        Raises:
            RunCancelled: If cancellation was requested before the call or during the wait
        """
        ctx = self.context
        if ctx.state != RunState.RUNNING:
            raise RuntimeError(f"Cannot step a run in state {ctx.state.value}")
        if ctx.cancel_token.is_cancelled():
            raise RunCancelled("Cancelled before next turn")

        entity_id = ctx.next_entity
        exchange = await self._execute_turn(entity_id)
        ctx.advance()

        if entity_id == "B":
            self._emit_event(
                ProtocolEvent.ROUND_COMPLETED,
                {"round": ctx.completed_rounds, "total_rounds": ctx.total_rounds}
            )

        if not ctx.budget_exhausted():
            await self._sleep(self.config.pace_seconds)
            if ctx.cancel_token.is_cancelled():
                raise RunCancelled("Cancelled during pacing delay")

        return exchange

    def finish(self, error: Optional[BaseException] = None, cancelled: bool = False) -> RunContext:
        """
        Move the run into its terminal state.

        Args:
            error: Exception that aborted the run, if any
            cancelled: Whether the run stopped on request

        Returns:
            The final RunContext
        """
        ctx = self.context
        ctx.current_entity = None
        ctx.retry_status = None
        ctx.finished_at = datetime.now()

        if error is not None:
            ctx.state = RunState.FAILED
            ctx.error = error
            logger.error(f"Run failed after {len(ctx.exchanges)} exchanges: {error}")
            self._emit_event(
                ProtocolEvent.RUN_FAILED,
                {"error": str(error), "error_type": type(error).__name__}
            )
        elif cancelled:
            ctx.state = RunState.CANCELLED
            logger.info(f"Run cancelled after {len(ctx.exchanges)} exchanges")
            self._emit_event(ProtocolEvent.RUN_CANCELLED, {"exchanges": len(ctx.exchanges)})
        else:
            ctx.state = RunState.COMPLETED
            logger.info(f"Run completed: {ctx.completed_rounds} rounds, {len(ctx.exchanges)} exchanges")
            self._emit_event(ProtocolEvent.RUN_COMPLETED, {"exchanges": len(ctx.exchanges)})

        return ctx

    async def run(self) -> RunContext:
        """
        Run the whole exchange until the budget is spent, cancellation, or failure.

        Failures do not raise; they end the run in FAILED with the error kept
        on the context and earlier exchanges intact.

        Returns:
            Final RunContext
        """
        self.begin()
        try:
            while not self.context.budget_exhausted():
                await self.step()
        except RunCancelled:
            return self.finish(cancelled=True)
        except asyncio.CancelledError:
            self.finish(cancelled=True)
            raise
        except Exception as e:
            logger.debug("Run aborted", exc_info=True)
            return self.finish(error=e)

        return self.finish()


class ProtocolBuilder:
    """
    Builder for creating contact protocol instances.
    """

    @staticmethod
    def create_standard_protocol(
        config: RunConfiguration,
        event_callback: Optional[Callable[[ProtocolEvent, Dict], None]] = None,
        gateways: Optional[Dict[str, ProviderGateway]] = None,
        renderer: Optional[ShapeRenderer] = None,
        sleep: Optional[SleepFunction] = None
    ) -> ContactProtocol:
        """
        Create a protocol with entities built from the configuration.

        Args:
            config: Run configuration
            event_callback: Optional event callback
            gateways: Optional provider-id to gateway overrides
            renderer: Optional renderer
            sleep: Optional sleep override for pacing and backoff

        Returns:
            Configured ContactProtocol instance
        """
        config.validate()
        entity_a, entity_b = EntityFactory.create_pair(config, gateways)

        protocol = ContactProtocol(
            entity_a=entity_a,
            entity_b=entity_b,
            config=config,
            renderer=renderer,
            event_callback=event_callback,
            sleep=sleep
        )

        logger.info(
            f"Created standard protocol: {config.entity_a.provider} vs "
            f"{config.entity_b.provider} ({config.rounds} rounds)"
        )
        return protocol
