"""
LangGraph Workflow Module

Implements the contact run as a LangGraph StateGraph, providing a
structured, observable alternative to ContactProtocol.run(). The graph
only sequences half-turns; every turn is still executed by the protocol,
so both drivers produce identical exchanges.
"""

from typing import Literal, Optional, TypedDict
from langgraph.graph import StateGraph, END
from langgraph.graph.state import CompiledStateGraph
import asyncio
import logging

from protocol import ContactProtocol
from retry import RunCancelled
from run_state import RunContext

logger = logging.getLogger(__name__)


class ContactGraphState(TypedDict):
    """
    State schema for the LangGraph contact workflow.

    This mirrors the round bookkeeping held by RunContext but is
    maintained separately for LangGraph's state management.
    """
    total_rounds: int
    completed_rounds: int
    next_entity: Literal["A", "B"]
    exchange_count: int
    last_exchange_id: Optional[str]
    is_terminated: bool
    termination_reason: Optional[str]


class ContactWorkflow:
    """
    LangGraph-based workflow for driving a contact run.
    """

    def __init__(self, protocol: ContactProtocol):
        """
        Initialize the contact workflow.

        Args:
            protocol: Protocol that executes the individual half-turns
        """
        self.protocol = protocol
        self._error: Optional[Exception] = None

        logger.info("Initialized ContactWorkflow with LangGraph")

    def _snapshot(self) -> dict:
        ctx = self.protocol.context
        return {
            "completed_rounds": ctx.completed_rounds,
            "next_entity": ctx.next_entity,
            "exchange_count": len(ctx.exchanges),
            "last_exchange_id": ctx.exchanges[-1].exchange_id if ctx.exchanges else None
        }

    def _initialize_state(self) -> ContactGraphState:
        """
        Initialize the LangGraph state from the protocol's RunContext.

        Returns:
            Initial graph state
        """
        return ContactGraphState(
            total_rounds=self.protocol.context.total_rounds,
            is_terminated=False,
            termination_reason=None,
            **self._snapshot()
        )

    def _check_should_continue(self, state: ContactGraphState) -> str:
        """
        Conditional edge function - determines if the run should continue.

        Args:
            state: Current graph state

        Returns:
            "continue" to proceed with the next half-turn, "end" to stop
        """
        if state["is_terminated"]:
            logger.info(f"Workflow terminating: {state['termination_reason']}")
            return "end"
        return "continue"

    async def _entity_turn_node(self, state: ContactGraphState) -> dict:
        """
        LangGraph node that executes a single half-turn.

        Args:
            state: Current graph state

        Returns:
            Graph state update
        """
        logger.debug(
            f"Executing half-turn for entity {state['next_entity']} "
            f"(round {state['completed_rounds'] + 1}/{state['total_rounds']})"
        )

        try:
            await self.protocol.step()
        except RunCancelled:
            return {**self._snapshot(), "is_terminated": True, "termination_reason": "cancelled"}
        except Exception as e:
            logger.error(f"Error in turn for entity {state['next_entity']}: {e}")
            self._error = e
            return {
                **self._snapshot(),
                "is_terminated": True,
                "termination_reason": f"error_{type(e).__name__}"
            }

        return self._snapshot()

    def _termination_check_node(self, state: ContactGraphState) -> dict:
        """
        LangGraph node that checks the round budget.

        Args:
            state: Current graph state

        Returns:
            Graph state update with termination status
        """
        if not state["is_terminated"] and self.protocol.context.budget_exhausted():
            logger.info("Termination condition met: budget_exhausted")
            return {"is_terminated": True, "termination_reason": "budget_exhausted"}
        return {}

    def build_graph(self) -> CompiledStateGraph:
        """
        Build the LangGraph StateGraph for the contact workflow.

        Returns:
            Compiled state graph
        """
        workflow = StateGraph(ContactGraphState)

        workflow.add_node("entity_turn", self._entity_turn_node)
        workflow.add_node("check_termination", self._termination_check_node)

        workflow.set_entry_point("entity_turn")
        workflow.add_edge("entity_turn", "check_termination")
        workflow.add_conditional_edges(
            "check_termination",
            self._check_should_continue,
            {
                "continue": "entity_turn",
                "end": END
            }
        )

        compiled_graph = workflow.compile()
        logger.info("LangGraph workflow compiled successfully")
        return compiled_graph

    async def run(self) -> RunContext:
        """
        Run the complete contact workflow.

        Returns:
            Final RunContext
        """
        logger.info("Starting LangGraph contact workflow")
        self._error = None
        self.protocol.begin()

        graph = self.build_graph()
        initial_state = self._initialize_state()
        # Two graph steps per half-turn, two half-turns per round
        recursion_limit = 4 * initial_state["total_rounds"] + 10

        try:
            final_state = await graph.ainvoke(
                initial_state,
                config={"recursion_limit": recursion_limit}
            )
        except asyncio.CancelledError:
            self.protocol.finish(cancelled=True)
            raise
        except Exception as e:
            logger.error(f"Error during workflow execution: {e}", exc_info=True)
            return self.protocol.finish(error=e)

        logger.info(
            f"Workflow completed - {final_state['exchange_count']} exchanges, "
            f"reason: {final_state['termination_reason']}"
        )

        if self._error is not None:
            return self.protocol.finish(error=self._error)
        if final_state["termination_reason"] == "cancelled":
            return self.protocol.finish(cancelled=True)
        return self.protocol.finish()


class WorkflowBuilder:
    """
    Builder for creating contact workflows.
    """

    @staticmethod
    def create_standard_workflow(protocol: ContactProtocol) -> ContactWorkflow:
        """
        Create a standard contact workflow.

        Args:
            protocol: Configured ContactProtocol

        Returns:
            Configured ContactWorkflow
        """
        workflow = ContactWorkflow(protocol=protocol)
        logger.info("Created standard workflow")
        return workflow
