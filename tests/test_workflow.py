"""
Tests for the LangGraph workflow driver.

Run with: pytest tests/test_workflow.py -v
"""

import asyncio

from conftest import FakeGateway, RecordingSleep, make_config
from protocol import ProtocolBuilder, ProtocolEvent
from providers import ProviderError
from run_state import RunState
from workflow import WorkflowBuilder


def build_workflow(config, gateway_a=None, gateway_b=None, event_callback=None):
    protocol = ProtocolBuilder.create_standard_protocol(
        config,
        event_callback=event_callback,
        gateways={"openai": gateway_a or FakeGateway(), "gemini": gateway_b or FakeGateway()},
        sleep=RecordingSleep()
    )
    return WorkflowBuilder.create_standard_workflow(protocol)


class TestContactWorkflow:
    def test_runs_full_budget(self):
        workflow = build_workflow(make_config(rounds=3))
        context = asyncio.run(workflow.run())

        assert context.state == RunState.COMPLETED
        assert [e.exchange_id for e in context.exchanges] == [
            "1-A", "1-B", "2-A", "2-B", "3-A", "3-B"
        ]

    def test_long_run_stays_under_recursion_limit(self):
        workflow = build_workflow(make_config(rounds=20))
        context = asyncio.run(workflow.run())
        assert len(context.exchanges) == 40

    def test_failure_preserves_exchanges(self):
        gateway_b = FakeGateway([ProviderError("Gemini", 403, "forbidden")])
        workflow = build_workflow(make_config(rounds=2), gateway_b=gateway_b)
        context = asyncio.run(workflow.run())

        assert context.state == RunState.FAILED
        assert len(context.exchanges) == 1
        assert "403" in context.error_message

    def test_cancellation(self):
        holder = {}

        def on_event(event, data):
            if event == ProtocolEvent.TURN_COMPLETED and data["agent_id"] == "B":
                holder["workflow"].protocol.cancel()

        workflow = build_workflow(make_config(rounds=3), event_callback=on_event)
        holder["workflow"] = workflow
        context = asyncio.run(workflow.run())

        assert context.state == RunState.CANCELLED
        assert len(context.exchanges) == 2
