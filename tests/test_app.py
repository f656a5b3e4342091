"""
Tests for the Gradio runner's start and stop handlers.

Run with: pytest tests/test_app.py -v
"""

import asyncio

from app import ContactRunner
from conftest import FakeGateway, RecordingSleep, make_config
from protocol import ProtocolBuilder
from run_state import RunState

FORM = ("openai", "", "gemini", "", 2, 1.0, "", "", "k1" * 10, "k2" * 10, "", "")


class StoppingGateway(FakeGateway):
    """Gateway that presses Stop while its first call is in flight."""

    def __init__(self, runner: ContactRunner):
        super().__init__()
        self.runner = runner
        self.stop_messages = []

    async def invoke(self, *args, **kwargs) -> str:
        reply = await super().invoke(*args, **kwargs)
        if not self.stop_messages:
            self.stop_messages.append(await self.runner.stop())
        return reply


def standard_protocol(config, gateway_a=None):
    return ProtocolBuilder.create_standard_protocol(
        config,
        gateways={"openai": gateway_a or FakeGateway(), "gemini": FakeGateway()},
        sleep=RecordingSleep()
    )


class TestStop:
    def test_nothing_to_stop(self):
        assert asyncio.run(ContactRunner().stop()) == "Nothing to stop"

    def test_stop_runs_on_the_event_loop_and_cancels(self):
        runner = ContactRunner()
        gateway_a = StoppingGateway(runner)
        runner.protocol = standard_protocol(make_config(rounds=3), gateway_a)

        context = asyncio.run(runner.protocol.run())

        assert gateway_a.stop_messages == ["Stopping after the current call..."]
        assert context.state == RunState.CANCELLED
        assert [e.exchange_id for e in context.exchanges] == ["1-A"]


class TestAlreadyRunningGuard:
    """A second Start is refused only while the current run is not terminal."""

    @staticmethod
    def first_update(runner: ContactRunner):
        async def scenario():
            updates = runner.run_contact_streaming(*FORM)
            try:
                return await updates.__anext__()
            finally:
                await updates.aclose()
        return asyncio.run(scenario())

    def test_refuses_while_running(self):
        runner = ContactRunner()
        runner.protocol = standard_protocol(make_config())
        runner.protocol.begin()
        assert not runner.protocol.context.is_terminal()

        _, status = self.first_update(runner)
        assert status == "A run is already in progress"

    def test_finished_run_is_terminal(self):
        protocol = standard_protocol(make_config(rounds=1))
        context = asyncio.run(protocol.run())
        assert context.state == RunState.COMPLETED
        assert context.is_terminal()
