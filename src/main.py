"""
Main Application Module

Entry point for running a first contact session from the command line.
Loads configuration from the environment (and an optional .env file),
runs the exchange, prints it, and optionally exports it to disk.
"""

import argparse
import asyncio
import logging
from dataclasses import replace
from typing import Dict, List, Optional

from dotenv import load_dotenv

from config import (
    ConfigLoader,
    ConfigurationError,
    EntityConfig,
    PRESET_CONFIGS,
    RunConfiguration,
    SystemConfig,
    get_preset_config
)
from protocol import ContactProtocol, ProtocolBuilder, ProtocolEvent
from providers import PROVIDERS, ProviderGateway, get_provider_info
from run_state import RunContext, RunState
from utils import (
    setup_logging,
    ExchangeLogExporter,
    ExchangeFormatter,
    validate_api_key
)
from workflow import WorkflowBuilder

logger = logging.getLogger(__name__)


class FirstContactSystem:
    """
    Main system class for orchestrating first contact runs.
    """

    def __init__(
        self,
        system_config: Optional[SystemConfig] = None,
        gateways: Optional[Dict[str, ProviderGateway]] = None
    ):
        """
        Initialize the first contact system.

        Args:
            system_config: Logging and export settings
            gateways: Optional provider-id to gateway overrides
        """
        self.system_config = system_config or SystemConfig()
        setup_logging(
            log_level=self.system_config.log_level,
            log_file=self.system_config.log_file
        )
        self.gateways = gateways
        self.exporter: Optional[ExchangeLogExporter] = None
        self.protocol: Optional[ContactProtocol] = None
        self.interrupted = False

        logger.info("Initialized FirstContactSystem")

    def _protocol_event_handler(self, event: ProtocolEvent, data: dict) -> None:
        """
        Echo protocol progress to the console.

        Args:
            event: Protocol event type
            data: Event data
        """
        if event == ProtocolEvent.EXCHANGE_RECORDED:
            for line in ExchangeFormatter.format_exchange(data["exchange"]):
                print(line)
            print()
        elif event == ProtocolEvent.RETRY_SCHEDULED:
            print(
                f"  ... rate limited, retry {data['attempt']}/{data['max_attempts']} "
                f"in {data['wait_seconds']:.0f}s"
            )

    def _check_credentials(self, config: RunConfiguration) -> None:
        for provider in config.providers_in_use():
            if not validate_api_key(config.api_key_for(provider)):
                logger.warning(
                    f"{get_provider_info(provider).api_key_env} does not look like a valid key"
                )

    async def run_contact_with_protocol(self, config: RunConfiguration) -> RunContext:
        """
        Run a contact session with the protocol's own loop.

        Args:
            config: Run configuration

        Returns:
            Final RunContext
        """
        self._check_credentials(config)
        self.protocol = ProtocolBuilder.create_standard_protocol(
            config,
            event_callback=self._protocol_event_handler,
            gateways=self.gateways
        )
        return await self.protocol.run()

    async def run_contact_with_workflow(self, config: RunConfiguration) -> RunContext:
        """
        Run a contact session through the LangGraph workflow.

        Args:
            config: Run configuration

        Returns:
            Final RunContext
        """
        self._check_credentials(config)
        self.protocol = ProtocolBuilder.create_standard_protocol(
            config,
            event_callback=self._protocol_event_handler,
            gateways=self.gateways
        )
        workflow = WorkflowBuilder.create_standard_workflow(self.protocol)
        return await workflow.run()

    def run_contact(self, config: RunConfiguration, use_workflow: bool = False) -> Optional[RunContext]:
        """
        Run a contact session on a fresh event loop.

        Ctrl-C stops the run. The exchanges recorded up to that point stay on
        the returned context, which ends CANCELLED, and `interrupted` is set.

        Args:
            config: Run configuration
            use_workflow: Drive the run through the LangGraph workflow

        Returns:
            Final RunContext, or None if interrupted before the run was built
        """
        self.protocol = None
        self.interrupted = False
        runner = self.run_contact_with_workflow if use_workflow else self.run_contact_with_protocol
        try:
            return asyncio.run(runner(config))
        except KeyboardInterrupt:
            logger.info("Interrupted")
            self.interrupted = True
            if self.protocol is None:
                return None
            if self.protocol.context.state == RunState.RUNNING:
                self.protocol.finish(cancelled=True)
            return self.protocol.context

    def display_run(self, context: RunContext) -> None:
        print(ExchangeFormatter.format_for_console(context))

    def export_run(self, context: RunContext) -> str:
        """
        Save a finished run to the export directory.

        Args:
            context: Finished run

        Returns:
            Path to the exchange log
        """
        if self.exporter is None:
            self.exporter = ExchangeLogExporter(self.system_config.export_dir)
        return self.exporter.save_run(context)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Two models try to communicate through geometric shapes."
    )
    providers = list(PROVIDERS.keys())
    parser.add_argument("--entity-a", choices=providers, help="Provider for entity A")
    parser.add_argument("--entity-b", choices=providers, help="Provider for entity B")
    parser.add_argument("--model-a", help="Model override for entity A")
    parser.add_argument("--model-b", help="Model override for entity B")
    parser.add_argument("--rounds", type=int, help="Number of rounds (1-299)")
    parser.add_argument("--pace", type=float, help="Seconds between calls (1-60)")
    parser.add_argument("--preset", choices=list(PRESET_CONFIGS.keys()))
    parser.add_argument(
        "--workflow",
        action="store_true",
        help="Drive the run through the LangGraph workflow"
    )
    parser.add_argument(
        "--export",
        action="store_true",
        help="Save the exchange log and images when the run ends"
    )
    return parser


def resolve_run_config(args: argparse.Namespace) -> RunConfiguration:
    """
    Merge command-line overrides into the environment configuration.

    Raises:
        ConfigurationError: If the merged configuration is invalid
    """
    config = ConfigLoader.load_run_config_from_env(validate=False)
    if args.preset:
        config = get_preset_config(args.preset, config)

    overrides = {}
    if args.entity_a or args.model_a:
        overrides["entity_a"] = EntityConfig(
            provider=args.entity_a or config.entity_a.provider,
            model=args.model_a or (None if args.entity_a else config.entity_a.model)
        )
    if args.entity_b or args.model_b:
        overrides["entity_b"] = EntityConfig(
            provider=args.entity_b or config.entity_b.provider,
            model=args.model_b or (None if args.entity_b else config.entity_b.model)
        )
    if args.rounds is not None:
        overrides["rounds"] = args.rounds
    if args.pace is not None:
        overrides["pace_seconds"] = args.pace

    return replace(config, **overrides).validate()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Process exit code
    """
    load_dotenv()
    args = build_arg_parser().parse_args(argv)

    system = FirstContactSystem(system_config=ConfigLoader.load_from_env())

    try:
        config = resolve_run_config(args)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    logger.info("=" * 80)
    logger.info(
        f"FIRST CONTACT: {config.entity_a.provider} vs {config.entity_b.provider}, "
        f"{config.rounds} rounds"
    )
    logger.info("=" * 80)

    context = system.run_contact(config, use_workflow=args.workflow)
    if context is None:
        return 130

    system.display_run(context)

    if args.export:
        path = system.export_run(context)
        print(f"Exchange log saved to: {path}")

    if system.interrupted:
        return 130
    return 0 if context.error is None else 1


if __name__ == "__main__":
    raise SystemExit(main())
