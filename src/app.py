"""
Gradio Frontend for First Contact

A minimalist web interface for configuring the two entities, starting and
stopping a run, and watching the glass fill up in real time.
"""

import gradio as gr
import asyncio
import logging
from typing import AsyncGenerator, Optional, Tuple

from dotenv import load_dotenv

from config import (
    ConfigLoader,
    ConfigurationError,
    DEFAULT_PACE_SECONDS,
    DEFAULT_ROUNDS,
    EntityConfig,
    MAX_PACE_SECONDS,
    MAX_ROUNDS,
    MIN_PACE_SECONDS,
    MIN_ROUNDS,
    RunConfiguration
)
from protocol import ContactProtocol, ProtocolBuilder
from providers import PROVIDERS
from run_state import RunContext
from utils import setup_logging, ExchangeFormatter, format_duration

load_dotenv()
setup_logging(log_level="INFO", log_file="./logs/gradio_app.log")
logger = logging.getLogger(__name__)

STATUS_POLL_SECONDS = 0.5


class ContactRunner:
    """Handles contact runs with streaming updates."""

    def __init__(self):
        self.protocol: Optional[ContactProtocol] = None

    def build_config(
        self,
        provider_a: str,
        model_a: str,
        provider_b: str,
        model_b: str,
        rounds: float,
        pace_seconds: float,
        prompt_a: str,
        prompt_b: str,
        openai_key: str,
        gemini_key: str,
        anthropic_key: str,
        groq_key: str
    ) -> RunConfiguration:
        """
        Build a validated run configuration from the form values.

        Keys typed into the form take precedence over the environment.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        credentials = ConfigLoader.load_credentials_from_env()
        typed = {
            "openai": openai_key,
            "gemini": gemini_key,
            "anthropic": anthropic_key,
            "groq": groq_key
        }
        for provider_id, key in typed.items():
            if key and key.strip():
                credentials[provider_id] = key.strip()

        return RunConfiguration(
            entity_a=EntityConfig(
                provider=provider_a,
                model=model_a.strip() or None,
                system_prompt=prompt_a if prompt_a.strip() else None
            ),
            entity_b=EntityConfig(
                provider=provider_b,
                model=model_b.strip() or None,
                system_prompt=prompt_b if prompt_b.strip() else None
            ),
            rounds=int(rounds),
            pace_seconds=float(pace_seconds),
            credentials=credentials
        ).validate()

    async def run_contact_streaming(
        self,
        provider_a: str,
        model_a: str,
        provider_b: str,
        model_b: str,
        rounds: float,
        pace_seconds: float,
        prompt_a: str,
        prompt_b: str,
        openai_key: str,
        gemini_key: str,
        anthropic_key: str,
        groq_key: str
    ) -> AsyncGenerator[Tuple[str, str], None]:
        """
        Run a contact session with streaming updates.

        Yields:
            Tuple of (exchanges_html, status_text)
        """
        if self.protocol is not None and not self.protocol.context.is_terminal():
            yield self._format_glass(self.protocol.context), "A run is already in progress"
            return

        try:
            config = self.build_config(
                provider_a, model_a, provider_b, model_b, rounds, pace_seconds,
                prompt_a, prompt_b, openai_key, gemini_key, anthropic_key, groq_key
            )
        except ConfigurationError as e:
            yield self._format_glass(None), f"Configuration error: {e}"
            return

        self.protocol = ProtocolBuilder.create_standard_protocol(config)
        task = asyncio.create_task(self.protocol.run())

        last_seen = None
        try:
            while not task.done():
                context = self.protocol.context
                snapshot = (len(context.exchanges), context.status())
                if snapshot != last_seen:
                    last_seen = snapshot
                    yield self._format_glass(context), context.status().describe()
                await asyncio.sleep(STATUS_POLL_SECONDS)

            context = task.result()
        except asyncio.CancelledError:
            # Client went away; stop the run at its next checkpoint
            self.protocol.cancel()
            raise

        yield self._format_glass(context), self._final_status(context)

    async def stop(self) -> str:
        """Request cancellation of the current run."""
        if self.protocol is None:
            return "Nothing to stop"
        self.protocol.cancel()
        return "Stopping after the current call..."

    @staticmethod
    def _final_status(context: RunContext) -> str:
        duration = 0.0
        if context.started_at and context.finished_at:
            duration = (context.finished_at - context.started_at).total_seconds()
        return (
            f"{context.status().describe()}\n"
            f"Rounds: {context.completed_rounds}/{context.total_rounds} | "
            f"Exchanges: {len(context.exchanges)} | "
            f"Duration: {format_duration(duration)}"
        )

    @staticmethod
    def _format_glass(context: Optional[RunContext]) -> str:
        """Format the exchange log as HTML, newest first."""
        if context is None:
            body = "<div style='text-align: center; padding: 40px; color: #666;'>" \
                   "Configure both entities and press Start.</div>"
        else:
            body = ExchangeFormatter.format_for_html(context)
        return (
            "<div style='background: #0a0a0a; color: #ddd; padding: 10px; "
            "max-height: 700px; overflow-y: auto; font-family: monospace;'>"
            f"{body}</div>"
        )


def create_gradio_interface():
    """Create the Gradio interface."""

    runner = ContactRunner()
    provider_choices = list(PROVIDERS.keys())

    custom_css = """
    .gradio-container {
        max-width: 1400px !important;
    }
    """

    with gr.Blocks(css=custom_css, title="First Contact") as app:
        gr.Markdown("""
        # First Contact

        Two models on either side of a glass barrier, with nothing but circles,
        lines, arcs and dots to work with.
        """)

        with gr.Row():
            with gr.Column(scale=2):
                glass_display = gr.HTML(
                    value=runner._format_glass(None),
                    label="Glass"
                )

                status_display = gr.Textbox(
                    label="Status",
                    value="IDLE",
                    interactive=False,
                    lines=2
                )

            with gr.Column(scale=1):
                with gr.Accordion("Run Settings", open=True):
                    rounds = gr.Slider(
                        label="Rounds",
                        minimum=MIN_ROUNDS,
                        maximum=MAX_ROUNDS,
                        value=DEFAULT_ROUNDS,
                        step=1
                    )
                    pace = gr.Slider(
                        label="Pace (seconds between calls)",
                        minimum=MIN_PACE_SECONDS,
                        maximum=MAX_PACE_SECONDS,
                        value=DEFAULT_PACE_SECONDS,
                        step=0.5
                    )

                with gr.Accordion("Entity A", open=True):
                    provider_a = gr.Dropdown(label="Provider", choices=provider_choices, value="openai")
                    model_a = gr.Textbox(label="Model (blank for default)", value="")
                    prompt_a = gr.TextArea(
                        label="Custom System Prompt (optional)",
                        placeholder="Leave empty for default...",
                        lines=3
                    )

                with gr.Accordion("Entity B", open=True):
                    provider_b = gr.Dropdown(label="Provider", choices=provider_choices, value="gemini")
                    model_b = gr.Textbox(label="Model (blank for default)", value="")
                    prompt_b = gr.TextArea(
                        label="Custom System Prompt (optional)",
                        placeholder="Leave empty for default...",
                        lines=3
                    )

                with gr.Accordion("API Keys (override environment)", open=False):
                    openai_key = gr.Textbox(label="OpenAI", type="password")
                    gemini_key = gr.Textbox(label="Gemini", type="password")
                    anthropic_key = gr.Textbox(label="Anthropic", type="password")
                    groq_key = gr.Textbox(label="Groq", type="password")

                with gr.Row():
                    start_btn = gr.Button("Start", variant="primary", size="lg")
                    stop_btn = gr.Button("Stop", variant="stop", size="lg")

        start_btn.click(
            fn=runner.run_contact_streaming,
            inputs=[
                provider_a,
                model_a,
                provider_b,
                model_b,
                rounds,
                pace,
                prompt_a,
                prompt_b,
                openai_key,
                gemini_key,
                anthropic_key,
                groq_key
            ],
            outputs=[glass_display, status_display]
        )

        stop_btn.click(fn=runner.stop, inputs=None, outputs=status_display)

    return app


def main():
    """Launch the Gradio app."""
    if not ConfigLoader.load_credentials_from_env():
        logger.warning("No provider API keys found in environment; enter them in the UI")

    app = create_gradio_interface()

    logger.info("Launching Gradio interface...")

    app.launch(
        server_name="0.0.0.0",
        server_port=7860,
        share=False,
        show_error=True
    )


if __name__ == "__main__":
    main()
