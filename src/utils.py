"""
Utilities Module

Provides logging configuration, run export, and formatting helpers
for the first contact system.
"""

import logging
import base64
import html
import json
from typing import Optional, Dict, Any, List
from datetime import datetime
from pathlib import Path

from providers import get_provider_info
from run_state import Exchange, RunContext


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None
) -> None:
    """
    Configure logging for the first contact system.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        log_format: Optional custom log format
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    format_string = log_format or (
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    handlers = [logging.StreamHandler()]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format=format_string,
        handlers=handlers,
        force=True
    )

    # SDK and transport chatter
    for name in ("httpx", "httpcore", "openai", "groq"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured - Level: {log_level}")


class ExchangeLogExporter:
    """
    Writes finished runs to disk: one JSON log plus one PNG per exchange.
    """

    def __init__(self, storage_dir: str = "./contacts"):
        """
        Initialize the exporter.

        Args:
            storage_dir: Directory for exported runs
        """
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger(__name__)
        self.logger.info(f"Initialized exporter at: {self.storage_dir}")

    def _run_dirname(self, context: RunContext) -> str:
        timestamp = context.started_at or datetime.now()
        return f"contact_{timestamp.strftime('%Y%m%d_%H%M%S')}"

    def save_run(self, context: RunContext, dirname: Optional[str] = None) -> str:
        """
        Save a run's exchange log and images.

        Args:
            context: Run to export
            dirname: Optional directory name under the storage dir

        Returns:
            Path to the saved JSON log
        """
        run_dir = self.storage_dir / (dirname or self._run_dirname(context))
        run_dir.mkdir(parents=True, exist_ok=True)

        data = context.to_dict()
        for entry, exchange in zip(data["exchanges"], context.exchanges):
            image_name = f"{exchange.round_number:03d}_{exchange.entity_id}.png"
            (run_dir / image_name).write_bytes(exchange.image)
            entry["image_file"] = image_name

        data["_metadata"] = {
            "saved_at": datetime.now().isoformat(),
            "version": "1.0"
        }

        filepath = run_dir / "exchanges.json"
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        self.logger.info(f"Saved {len(context.exchanges)} exchanges to: {run_dir}")
        return str(filepath)

    def load_run(self, dirname: str) -> Dict[str, Any]:
        """
        Load a saved exchange log.

        Args:
            dirname: Run directory name

        Returns:
            Run data as dictionary
        """
        filepath = self.storage_dir / dirname / "exchanges.json"

        if not filepath.exists():
            raise FileNotFoundError(f"Exchange log not found: {filepath}")

        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)

        self.logger.info(f"Loaded run from: {filepath}")
        return data

    def list_runs(self) -> List[str]:
        """
        List all saved runs.

        Returns:
            List of run directory names
        """
        return sorted(p.parent.name for p in self.storage_dir.glob("*/exchanges.json"))


def validate_api_key(api_key: Optional[str]) -> bool:
    """
    Validate API key format.

    Args:
        api_key: API key to validate

    Returns:
        True if format is plausible
    """
    if not api_key:
        return False
    return isinstance(api_key, str) and len(api_key.strip()) > 20


def format_duration(seconds: float) -> str:
    """
    Format duration in seconds to human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


def truncate_text(text: str, max_length: int = 100) -> str:
    """
    Truncate text to maximum length with ellipsis.

    Args:
        text: Text to truncate
        max_length: Maximum length

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


def _run_duration(context: RunContext) -> float:
    if not context.started_at:
        return 0.0
    end = context.finished_at or datetime.now()
    return (end - context.started_at).total_seconds()


class ExchangeFormatter:
    """
    Formats run output for various display purposes.
    """

    @staticmethod
    def format_exchange(exchange: Exchange) -> List[str]:
        """Console lines for one exchange."""
        name = get_provider_info(exchange.provider).name if exchange.provider else exchange.entity_id
        lines = [
            f"Entity {exchange.entity_id} [{name}] (Round {exchange.round_number}): "
            f"{len(exchange.primitives)} shape(s)",
            f"  intent: {exchange.intent or '-'}"
        ]
        if exchange.hypothesis:
            lines.append(f"  hypothesis: {exchange.hypothesis}")
        if exchange.next_test:
            lines.append(f"  next test: {exchange.next_test}")
        if exchange.notes:
            lines.append(f"  notes: {truncate_text(exchange.notes.replace(chr(10), ' '), 160)}")
        return lines

    @staticmethod
    def format_for_console(context: RunContext) -> str:
        """
        Format a run for console display.

        Args:
            context: Run to format

        Returns:
            Formatted string for console
        """
        lines = ["=" * 80, "FIRST CONTACT", "=" * 80, ""]

        for exchange in context.exchanges:
            lines.extend(ExchangeFormatter.format_exchange(exchange))
            lines.append("")

        lines.append("=" * 80)
        lines.append(f"Rounds: {context.completed_rounds}/{context.total_rounds}")
        lines.append(f"Exchanges: {len(context.exchanges)}")
        lines.append(f"Duration: {format_duration(_run_duration(context))}")
        lines.append(f"Status: {context.status().describe()}")
        lines.append("=" * 80)

        return "\n".join(lines)

    @staticmethod
    def format_for_html(context: RunContext) -> str:
        """
        Format exchanges as HTML cards, newest first.

        Args:
            context: Run to format

        Returns:
            HTML string
        """
        if not context.exchanges:
            return "<div class='glass-empty'>The glass is empty.</div>"

        parts = []
        for exchange in context.newest_first():
            color = get_provider_info(exchange.provider).color if exchange.provider else "#ffffff"
            image = base64.b64encode(exchange.image).decode("ascii")
            parts.append(
                f"<div class='exchange' style='border-left: 3px solid {color}; "
                f"padding: 10px; margin: 10px 0;'>"
                f"<div style='color: {color}; font-weight: bold;'>"
                f"Entity {exchange.entity_id} &middot; Round {exchange.round_number}</div>"
                f"<img src='data:image/png;base64,{image}' width='200' height='200'/>"
                f"<p><em>{html.escape(exchange.intent)}</em></p>"
            )
            if exchange.hypothesis:
                parts.append(f"<p>Hypothesis: {html.escape(exchange.hypothesis)}</p>")
            if exchange.notes:
                parts.append(
                    f"<details><summary>Notes</summary>"
                    f"<pre>{html.escape(exchange.notes)}</pre></details>"
                )
            parts.append("</div>")

        return "\n".join(parts)
