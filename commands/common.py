"""
Common utilities and shared functionality for CLI commands.

This module provides the shared console, headers, logging setup and the
table/panel helpers used across command modules.
"""

import logging
import os
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from samplechain.sampling import SamplerChainBuilder

# Global console instance
console = Console()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure root logging for CLI runs.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
        log_file: Optional file that receives the same records as the terminal
    """
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def create_header() -> Panel:
    """
    Create the standard header panel for CLI commands.

    Returns:
        Panel: Rich panel with samplechain branding and emoji
    """
    header_text = Text()
    header_text.append("🎲 ", style="bold blue")
    header_text.append("samplechain", style="bold white")
    header_text.append(" - Sampler Chain Inference", style="bold cyan")

    return Panel(header_text, style="blue", border_style="blue", expand=False)


def create_config_panel(title: str, config_items: dict, style: str = "blue") -> Panel:
    """
    Create a configuration panel with key-value pairs.

    Args:
        title: Panel title
        config_items: Dictionary of configuration key-value pairs
        style: Panel style

    Returns:
        Panel: Rich panel displaying configuration
    """
    config_text = ""
    for key, value in config_items.items():
        config_text += f"{key}: [bold cyan]{value}[/bold cyan]\n"

    return Panel(
        config_text.rstrip(),
        title=title,
        style=style,
        border_style=style,
    )


def create_stats_table(
    title: str, stats: dict, title_style: str = "bold green"
) -> Table:
    """
    Create a statistics table with key-value pairs.

    Args:
        title: Table title
        stats: Dictionary of statistics
        title_style: Title style

    Returns:
        Table: Rich table displaying statistics
    """
    table = Table(title=title, show_header=True, header_style=title_style)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="yellow")

    for key, value in stats.items():
        table.add_row(key, str(value))

    return table


def create_chain_table(builder: SamplerChainBuilder) -> Table:
    """
    Create a table listing every slot of a resolved builder in chain order.

    Args:
        builder: Builder after ``ensure_default_slots``

    Returns:
        Table: Rich table with one row per stage
    """
    table = Table(
        title="⛓️  Sampler Chain", show_header=True, header_style="bold magenta"
    )
    table.add_column("#", justify="center", style="cyan", no_wrap=True)
    table.add_column("Slot", style="cyan", no_wrap=True)
    table.add_column("Stage", style="yellow")
    table.add_column("Origin", style="blue")
    table.add_column("Active", justify="center")

    position = 1
    for name, slot in builder:
        origin = "default" if slot.is_default else "configured"
        if slot.is_empty:
            table.add_row(str(position), name, "[dim]empty[/dim]", "-", "-")
            position += 1
            continue
        for stage in slot.stages:
            active = "[green]✓[/green]" if stage.active else "[dim]✗[/dim]"
            table.add_row(str(position), name, repr(stage), origin, active)
            position += 1

    return table
