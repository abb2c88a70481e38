#!/usr/bin/env python3
"""
samplechain CLI - A command-line interface for sampler chain inference.

This CLI wires the parameter resolver, the sampler chain builder, the GPT-2
reference driver and the run telemetry together behind a handful of commands.
"""

from typing import Optional

import typer
from rich.panel import Panel

from commands.common import console, create_header, setup_logging
from commands import configuration, generate, monitoring

# Initialize main CLI app
app = typer.Typer(help="🎲 samplechain - Sampler Chain Inference")

# Add command modules
app.add_typer(generate.app, name="generate", help="🎭 Text generation commands")
app.add_typer(
    configuration.app, name="config", help="🔧 Parameter and sampler chain inspection"
)
app.add_typer(monitoring.app, name="monitor", help="📊 Telemetry monitoring commands")


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING", "--log-level", "-l", help="Log level (DEBUG, INFO, WARNING, ERROR)"
    ),
    log_file: Optional[str] = typer.Option(
        None, "--log-file", help="Also write log records to this file"
    ),
):
    """🎲 samplechain - Sampler Chain Inference"""
    setup_logging(log_level, log_file)


@app.command()
def info():
    """
    ℹ️  Show information about samplechain
    """
    console.print(create_header())
    console.print()

    info_text = """
[bold blue]🎲 samplechain - Sampler Chain Inference[/bold blue]

Builds a fixed-order chain of token sampling stages, fills every unconfigured
slot from a default catalog, and runs it against GPT-2 logits.

[bold green]📦 Features:[/bold green]
• ⛓️  Twelve named sampler slots executed in a fixed order
• 🎲 Repetition, frequency/presence and sequence repetition penalties
• 🔝 Top-k, tail free, locally typical, top-p, top-a and min-p filtering
• 🌡️  Temperature scaling with Mirostat v1/v2 as terminal selectors
• 🔧 Environment / .env driven parameters with bounds checking
• 📊 JSON telemetry for every run, appendable to a JSON Lines log

[bold yellow]🔧 Environment:[/bold yellow]
• MODEL_PARAM_TEMPERATURE  (0, 1]       default 0.8
• MODEL_PARAM_TOP_K        [20, 80]     default 40
• MAXIMUM_TOKENS_GENERATE  [30, 10000]  default 100

[bold cyan]Usage:[/bold cyan]
```
# Generate with the default prompt and chain
python cli.py generate infer gpt2

# Custom prompt, overriding two stages
python cli.py generate infer gpt2 -p "Once upon a time" -s topk:k=50 -s temperature:temperature=0.3

# Enable Mirostat v2 and record telemetry
python cli.py generate infer gpt2 -s mirostat2:tau=4.0 --log-file runs.jsonl

# Inspect resolved parameters and the chain
python cli.py config params
python cli.py config chain -s topp:p=0.9

# Summarise recorded runs
python cli.py monitor logs runs.jsonl
```
    """

    console.print(Panel(info_text, style="blue", border_style="blue"))


if __name__ == "__main__":
    app()
