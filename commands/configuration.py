"""
Configuration inspection commands.

These commands show what a run would use without loading a model: the
resolved tunables and the resolved sampler chain.
"""

import os
from typing import List, Optional

import typer
from rich.table import Table

from samplechain.config import ParameterResolver, ResolvedParameters
from samplechain.config.parameters import ENV_KEYS, describe_bounds
from samplechain.errors import SamplerChainError
from samplechain.sampling import build_default_builder, configure_overrides

from .common import console, create_chain_table, create_header

app = typer.Typer(help="🔧 Parameter and sampler chain inspection")


@app.command()
def params():
    """
    🔧 Show the resolved generation parameters

    Values that are missing, unparsable or out of bounds fall back to their
    defaults; the log output explains each fallback.
    """
    console.print(create_header())
    console.print()

    resolved = ParameterResolver().resolve()

    table = Table(
        title="🔧 Resolved Parameters", show_header=True, header_style="bold magenta"
    )
    table.add_column("Parameter", style="cyan", no_wrap=True)
    table.add_column("Value", style="yellow")
    table.add_column("Bounds", style="white")
    table.add_column("Env Key", style="blue")
    table.add_column("Env Value", style="dim white")

    for field, info in ResolvedParameters.model_fields.items():
        key = ENV_KEYS[field]
        raw = os.environ.get(key)
        table.add_row(
            field,
            str(getattr(resolved, field)),
            describe_bounds(info),
            key,
            "(unset)" if raw is None else repr(raw),
        )

    console.print(table)


@app.command()
def chain(
    samplers: Optional[List[str]] = typer.Option(
        None,
        "--sampler",
        "-s",
        help="Sampler override such as 'topk:k=50' (repeatable)",
    ),
):
    """
    ⛓️  Show the sampler chain a run would execute

    Lists every slot in execution order with the stage it resolves to,
    whether that stage is the default or an override, and whether it is
    active.
    """
    console.print(create_header())
    console.print()

    resolved = ParameterResolver().resolve()

    try:
        builder = configure_overrides(build_default_builder(resolved), samplers or [])
        builder.ensure_default_slots()
        sampler_chain = builder.into_chain()
    except SamplerChainError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)

    console.print(create_chain_table(builder))
    console.print()
    console.print(
        f"⛓️  [bold green]{len(sampler_chain.active_stages)}[/bold green] of "
        f"[bold cyan]{len(sampler_chain)}[/bold cyan] stages active"
    )
