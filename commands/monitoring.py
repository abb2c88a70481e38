"""
Telemetry monitoring commands.

Summarises the JSON Lines telemetry written by ``generate infer --log-file``.
"""

from pathlib import Path

import typer
from rich.table import Table

from samplechain.telemetry import read_inference_logs

from .common import console, create_header, create_stats_table

app = typer.Typer(help="📊 Telemetry monitoring commands")


@app.command()
def logs(
    log_file: Path = typer.Argument(..., help="JSON Lines telemetry file"),
    limit: int = typer.Option(
        20, "--limit", "-n", help="Number of most recent runs to show"
    ),
):
    """
    📊 Show recorded generation runs and aggregate statistics
    """
    console.print(create_header())
    console.print()

    if not log_file.exists():
        console.print(f"[red]❌ Log file not found: {log_file}[/red]")
        raise typer.Exit(1)

    records = read_inference_logs(log_file)
    if not records:
        console.print("[yellow]⚠️  No runs recorded yet[/yellow]")
        return

    table = Table(
        title=f"📊 Recent Runs (last {min(limit, len(records))} of {len(records)})",
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("Timestamp", style="cyan", no_wrap=True)
    table.add_column("Model", style="yellow")
    table.add_column("Temp", justify="right")
    table.add_column("Top-k", justify="right")
    table.add_column("Prompt Tokens", justify="right")
    table.add_column("Generated", justify="right")
    table.add_column("Tokens/s", justify="right", style="green")

    for record in records[-limit:]:
        tokens_per_second = (
            record.predict_tokens / record.predict_duration
            if record.predict_duration > 0
            else 0.0
        )
        table.add_row(
            record.timestamp,
            record.model or "-",
            f"{record.temperature:.2f}",
            str(record.top_k),
            str(record.prompt_tokens),
            str(record.predict_tokens),
            f"{tokens_per_second:.1f}",
        )

    console.print(table)
    console.print()

    total_tokens = sum(record.predict_tokens for record in records)
    total_predict = sum(record.predict_duration for record in records)
    total_feed = sum(record.feed_prompt_duration for record in records)
    console.print(
        create_stats_table(
            "📈 Summary",
            {
                "Runs": len(records),
                "Generated Tokens": total_tokens,
                "Avg Feed Prompt Time": f"{total_feed / len(records):.3f}s",
                "Avg Generation Time": f"{total_predict / len(records):.3f}s",
                "Overall Tokens/Second": (
                    f"{total_tokens / total_predict:.1f}" if total_predict > 0 else "n/a"
                ),
            },
        )
    )
