"""
Text generation commands.

``infer`` runs one generation with the full sampler chain:
resolve parameters → build chain → load model → stream tokens → telemetry.
"""

import time
from pathlib import Path
from typing import List, Optional

import torch
import typer
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.text import Text

from samplechain.config import ParameterResolver
from samplechain.errors import SamplerChainError
from samplechain.model import GPT2Model
from samplechain.sampling import create_sampler_chain
from samplechain.telemetry import InferenceLog, append_inference_log
from samplechain.tokenizer import GPT2TokenizerWrapper, TokenizerSource

from .common import console, create_config_panel, create_header, create_stats_table

app = typer.Typer(help="🎭 Text generation commands")

DEFAULT_PROMPT = "Rust is a cool programming language because"


@app.command()
def infer(
    model_path: str = typer.Argument(
        "gpt2", help="HuggingFace model identifier or local model directory"
    ),
    prompt: Optional[str] = typer.Option(
        None, "--prompt", "-p", help="Starting text prompt"
    ),
    tokenizer_path: Optional[Path] = typer.Option(
        None, "--tokenizer-path", "-v", help="Local tokenizer.json file or directory"
    ),
    tokenizer_repository: Optional[str] = typer.Option(
        None, "--tokenizer-repository", "-r", help="Remote HuggingFace tokenizer repo"
    ),
    samplers: Optional[List[str]] = typer.Option(
        None,
        "--sampler",
        "-s",
        help="Sampler override such as 'topk:k=50' (repeatable)",
    ),
    device: str = typer.Option(
        "cpu", "--device", "-d", help="Device to run on (cpu or cuda)"
    ),
    seed: Optional[int] = typer.Option(
        None, "--seed", help="Random seed for reproducible sampling"
    ),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", "-o", help="Append the run's telemetry to this JSON Lines file"
    ),
):
    """
    🎭 Generate text with the configured sampler chain

    Tunables come from MODEL_PARAM_TEMPERATURE, MODEL_PARAM_TOP_K and
    MAXIMUM_TOKENS_GENERATE (or a .env file). Structural chain problems abort
    before the model is loaded.
    """
    console.print(create_header())
    console.print()

    prompt = prompt or DEFAULT_PROMPT

    # Fail fast on configuration mistakes, before any expensive loading
    try:
        tokenizer_source = TokenizerSource.from_options(
            tokenizer_path, tokenizer_repository
        )
        params = ParameterResolver().resolve()
        chain = create_sampler_chain(params, samplers or [])
    except SamplerChainError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)

    console.print(
        create_config_panel(
            "🎭 Sampling Configuration",
            {
                "📝 Prompt": repr(prompt),
                "🤖 Model": model_path,
                "🔤 Tokenizer": tokenizer_source.describe(model_path),
                "🌡️  Temperature": params.temperature,
                "🔝 Top-k": params.top_k,
                "🎭 Max tokens": params.max_tokens_generate,
                "⛓️  Active stages": ", ".join(
                    stage.name for stage in chain.active_stages
                ),
            },
        )
    )
    console.print()

    load_start = time.perf_counter()
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task1 = progress.add_task("🔤 Loading tokenizer...", total=None)
        tokenizer = GPT2TokenizerWrapper(model_path, source=tokenizer_source)
        progress.update(task1, completed=True)

        task2 = progress.add_task("🤖 Loading model...", total=None)
        model = GPT2Model(model_path, device=device)
        model.load_model()
        progress.update(task2, completed=True)

    console.print(
        f"✅ Model fully loaded! Elapsed: {(time.perf_counter() - load_start) * 1000:.0f}ms"
    )
    console.print()

    generator = None
    if seed is not None:
        generator = torch.Generator(device=device).manual_seed(seed)

    input_ids = tokenizer.encode(prompt, return_tensors=True)

    console.print(Text(prompt, style="bold yellow"), end="")

    def print_token(token_id: int) -> None:
        console.print(
            tokenizer.decode([token_id]), end="", style="bold white", markup=False, highlight=False
        )

    result = model.generate_with_chain(
        input_ids,
        chain,
        max_tokens=params.max_tokens_generate,
        generator=generator,
        on_token=print_token,
    )
    console.print()
    console.print()

    response = tokenizer.decode(result.generated_tokens)
    record = (
        InferenceLog.start(result.stats, prompt, response)
        .model(model_path)
        .parameters(params)
        .build()
    )

    tokens_per_second = (
        record.predict_tokens / record.predict_duration
        if record.predict_duration > 0
        else 0.0
    )
    console.print(
        create_stats_table(
            "📊 Generation Statistics",
            {
                "Prompt Tokens": record.prompt_tokens,
                "Feed Prompt Time": f"{record.feed_prompt_duration:.3f}s",
                "Generated Tokens": record.predict_tokens,
                "Generation Time": f"{record.predict_duration:.3f}s",
                "Tokens/Second": f"{tokens_per_second:.1f}",
            },
        )
    )
    console.print()
    console.print_json(record.to_json())

    if log_file is not None:
        path = append_inference_log(log_file, record)
        console.print(f"📝 [bold cyan]Telemetry appended to {path}[/bold cyan]")

    console.print()
    console.print(
        Panel(
            Text.assemble(
                ("✅ ", "bold green"),
                ("Generation Complete!", "bold white"),
                (
                    f" Generated {record.predict_tokens} tokens with "
                    f"{len(chain.active_stages)} active sampler stages",
                    "dim white",
                ),
            ),
            style="green",
            border_style="green",
        )
    )
