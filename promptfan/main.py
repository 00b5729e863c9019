"""Command-line interface for promptfan."""

import asyncio
import logging
import sys
from typing import Dict, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    REQUEST_TIMEOUT,
    Config,
    get_history_path,
)
from .context import QueryContext
from .errors import PromptFanError
from .providers import (
    DEFAULT_REGISTRY,
    OrchestrationService,
    ProviderResponse,
    with_custom_param,
    with_max_tokens,
    with_temperature,
)
from .storage import QueryHistory

app = typer.Typer(help="Send prompts to one or more LLM providers.")
console = Console()
err_console = Console(stderr=True)

EXIT_CODE_FAIL = 1


@app.callback()
def main(debug: bool = typer.Option(False, "--debug", help="Enable debug logging")):
    """promptfan CLI."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _read_prompt(text: Optional[str]) -> str:
    if text:
        return text
    if sys.stdin.isatty():
        raise typer.BadParameter("no input provided via argument or stdin")
    prompt = sys.stdin.read()
    if not prompt:
        raise typer.BadParameter("no input provided via argument or stdin")
    return prompt


def _open_history() -> Optional[QueryHistory]:
    try:
        return QueryHistory(get_history_path())
    except PromptFanError as e:
        err_console.print(f"[yellow]Warning:[/] query logging disabled - {e}")
        return None


def _truncate(text: str, max_len: int) -> str:
    text = text.replace("\n", " ")
    if len(text) > max_len:
        return text[:max_len - 3] + "..."
    return text


def _display_results(results: Dict[str, ProviderResponse]) -> None:
    table = Table(title="Provider responses")
    table.add_column("Provider")
    table.add_column("Model")
    table.add_column("Time", justify="right")
    table.add_column("Response")

    for name in sorted(results):
        result = results[name]
        if result.error is not None:
            preview = f"[red]ERROR: {escape(str(result.error))}[/]"
        else:
            lines = result.response.split("\n")
            preview = escape(_truncate(lines[0] + (" [...]" if len(lines) > 1 else ""), 60))
        table.add_row(result.provider, result.model, f"{int(result.elapsed_time * 1000)}ms", preview)

    console.print(table)

    console.print("\n[bold]Detailed responses:[/bold]")
    for name in sorted(results):
        result = results[name]
        console.print(f"\n[bold]## {result.provider}[/bold] ({result.model})\n")
        if result.error is not None:
            console.print(f"[red]Error:[/] {escape(str(result.error))}")
        else:
            console.print(result.response, markup=False)


async def _run_prompt(
    prompt: str,
    model: str,
    system: Optional[str],
    temperature: float,
    max_tokens: int,
    query_all: bool,
    verbose: bool,
    timeout: float,
) -> None:
    cfg = Config.load()
    api_keys = cfg.api_keys(DEFAULT_REGISTRY)

    options = [with_max_tokens(max_tokens), with_temperature(temperature)]
    if system:
        options.append(with_custom_param("system", system))

    if query_all and not api_keys:
        raise PromptFanError(
            "no API keys found. Set at least one provider API key with: "
            "promptfan set <provider> --api-key YOUR_API_KEY"
        )

    history = _open_history()
    ctx = QueryContext.with_timeout(timeout)
    try:
        async with OrchestrationService.from_api_keys(api_keys, history=history, timeout=timeout) as service:
            if query_all:
                with console.status("Querying all configured providers..."):
                    results = await service.query_all(ctx, prompt, *options)
                _display_results(results)
                return

            with console.status(f"Querying {model}..."):
                response, elapsed = await service.query_with_timing(ctx, prompt, model, *options)

            if verbose:
                table = Table(show_header=False)
                table.add_row("Model", model)
                table.add_row("Time", f"{int(elapsed * 1000)}ms")
                table.add_row("Prompt", escape(_truncate(prompt, 80)))
                console.print(table)
            console.print(response, markup=False)
            if not verbose:
                console.print(f"\n[dim]({int(elapsed * 1000)}ms)[/dim]")
    finally:
        if history is not None:
            history.close()


@app.command()
def prompt(
    text: Optional[str] = typer.Argument(None, help="Prompt text (read from stdin when omitted)"),
    model: str = typer.Option(DEFAULT_MODEL, "--model", "-m", help="LLM model to use"),
    system: Optional[str] = typer.Option(None, "--system", "-s", help="System prompt to provide context"),
    temperature: float = typer.Option(DEFAULT_TEMPERATURE, "--temperature", "-t", help="Sampling temperature (0.0-1.0)"),
    max_tokens: int = typer.Option(DEFAULT_MAX_TOKENS, "--max-tokens", help="Maximum tokens to generate"),
    query_all: bool = typer.Option(False, "--all", "-a", help="Query all configured providers and compare responses"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show timing and model details"),
    timeout: float = typer.Option(REQUEST_TIMEOUT, "--timeout", help="Overall timeout in seconds"),
):
    """Send a prompt to a model, or to every configured provider with --all."""
    try:
        prompt_text = _read_prompt(text)
        asyncio.run(_run_prompt(prompt_text, model, system, temperature, max_tokens, query_all, verbose, timeout))
    except (PromptFanError, ValueError) as e:
        err_console.print(f"[red]Error:[/] {escape(str(e))}")
        raise typer.Exit(EXIT_CODE_FAIL)


async def _load_history(limit: int, search: Optional[str]):
    with QueryHistory(get_history_path(), for_reading=True) as history:
        if search:
            return await history.search_queries(search, limit)
        return await history.get_recent_queries(limit)


@app.command()
def history(
    limit: int = typer.Option(10, "--limit", "-l", help="Number of queries to show"),
    detail: bool = typer.Option(False, "--detail", "-d", help="Show the most recent query in full"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Search for queries containing text"),
):
    """View query history."""
    try:
        queries = asyncio.run(_load_history(limit, search))
    except PromptFanError as e:
        err_console.print(f"[red]Error:[/] {escape(str(e))}")
        raise typer.Exit(EXIT_CODE_FAIL)

    if not queries:
        if search:
            console.print("No queries found matching your search.")
        else:
            console.print("No query history found.")
        return

    table = Table()
    table.add_column("Time")
    table.add_column("Model")
    table.add_column("Duration", justify="right")
    table.add_column("Prompt")
    for q in queries:
        table.add_row(
            q.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S"),
            q.model,
            f"{q.duration_ms}ms",
            escape(_truncate(q.prompt, 40)),
        )
    console.print(table)

    if detail:
        latest = queries[0]
        console.print("\n[bold]Latest Query Details:[/bold]")
        console.print(f"Time: {latest.timestamp.astimezone().strftime('%Y-%m-%d %H:%M:%S')}")
        console.print(f"Model: {latest.model}")
        console.print(f"Duration: {latest.duration_ms}ms")
        console.print(f"Temperature: {latest.temperature:.2f}")
        console.print("\n[bold]Prompt:[/bold]")
        console.print(latest.prompt, markup=False)
        console.print("\n[bold]Response:[/bold]")
        console.print(latest.response, markup=False)


@app.command()
def models():
    """List all supported models by provider."""
    table = Table()
    table.add_column("Provider")
    table.add_column("Model")
    for provider in DEFAULT_REGISTRY.providers():
        for model in sorted(DEFAULT_REGISTRY.models_for_provider(provider)):
            table.add_row(provider, model)
    console.print(table)


@app.command("set")
def set_provider(
    provider: str = typer.Argument(..., help="Provider name"),
    api_key: str = typer.Option(..., "--api-key", help="API key for the provider"),
):
    """Configure provider settings such as API keys."""
    try:
        cfg = Config.load()
        cfg.set_api_key(provider, api_key)
        path = cfg.save()
    except (ValueError, OSError) as e:
        err_console.print(f"[red]Error:[/] {escape(str(e))}")
        raise typer.Exit(EXIT_CODE_FAIL)

    console.print(f"API key for {provider} has been set.")
    console.print(f"Configuration saved to {path}")


if __name__ == "__main__":
    app()
