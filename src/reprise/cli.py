"""Command line entry point: ``reprise run <file>``."""

from __future__ import annotations

import asyncio
import importlib.util
from pathlib import Path
from types import ModuleType
from typing import Any

import typer
from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

from reprise.config import get_settings
from reprise.errors import RepriseError
from reprise.logging_utils import configure_logging
from reprise.plugins import PluginManager
from reprise.prompt import DescribeFunction, is_describing_function
from reprise.runner import run_prompt

PROMPT_SUFFIX = ".prompt.py"

app = typer.Typer(
    name="reprise",
    help="Run stateful, tool-using prompt scripts.",
    add_completion=False,
    no_args_is_help=True,
)


class CliError(RepriseError):
    """Raised when a prompt script cannot be loaded or validated."""


class ScriptConfig(BaseModel):
    """Module-level ``CONFIG`` of a prompt script."""

    model_config = ConfigDict(extra="forbid")

    model: str | None = None
    max_steps: int | None = None
    max_tokens: int | None = None


def load_script(path: Path) -> ModuleType:
    if not path.name.endswith(PROMPT_SUFFIX):
        raise CliError(f"Prompt files must end with {PROMPT_SUFFIX}: {path}")
    if not path.is_file():
        raise CliError(f"File not found: {path}")

    module_name = path.name[: -len(PROMPT_SUFFIX)].replace("-", "_").replace(".", "_") or "prompt"
    spec = importlib.util.spec_from_file_location(f"reprise_script_{module_name}", path)
    if spec is None or spec.loader is None:
        raise CliError(f"Cannot load prompt file: {path}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise CliError(f"Failed to import {path}: {exc}") from exc
    return module


def resolve_entry(module: ModuleType) -> tuple[DescribeFunction, ScriptConfig]:
    main = getattr(module, "main", None)
    if main is None:
        raise CliError("Prompt file must define a main(prompt) function")
    if not is_describing_function(main):
        raise CliError("main must be a function accepting the prompt")
    raw_config: Any = getattr(module, "CONFIG", None) or {}
    try:
        config = ScriptConfig.model_validate(raw_config)
    except ValidationError as exc:
        raise CliError(f"Invalid CONFIG: {exc}") from exc
    return main, config


@app.command()
def run(
    file: Path = typer.Argument(..., help="Prompt script ending with .prompt.py"),  # noqa: B008
    model: str | None = typer.Option(None, "--model", "-m", help="Model in provider:model format"),
    max_steps: int | None = typer.Option(None, "--max-steps", help="Maximum number of model steps"),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level"),
) -> None:
    """Run a prompt script and print the final response."""

    configure_logging(profile="cli", level=log_level)
    plugin_manager = PluginManager()
    try:
        plugin_manager.load_entrypoints()
        module = load_script(file)
        describe, config = resolve_entry(module)
        settings = get_settings(
            model=model or config.model,
            max_steps=max_steps or config.max_steps,
            max_tokens=config.max_tokens,
        )
        settings.require_model()
    except RepriseError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    logger.info("cli.run file={} model={}", file, settings.model)
    try:
        result = asyncio.run(
            run_prompt(describe, model=settings.model, settings=settings, plugin_manager=plugin_manager)
        )
    except RepriseError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc
    typer.echo(result.text)


@app.command()
def version() -> None:
    """Show the installed version."""

    from reprise import __version__

    typer.echo(__version__)
