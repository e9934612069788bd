"""
This module contains the command-line interface for promptfinder.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import typer
from rich.console import Console

from promptfinder.config import Config, ModelSpec, OptimizationConfig, load_cfg
from promptfinder.console.log_view import (
    ConsoleProgressLog,
    render_summary_table,
    render_version_tree,
)
from promptfinder.core.optimizer import PromptOptimizer
from promptfinder.core.store import VersionStore
from promptfinder.core.templates import extract_variables
from promptfinder.llm.client import LLMProvider
from promptfinder.reporting import render_run_markdown, result_to_dict
from promptfinder.utils.logging import setup_logging

app = typer.Typer(add_completion=False)

CONFIG_CANDIDATES = ("promptfinder.toml", "promptfinder.json")


def _resolve_config_path(
    explicit: Optional[Path], *, cwd: Optional[Path] = None
) -> tuple[Optional[Path], str]:
    if explicit is not None:
        if not explicit.is_file():
            raise typer.BadParameter(f"Config file not found: {explicit}")
        return explicit, f"Using config file: {explicit}"
    base = cwd or Path.cwd()
    for name in CONFIG_CANDIDATES:
        candidate = base / name
        if candidate.is_file():
            return candidate, f"Using config file from CWD: {candidate}"
    return None, "No config file found; using default settings."


def _read_text_arg(value: str) -> str:
    path = Path(value)
    try:
        is_file = path.is_file()
    except OSError:
        # Too long or otherwise invalid as a path: it is literal text.
        return value
    return path.read_text(encoding="utf-8") if is_file else value


def _parse_variables(
    pairs: Optional[List[str]], vars_file: Optional[Path]
) -> dict[str, Any]:
    variables: dict[str, Any] = {}
    if vars_file is not None:
        data = json.loads(vars_file.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise typer.BadParameter("--vars-file must contain a JSON object.")
        variables.update(data)
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected KEY=VALUE, got '{pair}'.")
        variables[key.strip()] = value
    return variables


def _execute_run(
    *,
    template: str,
    objective: str,
    variables: dict[str, Any],
    cfg: Config,
    config_msg: str,
    api_key: Optional[str],
    output: Optional[Path],
    json_output: Optional[Path],
    log_file: Optional[Path],
    quiet: bool,
) -> int:
    setup_logging(
        log_dir=cfg.logging.log_dir,
        level=cfg.logging.level,
        quiet=quiet,
        log_file=log_file,
    )
    logging.getLogger().info(config_msg)
    unfilled = [name for name in extract_variables(template) if name not in variables]
    if unfilled:
        logging.getLogger().warning(
            "Template placeholders without a value: %s", ", ".join(unfilled)
        )
    console = Console(stderr=True, quiet=quiet)

    config = OptimizationConfig(
        initial_prompt=template,
        objective=objective,
        variables=variables,
        api_key=api_key,
    )
    provider = LLMProvider.from_config(cfg.llm, api_key=config.api_key)
    store = VersionStore()
    optimizer = PromptOptimizer(
        config,
        provider,
        cfg=cfg,
        log=ConsoleProgressLog(console),
        store=store,
    )
    result = optimizer.optimize()

    console.print(render_version_tree(result.versions))
    if result.versions:
        console.print(render_summary_table(result.versions))

    if output is not None:
        output.write_text(
            render_run_markdown(result, cfg=cfg, objective=objective),
            encoding="utf-8",
        )
        logging.getLogger().info("Report written to %s", output)
    if json_output is not None:
        json_output.write_text(
            json.dumps(result_to_dict(result), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        logging.getLogger().info("Run data written to %s", json_output)

    best = result.best
    if best is not None:
        typer.echo(best.prompt)
    if result.error:
        console.print(f"[bold red]Optimization failed:[/] {result.error}")
        return 1
    return 0


@app.command()
def cli(
    template: Optional[str] = typer.Argument(
        None, help="Initial prompt template. Can be a string or a file path."
    ),
    objective: Optional[str] = typer.Option(
        None, "-O", "--objective", help="Desired output (string or file path)."
    ),
    var: Optional[List[str]] = typer.Option(
        None,
        "-v",
        "--var",
        help="Template variable as KEY=VALUE. Can be specified multiple times.",
    ),
    vars_file: Optional[Path] = typer.Option(
        None, "--vars-file", help="JSON file with template variables."
    ),
    config: Optional[Path] = typer.Option(
        None, "-c", "--config", help="Path to a TOML or JSON config file."
    ),
    output: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Write a markdown report to this path."
    ),
    json_output: Optional[Path] = typer.Option(
        None, "--json-output", help="Write the full version tree as JSON."
    ),
    model: Optional[str] = typer.Option(
        None, "-m", "--model", help="Use a single LLM model instead of the ensemble."
    ),
    api_key: Optional[str] = typer.Option(
        None, "--api-key", envvar="PROMPTFINDER_API_KEY", help="API key for the LLM."
    ),
    workers: Optional[int] = typer.Option(
        None, "-w", "--workers", help="Evaluate sibling variations in parallel."
    ),
    log_file: Optional[Path] = typer.Option(
        None, help="Path to write detailed logs."
    ),
    quiet: bool = typer.Option(
        False, "-q", "--quiet", help="Suppress progress output and non-essential logging."
    ),
):
    """Optimize a prompt template against an objective."""
    # --- Configuration Layering ---
    config_path, config_msg = _resolve_config_path(config)
    cfg = load_cfg(config_path)
    if model is not None:
        cfg.llm.ensemble = [ModelSpec(model=model, p=1.0)]
    if workers is not None:
        if workers < 1:
            raise typer.BadParameter("--workers must be >= 1.")
        cfg.evaluation.max_workers = workers

    # --- Input Handling ---
    if template is None:
        if not sys.stdin.isatty():
            template = sys.stdin.read()
        else:
            typer.echo(
                "Error: No template provided. Pass a string, a file path, or pipe it via stdin."
            )
            raise typer.Exit(code=1)
    else:
        template = _read_text_arg(template)

    if not template.strip():
        typer.echo("Error: Template is empty.")
        raise typer.Exit(code=1)
    if not objective:
        typer.echo("Error: --objective is required.")
        raise typer.Exit(code=1)

    code = _execute_run(
        template=template,
        objective=_read_text_arg(objective),
        variables=_parse_variables(var, vars_file),
        cfg=cfg,
        config_msg=config_msg,
        api_key=api_key,
        output=output,
        json_output=json_output,
        log_file=log_file,
        quiet=quiet,
    )
    raise typer.Exit(code=code)


if __name__ == "__main__":
    app()
