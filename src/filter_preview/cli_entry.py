"""Click CLI wiring and entry points for filter_preview."""

from __future__ import annotations

import asyncio
import json
import logging
import shlex
import shutil
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from src.config_loader import ConfigError, fresh_app_config, load_config
from src.datatypes import AppConfig
from src.filter_preview.cache.frames import quantize_timestamp
from src.filter_preview.filters.chain import FilterState, build_filter_args, build_filter_chain
from src.filter_preview.filters.params import FilterParameter, format_domain_value
from src.filter_preview.render.errors import RenderError
from src.filter_preview.scheduler.events import PreviewDisplay
from src.filter_preview.session import ExportUnavailable, PreviewSession

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "FILTER_PREVIEW_CONFIG"

_SCRUB_HELP = """\
Commands:
  seek SECONDS        move the playhead
  set KEY SLIDER      set brightness/contrast/saturation/gamma (0-100)
  custom [EXPR]       set or clear the custom filter expression
  lut [PATH]          set or clear the lut3d file
  play | pause        toggle playback (playing hides the preview)
  reset               reset all filters
  chain               show the current filter chain
  status              show the current preview
  export              re-encode the whole video with the current filters
  quit                leave
"""

session_factory: Callable[[AppConfig], PreviewSession] = PreviewSession


def _configure_logging(verbose: bool, quiet: bool, no_color: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    handler = RichHandler(
        console=Console(stderr=True, no_color=no_color),
        show_path=False,
        show_time=verbose,
        markup=False,
    )
    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)


def _load_app_config(config_path: Optional[str]) -> AppConfig:
    if not config_path:
        return fresh_app_config()
    try:
        return load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(f"Config error: {exc}") from exc


def _filter_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the shared filter flags (eq values are given in ffmpeg units)."""

    decorators = [
        click.option("--custom", "custom", default="", help="Custom ffmpeg filter expression, e.g. eq=saturation=1.2"),
        click.option("--lut", "lut", default="", help="Path to a .cube file applied via lut3d."),
    ]
    for param in reversed(list(FilterParameter)):
        decorators.append(
            click.option(
                f"--{param.key}",
                param.key,
                type=click.FloatRange(param.domain_min, param.domain_max),
                default=None,
                help=f"eq {param.key} ({param.domain_min:g}..{param.domain_max:g}, default {param.default:g}).",
            )
        )
    for decorator in decorators:
        func = decorator(func)
    return func


def _state_from_options(options: Dict[str, Any]) -> FilterState:
    state = FilterState.default()
    for param in FilterParameter:
        value = options.get(param.key)
        if value is not None:
            state = state.with_domain_value(param, value)
    return state.with_custom_expression(options.get("custom") or "").with_lut3d_path(options.get("lut") or "")


def _console(ctx: click.Context) -> Console:
    return ctx.obj["console"]


def _config(ctx: click.Context) -> AppConfig:
    return ctx.obj["config"]


def _print_render_error(console: Console, exc: RenderError) -> None:
    console.print(f"[red]{escape(str(exc))}[/]")
    diagnostic = exc.diagnostic
    if diagnostic and diagnostic != str(exc):
        console.print(escape(diagnostic.rstrip()), highlight=False)


@click.group()
@click.option(
    "--config",
    "config_path",
    envvar=CONFIG_ENV_VAR,
    type=click.Path(dir_okay=False),
    default=None,
    help=f"Optional path to a TOML config file (also read from ${CONFIG_ENV_VAR}).",
)
@click.option("--verbose", is_flag=True, help="Log ffmpeg command lines and timings.")
@click.option("--quiet", is_flag=True, help="Only log warnings and errors.")
@click.option("--no-color", is_flag=True, help="Disable ANSI colour output.")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], verbose: bool, quiet: bool, no_color: bool) -> None:
    """Preview ffmpeg colour filters on single frames and export the result."""

    _configure_logging(verbose, quiet, no_color)
    ctx.ensure_object(dict)
    ctx.obj["config"] = _load_app_config(config_path)
    ctx.obj["console"] = Console(no_color=no_color)


@main.command("chain")
@_filter_options
@click.option("--json", "json_mode", is_flag=True, help="Emit fragments and ffmpeg arguments as JSON.")
@click.pass_context
def chain_command(ctx: click.Context, json_mode: bool, **options: Any) -> None:
    """Show the filter chain the given options produce."""

    state = _state_from_options(options)
    fragments = build_filter_chain(state)
    args = build_filter_args(fragments)
    if json_mode or _config(ctx).cli.emit_json:
        payload = {
            "fragments": fragments,
            "args": args,
            "eq": {param.key: format_domain_value(param, state.value(param)) for param in FilterParameter},
        }
        click.echo(json.dumps(payload))
        return
    console = _console(ctx)
    if not fragments:
        console.print("[dim]no filters[/]")
        return
    for index, fragment in enumerate(fragments, start=1):
        console.print(f"{index}. {escape(fragment)}", highlight=False)
    click.echo(shlex.join(args))


async def _render_single(
    config: AppConfig, source: Path, timestamp: float, state: FilterState, output: Path
) -> PreviewDisplay:
    async with session_factory(config) as session:
        session.load_source(source)
        session.apply_filters(state)
        session.seek(timestamp)
        display = await session.settle()
        if display.frame_path is not None:
            # the cache directory goes away with the session
            shutil.copyfile(display.frame_path, output)
        return display


@main.command("frame")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--at", "timestamp", type=float, required=True, help="Timeline position in seconds.")
@click.option(
    "--output",
    "output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where to write the filtered frame (default: <source>-<ms>.jpeg in the current directory).",
)
@_filter_options
@click.pass_context
def frame_command(
    ctx: click.Context,
    source: Path,
    timestamp: float,
    output: Optional[Path],
    **options: Any,
) -> None:
    """Render one filtered preview frame through the preview pipeline."""

    try:
        millis = quantize_timestamp(timestamp)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--at") from exc
    state = _state_from_options(options)
    target = output or Path.cwd() / f"{source.stem}-{millis}.jpeg"
    display = asyncio.run(_render_single(_config(ctx), source, timestamp, state, target))
    console = _console(ctx)
    if display.error is not None:
        console.print("[red]Preview failed[/]")
        console.print(escape(display.error.rstrip()), highlight=False)
        raise click.exceptions.Exit(1)
    if display.frame_path is None:
        raise click.ClickException("No preview frame was produced")
    console.print(f"[green]Wrote[/] {escape(str(target))}")


async def _export(config: AppConfig, source: Path, state: FilterState) -> Path:
    async with session_factory(config) as session:
        session.load_source(source)
        session.apply_filters(state)
        return await session.export()


@main.command("export")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_filter_options
@click.pass_context
def export_command(ctx: click.Context, source: Path, **options: Any) -> None:
    """Re-encode SOURCE with the filter chain (written next to it as <name>-encoded.mp4)."""

    console = _console(ctx)
    state = _state_from_options(options)
    try:
        output = asyncio.run(_export(_config(ctx), source, state))
    except RenderError as exc:
        console.print("[red]Failed to export[/]")
        _print_render_error(console, exc)
        raise click.exceptions.Exit(1) from exc
    console.print(f"[green]Done[/] {escape(str(output))}")


class _ScrubShell:
    """Line-oriented front-end feeding a preview session."""

    def __init__(self, session: PreviewSession, console: Console) -> None:
        self._session = session
        self._console = console

    def on_display(self, display: PreviewDisplay) -> None:
        if display.frame_path is not None:
            self._console.print(f"[green]preview[/] {escape(str(display.frame_path))}")
        elif display.error is not None:
            first_line = display.error.strip().splitlines()[-1] if display.error.strip() else "error"
            self._console.print(f"[red]error[/] {escape(first_line)}")

    async def handle(self, line: str) -> bool:
        """Run one command line; returns ``False`` when the shell should exit."""

        try:
            parts = shlex.split(line)
        except ValueError as exc:
            self._console.print(f"[red]{escape(str(exc))}[/]")
            return True
        if not parts:
            return True
        command, args = parts[0].lower(), parts[1:]
        session = self._session
        try:
            if command in {"quit", "exit", "q"}:
                return False
            if command == "help":
                self._console.print(_SCRUB_HELP, highlight=False, markup=False)
            elif command == "seek":
                session.seek(float(args[0]))
            elif command == "set":
                session.set_filter_value(FilterParameter.from_key(args[0]), float(args[1]))
            elif command == "custom":
                session.set_custom_expression(" ".join(args))
            elif command == "lut":
                session.set_lut3d_path(" ".join(args))
            elif command == "play":
                session.set_playing(True)
            elif command == "pause":
                session.set_playing(False)
            elif command == "reset":
                session.reset_filters()
            elif command == "chain":
                self._console.print(escape(",".join(session.filter_chain())) or "[dim]no filters[/]")
            elif command == "status":
                display = await session.settle()
                self._console.print(
                    escape(str(display.frame_path or display.error or "no preview")), highlight=False
                )
            elif command == "export":
                self._console.print("Encoding started...")
                output = await session.export()
                self._console.print(f"[green]Done[/] {escape(str(output))}")
            else:
                self._console.print(f"[yellow]Unknown command {escape(command)!r}; try 'help'[/]")
        except (IndexError, ValueError) as exc:
            self._console.print(f"[red]Invalid arguments for {escape(command)}: {escape(str(exc))}[/]")
        except ExportUnavailable as exc:
            self._console.print(f"[red]{escape(str(exc))}[/]")
        except RenderError as exc:
            self._console.print("[red]Failed to export[/]")
            _print_render_error(self._console, exc)
        return True


async def _scrub(config: AppConfig, source: Path, console: Console) -> None:
    async with session_factory(config) as session:
        shell = _ScrubShell(session, console)
        assert session.scheduler is not None
        session.scheduler.subscribe(shell.on_display)
        session.load_source(source)
        console.print(f"Loaded {escape(source.name)}; type 'help' for commands.")
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                break
            if not await shell.handle(line):
                break
        await session.settle()


@main.command("scrub")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def scrub_command(ctx: click.Context, source: Path) -> None:
    """Interactively scrub SOURCE and tweak filters, rendering previews as you go."""

    asyncio.run(_scrub(_config(ctx), source, _console(ctx)))


if __name__ == "__main__":
    main()
