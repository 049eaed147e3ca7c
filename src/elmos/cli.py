"""
Command-line interface for elmos.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional

import click

from . import __version__
from .build_manager import BuildFailure, ModuleBuilder, format_build_errors
from .config_manager import BuildConfig, ConfigManager
from .module_registry import ModuleRegistry, NotFoundError
from .queue_manager import Outcome, QueueManager
from .queue_store import PersistenceError, QueueStore, WILDCARD
from .status import StatusReporter, format_status_table
from .templates import TemplateManager

logger = logging.getLogger(__name__)


class Action(Enum):
    BUILD = "build"
    CLEAN = "clean"
    STATUS = "status"
    INFO = "info"
    INSMOD = "insmod"
    RMMOD = "rmmod"
    RESET = "reset"
    HELP = "help"
    LIST = "list"
    NEW = "new"
    HEADERS = "headers"


@dataclass
class Workspace:
    """Components wired from one loaded configuration."""

    config: BuildConfig
    registry: ModuleRegistry
    store: QueueStore

    @classmethod
    def from_config(cls, config: BuildConfig) -> "Workspace":
        return cls(
            config=config,
            registry=ModuleRegistry(config.modules_path),
            store=QueueStore(config.state_path),
        )

    def builder(self) -> ModuleBuilder:
        return ModuleBuilder(self.config, self.registry)


def ok(message: str) -> None:
    click.echo(f"  [{click.style('OK', fg='green')}] {message}")


def err(message: str) -> None:
    click.echo(f"  [{click.style('ERR', fg='red')}] {message}", err=True)


def warn(message: str) -> None:
    click.echo(f"  [{click.style('WARN', fg='yellow')}] {message}")


def _on_start(verb: str) -> Callable[[str], None]:
    def report(name: str) -> None:
        click.echo(f"  [{click.style(verb.upper(), fg='yellow')}] {verb.capitalize()}ing: {name}")

    return report


def handle_build(ctx: click.Context, ws: Workspace, name: Optional[str]) -> int:
    builder = ws.builder()
    try:
        results = builder.build_all(name=name, on_start=_on_start("build"))
    except BuildFailure as e:
        for result in e.completed:
            ok(f"Built: {result.module}")
        err(f"Failed to build module: {e.module}")
        click.echo(format_build_errors(e.result), err=True)
        return 1

    if not results:
        click.echo(f"  No modules found in {ws.config.modules_path}")
    for result in results:
        ok(f"Built: {result.module}")
    return 0


def handle_clean(ctx: click.Context, ws: Workspace, name: Optional[str]) -> int:
    builder = ws.builder()
    for result in builder.clean_all(name=name, on_start=_on_start("clean")):
        if result.success:
            ok(f"Cleaned: {result.module}")
        else:
            warn(f"Failed to clean module: {result.module} (exit {result.exit_code})")
    return 0


def handle_status(ctx: click.Context, ws: Workspace, name: Optional[str]) -> int:
    rows = StatusReporter(ws.registry, ws.store).report()
    click.echo(f"  [{click.style('STATUS', fg='green')}] Kernel Module Dashboard")
    click.echo(format_status_table(rows, color=click.get_text_stream("stdout").isatty()))
    return 0


def handle_info(ctx: click.Context, ws: Workspace, name: Optional[str]) -> int:
    if not name:
        err("Specify a module name.")
        return 1

    info = ws.registry.read_module_info(name)
    click.echo(f"  [{click.style('INFO', fg='green')}] Metadata for module: {name}")
    click.echo("  " + "-" * 50)
    click.echo(info.summary())
    return 0


def _enqueue(ws: Workspace, name: Optional[str], action: Action) -> int:
    item = name or WILDCARD
    if item != WILDCARD:
        ws.registry.list_modules(item)

    manager = QueueManager(ws.store)
    if action is Action.INSMOD:
        outcome = manager.enqueue_insmod(item)
        marker, label = click.style("+", fg="green"), "insmod"
    else:
        outcome = manager.enqueue_rmmod(item)
        marker, label = click.style("-", fg="red"), "rmmod"

    if outcome is Outcome.ALREADY_QUEUED:
        click.echo(f"  [=] Already queued for {label}: {item}")
    else:
        click.echo(f"  [{marker}] Queued for {label}: {item}")
    return 0


def handle_insmod(ctx: click.Context, ws: Workspace, name: Optional[str]) -> int:
    return _enqueue(ws, name, Action.INSMOD)


def handle_rmmod(ctx: click.Context, ws: Workspace, name: Optional[str]) -> int:
    return _enqueue(ws, name, Action.RMMOD)


def handle_reset(ctx: click.Context, ws: Workspace, name: Optional[str]) -> int:
    QueueManager(ws.store).reset()
    ok("Queues cleared.")
    return 0


def handle_help(ctx: click.Context, ws: Workspace, name: Optional[str]) -> int:
    click.echo(ctx.get_help())
    return 0


def handle_list(ctx: click.Context, ws: Workspace, name: Optional[str]) -> int:
    modules = ws.registry.list_modules(name)
    if not modules:
        click.echo(f"  No modules found in {ws.config.modules_path}")
        return 0

    click.echo("Available modules:")
    for i, mod in enumerate(modules, 1):
        desc = ws.registry.describe(mod)
        click.echo(f"  {i}. {mod}" + (f" - {desc}" if desc else ""))
    return 0


def handle_new(ctx: click.Context, ws: Workspace, name: Optional[str]) -> int:
    if not name:
        err("Specify a module name.")
        return 1

    module = TemplateManager(ws.config.modules_path).create_module(
        name,
        author=ctx.params.get("author"),
        description=ctx.params.get("description"),
    )
    ok(f"Created module: {module.source_path}")
    click.echo(f"  Edit {module.source_file} to implement your module")
    return 0


def handle_headers(ctx: click.Context, ws: Workspace, name: Optional[str]) -> int:
    result = ws.builder().prepare_headers()
    if not result.success:
        err("Failed to prepare kernel headers")
        click.echo(format_build_errors(result), err=True)
        return 1
    ok("Kernel headers prepared")
    return 0


HANDLERS: Dict[Action, Callable[[click.Context, Workspace, Optional[str]], int]] = {
    Action.BUILD: handle_build,
    Action.CLEAN: handle_clean,
    Action.STATUS: handle_status,
    Action.INFO: handle_info,
    Action.INSMOD: handle_insmod,
    Action.RMMOD: handle_rmmod,
    Action.RESET: handle_reset,
    Action.HELP: handle_help,
    Action.LIST: handle_list,
    Action.NEW: handle_new,
    Action.HEADERS: handle_headers,
}


@click.group()
@click.version_option(version=__version__, prog_name="elmos")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Configuration directory (default: $ELMOS_CONFIG_DIR or ~/.elmos)",
)
@click.pass_context
def main(ctx, verbose, config_dir):
    """elmos: Embedded Linux on MacOS - kernel module workflow."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="[%(asctime)s] %(name)s - %(levelname)s - %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_manager"] = ConfigManager(config_dir)


@main.command("module", add_help_option=False)
@click.argument("name", required=False)
@click.option("-b", "--build", "action", flag_value=Action.BUILD.value, help="Build all modules (or NAME)")
@click.option("-i", "--insmod", "action", flag_value=Action.INSMOD.value, help="Queue module(s) for loading in QEMU (default '*' for all)")
@click.option("-r", "--rmmod", "action", flag_value=Action.RMMOD.value, help="Queue module(s) for removal in QEMU")
@click.option("-c", "--clean", "action", flag_value=Action.CLEAN.value, help="Clean build artifacts")
@click.option("-n", "--reset", "action", flag_value=Action.RESET.value, help="Clear all INS/REM queues")
@click.option("-s", "--status", "action", flag_value=Action.STATUS.value, help="Show module build and queue dashboard")
@click.option("-f", "--info", "action", flag_value=Action.INFO.value, help="Display module metadata from source macros")
@click.option("-l", "--list", "action", flag_value=Action.LIST.value, help="List available modules")
@click.option("--new", "action", flag_value=Action.NEW.value, help="Create module NAME from template")
@click.option("--headers", "action", flag_value=Action.HEADERS.value, help="Prepare kernel headers (modules_prepare)")
@click.option("-h", "--help", "action", flag_value=Action.HELP.value, help="Show this message")
@click.option("--author", default=None, help="Author for --new")
@click.option("--description", default=None, help="Description for --new")
@click.pass_context
def module_cmd(ctx, name, action, author, description):
    """Build, queue and inspect out-of-tree kernel modules.

    With no option, builds all modules (or NAME).
    """
    selected = Action(action) if action else Action.BUILD
    ws = Workspace.from_config(ctx.obj["config_manager"].load())
    logger.debug(f"module action={selected.value} name={name}")

    try:
        code = HANDLERS[selected](ctx, ws, name)
    except (NotFoundError, PersistenceError, ValueError, FileExistsError, FileNotFoundError) as e:
        err(str(e))
        code = 1

    ctx.exit(code)


@main.group("config")
def config_group():
    """Show or change workspace configuration."""


@config_group.command("show")
@click.pass_context
def config_show(ctx):
    """Print the effective configuration."""
    manager = ctx.obj["config_manager"]
    config = manager.load()
    click.echo(f"# {manager.config_file}")
    for key, value in config.to_dict().items():
        click.echo(f"{key} = {'' if value is None else value}")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx, key, value):
    """Set KEY to VALUE."""
    try:
        ctx.obj["config_manager"].set_value(key, value)
    except ValueError as e:
        err(str(e))
        ctx.exit(1)
    ok(f"{key} = {value}")


if __name__ == "__main__":
    main()
