"""storyloom CLI - typer application entry point."""

from __future__ import annotations

import asyncio
import atexit
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, TypeVar

import typer
from dotenv import load_dotenv
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from storyloom.assistant import AssistantError, SceneAssistant
from storyloom.config import (
    CONFIG_FILENAME,
    ProjectConfig,
    ProjectConfigError,
    create_default_config,
    load_project_config,
    write_project_config,
)
from storyloom.graph.algorithms import gated_scenes, visible_scenes
from storyloom.graph.errors import GraphIntegrityError
from storyloom.models.game import ProgressionSlug, SceneId
from storyloom.observability import close_file_logging, configure_logging, get_logger
from storyloom.persistence import FileGateway, JsonKeyValueStore, PersistenceError
from storyloom.providers import ProviderError
from storyloom.session import SessionError
from storyloom.workspace import Workspace

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from storyloom.session import PlaySession

T = TypeVar("T")

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="loom",
    help="storyloom: branching narrative editor and player.",
    no_args_is_help=True,
)
flag_app = typer.Typer(help="Fire or forget progressions in the play session.")
app.add_typer(flag_app, name="flag")

console = Console()
log = get_logger(__name__)

# Default directory for projects
DEFAULT_PROJECTS_DIR = Path("projects")

# Global state for logging flags (set by callback, used by commands)
_verbose: int = 0
_log_enabled: bool = False
_projects_dir: Path = DEFAULT_PROJECTS_DIR

ProjectOption = Annotated[
    Path | None,
    typer.Option(
        "--project",
        "-p",
        help="Project directory. Can be a path or name (looks in --projects-dir).",
    ),
]


def _is_interactive_tty() -> bool:
    """Check if stdin/stdout are connected to a TTY."""
    return sys.stdin.isatty() and sys.stdout.isatty()


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log: Annotated[
        bool,
        typer.Option("--log", help="Enable file logging to {project}/logs/debug.jsonl."),
    ] = False,
    projects_dir: Annotated[
        Path,
        typer.Option(
            "--projects-dir",
            "-d",
            help="Base directory for projects (default: ./projects).",
            envvar="LOOM_PROJECTS_DIR",
        ),
    ] = DEFAULT_PROJECTS_DIR,
) -> None:
    """storyloom: branching narrative editor and player."""
    global _verbose, _log_enabled, _projects_dir
    _verbose = verbose
    _log_enabled = log
    _projects_dir = projects_dir

    # File logging is configured later, once the project is known
    configure_logging(verbosity=verbose)


# =============================================================================
# Project helpers
# =============================================================================


def _configure_project_logging(project_path: Path) -> None:
    """Configure file logging if --log flag was set."""
    if _log_enabled:
        configure_logging(verbosity=_verbose, log_to_file=True, project_path=project_path)
        atexit.register(close_file_logging)


def _resolve_project_path(project: Path | None) -> Path:
    """Resolve project path from argument.

    Resolution order:
    1. If project is None, use current directory
    2. If project exists as given, use it
    3. If project is a name (no path separators), look in _projects_dir
    """
    if project is None:
        return Path()
    if project.exists():
        return project
    if len(project.parts) == 1:
        projects_path = _projects_dir / project
        if projects_path.exists():
            return projects_path
    # Returned as-is; _load_config reports the missing project.yaml
    return project


def _load_config(project_path: Path) -> ProjectConfig:
    """Load project.yaml, exiting with an error if it is missing or broken."""
    if not (project_path / CONFIG_FILENAME).exists():
        console.print(
            f"[red]Error:[/red] No {CONFIG_FILENAME} found. "
            "Run 'loom init <name>' first or use --project."
        )
        raise typer.Exit(1)
    try:
        return load_project_config(project_path)
    except ProjectConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None


def _with_workspace(
    project: Path | None,
    fn: Callable[[Workspace, ProjectConfig], Awaitable[T]],
) -> T:
    """Open the project's workspace, run ``fn`` and save on the way out."""
    project_path = _resolve_project_path(project)
    config = _load_config(project_path)
    _configure_project_logging(project_path)

    async def _run() -> T:
        gateway = FileGateway(config.data_path(project_path))
        store = JsonKeyValueStore(config.session_path(project_path))
        workspace = await Workspace.open(
            gateway,
            game=config.game,
            session_store=store,
            delay=config.save_delay,
        )
        try:
            return await fn(workspace, config)
        finally:
            await workspace.close()

    try:
        return asyncio.run(_run())
    except (PersistenceError, GraphIntegrityError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None


def _render_scene(session: PlaySession) -> None:
    """Print the current scene and its numbered actions."""
    scene = session.current_scene
    if scene is None:
        console.print("[yellow]No current scene.[/yellow] Run 'loom reset' to start over.")
        return

    text = session.displayed_text
    console.print()
    console.print(
        Panel(
            escape(text) if text else "[dim](no text)[/dim]",
            title=escape(scene.title),
            title_align="left",
            border_style="cyan",
        )
    )
    if not scene.actions:
        console.print("  [dim]The story ends here.[/dim]")
    for index, action in enumerate(scene.actions):
        marker = "" if action.next_scene else " [dim](dead end)[/dim]"
        console.print(f"  [bold]{index}[/bold]. {escape(action.title)}{marker}")


# =============================================================================
# Commands
# =============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    from storyloom import __version__

    console.print(f"storyloom v{__version__}")


def _init_project(
    name: str,
    parent_dir: Path,
    game: str | None = None,
    provider: str | None = None,
) -> Path:
    """Create a new project directory with config and data directory.

    Raises:
        typer.Exit: If the directory already exists.
    """
    parent_dir.mkdir(parents=True, exist_ok=True)

    project_path = parent_dir / name
    if project_path.exists():
        console.print(f"[red]Error:[/red] Directory '{project_path}' already exists")
        raise typer.Exit(1)
    project_path.mkdir(parents=True)

    config = create_default_config(name, game=game, provider=provider)
    config.data_path(project_path).mkdir()
    write_project_config(project_path, config)
    return project_path


@app.command()
def init(
    name: Annotated[str, typer.Argument(help="Project name")],
    path: Annotated[
        Path | None,
        typer.Option(
            "--path",
            help="Parent directory for the project (default: --projects-dir).",
        ),
    ] = None,
    game: Annotated[
        str | None,
        typer.Option("--game", help="Game selector used in document names."),
    ] = None,
    provider: Annotated[
        str | None,
        typer.Option(
            "--provider",
            help="Assistant LLM provider (e.g., ollama/qwen3:4b-instruct-32k, openai/gpt-5-mini).",
        ),
    ] = None,
) -> None:
    """Initialize a new narrative project.

    Creates a project directory with:
    - project.yaml: Project configuration
    - data/: Narrative, layout and session documents
    """
    parent_dir = path if path is not None else _projects_dir
    project_path = _init_project(name, parent_dir, game=game, provider=provider)

    console.print(f"[green]✓[/green] Created project: [bold]{name}[/bold]")
    console.print(f"  Location: {project_path.absolute()}")


@app.command()
def scenes(
    project: ProjectOption = None,
    show_all: Annotated[
        bool,
        typer.Option("--all", "-a", help="List every scene, not only visible ones."),
    ] = False,
) -> None:
    """List the scenes visible under the current play session."""

    async def _list(workspace: Workspace, config: ProjectConfig) -> None:
        repository = workspace.repository
        session = workspace.session
        listed = (
            list(repository.scenes.values())
            if show_all
            else visible_scenes(repository.scenes, session.progressions)
        )
        gates = gated_scenes(repository.scenes)

        table = Table(title=f"Scenes: {escape(config.name)}")
        table.add_column("", width=1)
        table.add_column("ID", style="cyan")
        table.add_column("Title", style="bold")
        table.add_column("Actions", justify="right")
        table.add_column("Gated by", style="dim")
        for scene in listed:
            marker = "[green]▶[/green]" if scene.id == session.current_scene_id else ""
            gate = ", ".join(sorted(gates.get(scene.id, ()))) or "-"
            table.add_row(
                marker, scene.id, escape(scene.title), str(len(scene.actions)), escape(gate)
            )

        console.print()
        console.print(table)
        if session.progressions:
            console.print(f"Progressions: {escape(', '.join(session.progressions))}")
        console.print()

    _with_workspace(project, _list)


@app.command()
def connections(project: ProjectOption = None) -> None:
    """List the visual connections between scenes."""

    async def _list(workspace: Workspace, config: ProjectConfig) -> None:
        table = Table(title=f"Connections: {escape(config.name)}")
        table.add_column("Connection", style="cyan")
        table.add_column("To scene", style="bold")
        table.add_column("From (x, y)", justify="right")
        table.add_column("To (x, y)", justify="right")
        for connection in workspace.connections.connections.values():
            to_point = (
                f"{connection.to_x:g}, {connection.to_y:g}"
                if connection.to_x is not None and connection.to_y is not None
                else "-"
            )
            table.add_row(
                connection.id,
                connection.to_scene_id or "-",
                f"{connection.from_x:g}, {connection.from_y:g}",
                to_point,
            )
        console.print()
        console.print(table)
        console.print()

    _with_workspace(project, _list)


@app.command()
def play(project: ProjectOption = None) -> None:
    """Play the narrative interactively.

    Enter an action number to take it, 'reset' to start over, or 'quit'.
    """
    if not _is_interactive_tty():
        console.print(
            "[red]Error:[/red] 'loom play' needs an interactive terminal. "
            "Use 'loom choose INDEX' instead."
        )
        raise typer.Exit(1)

    async def _loop(workspace: Workspace, _config: ProjectConfig) -> None:
        session = workspace.session
        prompt: PromptSession[str] = PromptSession()
        while True:
            _render_scene(session)
            try:
                with patch_stdout():
                    answer = await prompt.prompt_async(HTML("<b><ansicyan>Choose</ansicyan></b>: "))
            except (EOFError, KeyboardInterrupt):
                break

            answer = answer.strip().lower()
            if answer in ("q", "quit"):
                break
            if answer in ("r", "reset"):
                session.reset()
                continue
            if not answer.isdigit():
                console.print("[yellow]Enter an action number, 'reset' or 'quit'.[/yellow]")
                continue
            try:
                session.choose(int(answer))
            except (SessionError, GraphIntegrityError) as e:
                console.print(f"[red]{escape(str(e))}[/red]")

    _with_workspace(project, _loop)


@app.command()
def choose(
    index: Annotated[int, typer.Argument(help="Number of the action to take.")],
    project: ProjectOption = None,
) -> None:
    """Take one action in the play session."""

    async def _choose(workspace: Workspace, _config: ProjectConfig) -> None:
        try:
            workspace.session.choose(index)
        except (SessionError, GraphIntegrityError) as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(1) from None
        _render_scene(workspace.session)

    _with_workspace(project, _choose)


@app.command()
def reset(project: ProjectOption = None) -> None:
    """Start the play session over at the initial scene."""

    async def _reset(workspace: Workspace, _config: ProjectConfig) -> None:
        workspace.session.reset()
        console.print("[green]✓[/green] Session reset")
        _render_scene(workspace.session)

    _with_workspace(project, _reset)


@flag_app.command("add")
def flag_add(
    slug: Annotated[str, typer.Argument(help="Progression slug to fire.")],
    project: ProjectOption = None,
) -> None:
    """Fire a progression and jump to the scene it leads to."""

    async def _add(workspace: Workspace, _config: ProjectConfig) -> None:
        if workspace.session.add_progression(ProgressionSlug(slug)):
            console.print(f"[green]✓[/green] Progression '{escape(slug)}' added")
        else:
            console.print(f"[dim]Progression '{escape(slug)}' was already set[/dim]")
        _render_scene(workspace.session)

    _with_workspace(project, _add)


@flag_app.command("remove")
def flag_remove(
    slug: Annotated[str, typer.Argument(help="Progression slug to forget.")],
    project: ProjectOption = None,
) -> None:
    """Forget a progression."""

    async def _remove(workspace: Workspace, _config: ProjectConfig) -> None:
        if workspace.session.remove_progression(ProgressionSlug(slug)):
            console.print(f"[green]✓[/green] Progression '{escape(slug)}' removed")
        else:
            console.print(f"[dim]Progression '{escape(slug)}' was not set[/dim]")

    _with_workspace(project, _remove)


@app.command()
def generate(
    scene_id: Annotated[str, typer.Argument(help="Scene holding the action.")],
    action_index: Annotated[int, typer.Argument(help="Number of the action to continue.")],
    notes: Annotated[
        str | None,
        typer.Option("--notes", "-n", help="Guidance for the assistant."),
    ] = None,
    provider: Annotated[
        str | None,
        typer.Option("--provider", help="LLM provider override (e.g., openai/gpt-5-mini)."),
    ] = None,
    project: ProjectOption = None,
) -> None:
    """Write the scene behind an action with the LLM assistant."""

    async def _generate(workspace: Workspace, config: ProjectConfig) -> None:
        provider_string = provider or config.assistant.get_provider()
        try:
            assistant = SceneAssistant.from_provider(provider_string)
            with console.status("[dim]Writing scene...[/dim]"):
                scene = await workspace.generate_scene(
                    assistant, SceneId(scene_id), action_index, notes
                )
        except (ProviderError, AssistantError, GraphIntegrityError) as e:
            log.error("generate_failed", scene_id=scene_id, error=str(e))
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(1) from None

        console.print(
            f"[green]✓[/green] Created scene [bold]{escape(scene.title)}[/bold] ({scene.id})"
        )
        for index, action in enumerate(scene.actions):
            console.print(f"  {index}. {escape(action.title)}")

    _with_workspace(project, _generate)


if __name__ == "__main__":
    app()
