"""CLI interface for pyfilesearch."""

import logging
import threading
from pathlib import Path
from typing import Any, Optional

import click

from .api import FileSearchClient
from .cli_progress import run_sync_with_progress
from .config import config
from .exceptions import FileSearchAPIError, FileSearchError
from .models import QueryResult
from .output import OutputFormatter
from .query import ask_project, generate_example_questions
from .settings import ProjectSettings
from .sync import (
    DeletionOutcome,
    DeletionWatcher,
    MetadataStore,
    Project,
    RemoteStoreDirectory,
    StoreTeardown,
    SyncEngine,
)
from .utils import format_size

logger = logging.getLogger(__name__)


def require_client(ctx: Any, out: OutputFormatter) -> FileSearchClient:
    """Create the API client or exit with a configuration hint."""
    api_key = ctx.obj.get("api_key") or config.api_key
    if not api_key:
        out.error("API key not configured.")
        out.info("Run 'pyfilesearch init' or set GEMINI_API_KEY")
        ctx.exit(1)
    return FileSearchClient(api_key=api_key)


def load_settings(ctx: Any) -> ProjectSettings:
    return ProjectSettings(ctx.obj["project_dir"])


def load_project(ctx: Any, out: OutputFormatter) -> Project:
    """Build the project from the settings file or exit."""
    try:
        return Project.from_settings(load_settings(ctx))
    except FileSearchError as e:
        out.error(str(e))
        ctx.exit(1)
        raise  # Unreachable, ctx.exit raises


def resolve_project_name(ctx: Any, out: OutputFormatter, name: Optional[str]) -> str:
    if name:
        return name
    try:
        return load_settings(ctx).require_project_name()
    except FileSearchError as e:
        out.error(str(e))
        ctx.exit(1)
        raise


def print_answer(out: OutputFormatter, result: QueryResult) -> None:
    if out.json_output:
        out.output_json(
            {
                "text": result.text,
                "citations": [
                    {"title": c.title, "uri": c.uri, "text": c.text}
                    for c in result.citations
                ],
            }
        )
        return
    out.console.print(result.text, highlight=False)
    titles = sorted({c.title for c in result.citations if c.title})
    if titles:
        out.console.print("\n[bold]Sources:[/bold]")
        for title in titles:
            out.console.print(f"  • {title}", highlight=False)


@click.group()
@click.option("--api-key", "-k", envvar="GEMINI_API_KEY", help="Gemini API key")
@click.option(
    "--project-dir",
    "-p",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Directory holding document-sync.json (default: current directory)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pyfilesearch")
@click.pass_context
def main(
    ctx: Any,
    api_key: Optional[str],
    project_dir: Path,
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """pyfilesearch - Sync a local folder into a Gemini File Search store."""
    ctx.ensure_object(dict)
    ctx.obj["api_key"] = api_key
    ctx.obj["project_dir"] = project_dir.resolve()
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pyfilesearch").setLevel(logging.DEBUG)
        # Request lines of the HTTP client are noise at debug level
        logging.getLogger("httpx").setLevel(logging.WARNING)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option(
    "--api-key",
    "-k",
    prompt="Enter your Gemini API key",
    hide_input=True,
    help="Gemini API key",
)
@click.pass_context
def init(ctx: Any, api_key: str) -> None:
    """Initialize pyfilesearch configuration.

    Stores your API key in ~/.config/pyfilesearch/config for future use.
    """
    out: OutputFormatter = ctx.obj["out"]

    out.info("Validating API key...")
    try:
        with FileSearchClient(api_key=api_key) as client:
            valid = client.validate_api_key()
    except FileSearchAPIError as e:
        out.error(f"API key validation failed: {e}")
        valid = False

    if valid:
        out.success("API key is valid")
    else:
        out.error("API key validation failed: Invalid API key")
        if not click.confirm("Save API key anyway?", default=False):
            out.warning("Configuration cancelled.")
            ctx.exit(1)

    try:
        config.save_api_key(api_key)
    except OSError as e:
        out.error(f"Failed to save configuration: {e}")
        ctx.exit(1)
    out.success(f"Configuration saved to {config.get_config_path()}")


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Show configuration, project settings and connection status."""
    out: OutputFormatter = ctx.obj["out"]
    settings = load_settings(ctx)
    api_key = ctx.obj.get("api_key") or config.api_key
    project_name = settings.project_name
    watch_root = settings.resolve_watch_root()

    tracked_count = 0
    if project_name:
        tracked_count = len(MetadataStore(config.state_dir).load(project_name))

    connection = "not configured"
    if api_key:
        try:
            with FileSearchClient(api_key=api_key) as client:
                connection = "ok" if client.validate_api_key() else "invalid API key"
        except FileSearchAPIError as e:
            connection = f"error: {e}"

    data = {
        "settings_file": str(settings.path),
        "project_name": project_name,
        "watch_location": str(watch_root) if watch_root else None,
        "tracked_files": tracked_count,
        "connection": connection,
    }
    if out.json_output:
        out.output_json(data)
    else:
        out.output_table(
            "Status",
            ["Setting", "Value"],
            [[key.replace("_", " ").title(), str(value)] for key, value in data.items()],
        )

    if connection != "ok":
        ctx.exit(1)


@main.command()
@click.argument("name", required=False)
@click.option("--clear", is_flag=True, help="Remove the project name")
@click.pass_context
def project(ctx: Any, name: Optional[str], clear: bool) -> None:
    """Show or set the project name (the store display name)."""
    out: OutputFormatter = ctx.obj["out"]
    settings = load_settings(ctx)

    if clear:
        settings.update_setting("projectName", None)
        out.success("Project name cleared")
        return
    if name is None:
        current = settings.project_name
        if current:
            out.print(current)
        else:
            out.warning("No project name configured")
        return
    if not name.strip():
        out.error("Project name cannot be empty")
        ctx.exit(1)

    settings.update_setting("projectName", name.strip())
    out.success(f"Project name set to '{name.strip()}'")


@main.command("watch-location")
@click.argument("path", required=False, type=click.Path(path_type=Path))
@click.option("--clear", is_flag=True, help="Remove the watch location")
@click.pass_context
def watch_location(ctx: Any, path: Optional[Path], clear: bool) -> None:
    """Show or set the folder whose files are synced."""
    out: OutputFormatter = ctx.obj["out"]
    settings = load_settings(ctx)

    if clear:
        settings.update_setting("watchLocation", None)
        out.success("Watch location cleared")
        return
    if path is None:
        root = settings.resolve_watch_root()
        if root:
            out.print(str(root))
        else:
            out.warning("No watch location configured")
        return

    if not path.is_absolute():
        path = ctx.obj["project_dir"] / path
    if not path.is_dir():
        out.error(f"Path is not a directory: {path}")
        ctx.exit(1)

    value = settings.set_watch_location(path)
    out.success(f"Watch location set to '{value}'")


@main.command()
@click.option("--dry-run", is_flag=True, help="Show what would be uploaded without uploading")
@click.option("--no-progress", is_flag=True, help="Disable progress bars")
@click.pass_context
def sync(ctx: Any, dry_run: bool, no_progress: bool) -> None:
    """Upload new and changed files of the watch location.

    Files already in the store are detected by modification time and
    skipped. Remote documents are never deleted, except old versions of a
    file that is being re-uploaded.

    Examples:
        pyfilesearch sync             # Sync the configured project
        pyfilesearch sync --dry-run   # Preview the upload plan
    """
    out: OutputFormatter = ctx.obj["out"]
    proj = load_project(ctx, out)
    client = require_client(ctx, out)
    # Progress text would corrupt the JSON document on stdout
    engine_out = OutputFormatter(quiet=True) if out.json_output else out
    engine = SyncEngine(client, engine_out, MetadataStore(config.state_dir))
    cancel_event = threading.Event()

    try:
        if no_progress or out.quiet or out.json_output:
            result = engine.sync_project(proj, dry_run=dry_run, cancel_event=cancel_event)
        else:
            result = run_sync_with_progress(engine, proj, dry_run, cancel_event)
    except KeyboardInterrupt:
        cancel_event.set()
        out.warning("\nSync cancelled by user")
        ctx.exit(130)
        return
    except FileSearchError as e:
        out.error(str(e))
        ctx.exit(1)
        return
    finally:
        client.close()

    if out.json_output:
        out.output_json(result.to_dict())
    if result.failed or result.metadata_error:
        ctx.exit(1)


@main.command()
@click.option(
    "--debounce",
    type=float,
    default=2.0,
    help="Seconds without changes before a sync starts (default: 2.0)",
)
@click.option("--no-initial-sync", is_flag=True, help="Do not sync before watching")
@click.pass_context
def watch(ctx: Any, debounce: float, no_initial_sync: bool) -> None:
    """Watch the watch location and sync changes as they happen.

    Deleting a synced file asks whether to remove it from the store too.
    Press Ctrl+C to stop.
    """
    from .watcher import ProjectWatcher

    out: OutputFormatter = ctx.obj["out"]
    proj = load_project(ctx, out)
    client = require_client(ctx, out)
    metadata = MetadataStore(config.state_dir)
    engine = SyncEngine(client, out, metadata)

    def confirm(message: str) -> bool:
        return click.confirm(message, default=False)

    try:
        proj.store_name = RemoteStoreDirectory(client).get_or_create(proj.name)
    except FileSearchError as e:
        out.error(str(e))
        client.close()
        ctx.exit(1)
        return

    watcher = ProjectWatcher(
        engine,
        DeletionWatcher(client, metadata, proj),
        proj,
        confirm,
        debounce=debounce,
    )
    out.info(f"Watching {proj.watch_root} (Ctrl+C to stop)")
    try:
        watcher.run(initial_sync=not no_initial_sync)
    finally:
        client.close()


@main.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def forget(ctx: Any, path: Path, yes: bool) -> None:
    """Remove a deleted file's document from the store.

    Use this for files deleted while 'pyfilesearch watch' was not running.
    """
    out: OutputFormatter = ctx.obj["out"]
    proj = load_project(ctx, out)
    client = require_client(ctx, out)

    if path.exists():
        out.warning(f"{path} still exists locally; it will be uploaded again on the next sync")

    def confirm(message: str) -> bool:
        return yes or click.confirm(message, default=False)

    watcher = DeletionWatcher(client, MetadataStore(config.state_dir), proj)
    with client:
        outcome = watcher.handle_deleted(path.absolute(), confirm)

    if outcome == DeletionOutcome.DELETED:
        out.success(f"Removed {path} from the store")
    elif outcome == DeletionOutcome.DECLINED:
        out.info("Kept the document in the store")
    elif outcome == DeletionOutcome.IGNORED_UNTRACKED:
        out.warning(f"{path} was never synced")
    elif outcome == DeletionOutcome.IGNORED_EXCLUDED:
        out.warning(f"{path} is outside the watch location or excluded")
    else:
        out.error(f"Could not remove {path} from the store")
        ctx.exit(1)


@main.command()
@click.pass_context
def projects(ctx: Any) -> None:
    """List projects (document stores) of the account."""
    out: OutputFormatter = ctx.obj["out"]
    client = require_client(ctx, out)

    try:
        with client:
            stores = client.list_stores()
    except FileSearchError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if not stores and not out.json_output:
        out.info("No projects found.")
        return
    out.output_table(
        "Projects",
        ["Name", "Documents", "Size", "Store"],
        [
            [
                s.display_name,
                str(s.active_documents_count),
                format_size(s.size_bytes),
                s.name,
            ]
            for s in sorted(stores, key=lambda s: s.display_name)
        ],
    )


@main.command()
@click.option("--project", "project_name", help="Project name (default: from settings)")
@click.pass_context
def docs(ctx: Any, project_name: Optional[str]) -> None:
    """List the documents in a project's store."""
    out: OutputFormatter = ctx.obj["out"]
    name = resolve_project_name(ctx, out, project_name)
    client = require_client(ctx, out)
    directory = RemoteStoreDirectory(client)

    try:
        with client:
            store = directory.find_store(name)
            if store is None:
                out.error(f"No store found for project '{name}'")
                ctx.exit(1)
                return
            documents = directory.list_documents(store.name)
    except FileSearchError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    out.output_table(
        f"Documents in {name}",
        ["Name", "State", "Size", "Updated"],
        [
            [d.display_name, d.state, format_size(d.size_bytes), d.update_time]
            for d in sorted(documents, key=lambda d: d.display_name)
        ],
    )


@main.command()
@click.argument("query")
@click.option("--project", "project_name", help="Project name (default: from settings)")
@click.option(
    "--no-force-answer",
    is_flag=True,
    help="Allow the model to refer to the documents instead of quoting them",
)
@click.pass_context
def ask(ctx: Any, query: str, project_name: Optional[str], no_force_answer: bool) -> None:
    """Ask a question about the documents of a project."""
    out: OutputFormatter = ctx.obj["out"]
    name = resolve_project_name(ctx, out, project_name)
    client = require_client(ctx, out)

    try:
        with client:
            result = ask_project(
                client,
                RemoteStoreDirectory(client),
                name,
                query,
                force_answer=not no_force_answer,
            )
    except FileSearchError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    print_answer(out, result)


@main.command()
@click.option("--project", "project_name", help="Project name (default: from settings)")
@click.option("--no-examples", is_flag=True, help="Do not suggest example questions")
@click.pass_context
def chat(ctx: Any, project_name: Optional[str], no_examples: bool) -> None:
    """Chat with the documents of a project. Enter an empty line to quit."""
    out: OutputFormatter = ctx.obj["out"]
    name = resolve_project_name(ctx, out, project_name)
    client = require_client(ctx, out)
    directory = RemoteStoreDirectory(client)

    with client:
        try:
            store = directory.find_store(name)
        except FileSearchError as e:
            out.error(str(e))
            ctx.exit(1)
            return
        if store is None:
            out.error(f"No store found for project '{name}'")
            ctx.exit(1)
            return

        if not no_examples:
            out.info("Try asking:")
            for question in generate_example_questions(client, store.name):
                out.info(f"  • {question}")

        while True:
            try:
                query = click.prompt(
                    "\nYou", default="", show_default=False, prompt_suffix="> "
                )
            except (EOFError, click.Abort):
                break
            if not query.strip():
                break
            try:
                result = ask_project(client, directory, name, query)
            except FileSearchError as e:
                out.error(str(e))
                continue
            print_answer(out, result)


@main.command("delete-project")
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_project(ctx: Any, name: str, yes: bool) -> None:
    """Delete a project's store and all of its documents.

    Local files are not touched. The project's sync metadata is removed, so
    the next sync uploads everything again.
    """
    out: OutputFormatter = ctx.obj["out"]

    if not yes and not click.confirm(
        f"Delete the store '{name}' and all of its documents?", default=False
    ):
        out.info("Aborted.")
        return

    client = require_client(ctx, out)
    teardown = StoreTeardown(client, MetadataStore(config.state_dir))
    try:
        with client:
            deleted = teardown.delete_project(name)
    except FileSearchError as e:
        out.error(f"Failed to delete project '{name}': {e}")
        ctx.exit(1)
        return

    if deleted:
        out.success(f"Deleted project '{name}'")
    else:
        out.warning(f"No store found for project '{name}'")


@main.command()
def mcp() -> None:
    """Run the MCP server over stdio."""
    from .mcp_server import run

    run()


if __name__ == "__main__":
    main()
