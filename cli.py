"""CLI entrypoint for LLM Coder using Typer."""

import shutil
from pathlib import Path
from typing import List, Optional

import typer

from core.config import CONFIG_PATH, DEFAULT_CONFIG, get_config, save_config
from core.errors import EnumerationFailed, NoRepositoryRoot
from core.logging import configure_logging
from editor.app import create_app
from indexer.project_files import enumerate_project_files, find_repo_root

app = typer.Typer()


@app.callback()
def callback():
    """LLM Coder - inline ghost-text completions in the terminal."""


@app.command()
def open(paths: Optional[List[Path]] = typer.Argument(None, help="Files to open (scratch buffer when omitted)")):
    """Open the editor."""
    config = get_config()
    configure_logging(config.log_file, config.log_level)
    create_app(paths or [], config)


@app.command()
def doctor():
    """Diagnose configuration and backend setup."""
    config = get_config()

    typer.echo("🔍 LLM Coder Doctor")
    typer.echo("===================")

    if CONFIG_PATH.exists():
        typer.echo(f"✅ Config file found at {CONFIG_PATH}")
    else:
        typer.echo(f"⚠️  Config file not found at {CONFIG_PATH} (using defaults)")

    command = config.server_cmd[0] if config.server_cmd else ""
    if command and (shutil.which(command) or Path(command).is_file()):
        typer.echo(f"✅ Backend command '{command}' found")
    else:
        typer.echo(f"❌ Backend command '{command}' not found")

    typer.echo(f"   Filetypes: {', '.join(config.server_filetypes)}")
    typer.echo(f"   Auto trigger: {'on' if config.auto_trigger_enabled else 'off'}"
               f" ({config.auto_trigger_delay_ms} ms)")

    root = find_repo_root()
    if root is None:
        typer.echo("⚠️  Not inside a Git repo (no project context will be sent)")
        return
    typer.echo(f"✅ Repository root: {root}")
    try:
        files = enumerate_project_files()
    except EnumerationFailed as e:
        typer.echo(f"❌ {e}")
        return
    typer.echo(f"✅ {len(files)} tracked files")


@app.command()
def files():
    """List the project files sent to the backend as context."""
    try:
        listed = enumerate_project_files()
    except (NoRepositoryRoot, EnumerationFailed) as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    for path in listed:
        typer.echo(path)


@app.command("init-config")
def init_config(force: bool = typer.Option(False, "--force", help="Overwrite an existing config file")):
    """Write the default configuration file."""
    if CONFIG_PATH.exists() and not force:
        typer.echo(f"Config file already exists at {CONFIG_PATH} (use --force to overwrite)", err=True)
        raise typer.Exit(code=1)
    path = save_config(DEFAULT_CONFIG, CONFIG_PATH)
    typer.echo(f"Wrote {path}")


if __name__ == "__main__":
    app()
