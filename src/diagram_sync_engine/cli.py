"""
Command-line interface for the diagram sync engine.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

import yaml
from rich.console import Console
from rich.table import Table

from diagram_sync_engine.checkpoints import FileCheckpointStore
from diagram_sync_engine.config import SyncConfig
from diagram_sync_engine.logging import setup_logging
from diagram_sync_engine.web.storage import ViewSessionStorage

console = Console()


def config_search_paths() -> list[Path]:
    return [
        Path.cwd() / "diagram-sync.yaml",
        Path.home() / ".config" / "diagram-sync" / "config.yaml",
    ]


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Diagram Sync Engine CLI",
        prog="diagram-sync",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output (debug logging)",
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Path to a YAML config file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the live viewer server")
    serve_parser.add_argument("--host", help="Interface to bind")
    serve_parser.add_argument("--port", type=int, help="Port to bind (0 = any free port)")
    serve_parser.add_argument("--base-url", help="Public base URL for view links")

    # Views command
    views_parser = subparsers.add_parser("views", help="List persisted views")
    views_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # Checkpoint command
    checkpoint_parser = subparsers.add_parser("checkpoint", help="Show a stored checkpoint")
    checkpoint_parser.add_argument("id", help="Checkpoint id")
    checkpoint_parser.add_argument("--json", action="store_true", help="Output raw elements")

    # Config command with subcommands
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="config_command", help="Config commands")
    config_subparsers.add_parser("show", help="Show current configuration")
    config_init_parser = config_subparsers.add_parser("init", help="Initialize a new config file")
    config_init_parser.add_argument(
        "-o",
        "--output",
        default="diagram-sync.yaml",
        help="Output file path",
    )
    config_subparsers.add_parser("path", help="Show config file paths")

    args = parser.parse_args(argv)

    if args.verbose:
        setup_logging("DEBUG")
    else:
        setup_logging("WARNING")

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "views":
        cmd_views(args)
    elif args.command == "checkpoint":
        asyncio.run(cmd_checkpoint(args))
    elif args.command == "config":
        cmd_config(args)
    else:
        parser.print_help()


def load_config(path: str | None = None) -> tuple[SyncConfig, Path | None]:
    """Load config from *path* or the first search path that exists."""
    candidates = [Path(path)] if path else config_search_paths()
    for candidate in candidates:
        if candidate.exists():
            return SyncConfig.from_yaml(candidate).apply_env(), candidate
    if path:
        console.print(f"[red]Config file not found: {path}[/red]")
        sys.exit(1)
    return SyncConfig().apply_env(), None


def cmd_serve(args: argparse.Namespace) -> None:
    """Run the viewer server until interrupted."""
    from diagram_sync_engine.web.server import run_server

    config, _ = load_config(args.config)
    if args.host:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.base_url:
        config.base_url = args.base_url
    if args.verbose:
        config.log_level = "DEBUG"
    else:
        setup_logging(config.log_level)

    console.print(f"[dim]Cache directory: {config.cache_dir}[/dim]")
    run_server(config)


def cmd_views(args: argparse.Namespace) -> None:
    """List views persisted in session storage."""
    config, _ = load_config(args.config)
    views = ViewSessionStorage(config.session_db).list_views()

    if args.json:
        console.print_json(json.dumps(views, indent=2))
        return

    table = Table(title="Views")
    table.add_column("View", style="cyan")
    table.add_column("Title")
    table.add_column("Checkpoint", style="dim")
    table.add_column("Updated", style="dim")

    for view in views:
        table.add_row(
            view["viewId"],
            view.get("title") or "",
            view.get("lastCheckpointId") or "(none)",
            view.get("updatedAt") or "",
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(views)} views[/dim]")


async def cmd_checkpoint(args: argparse.Namespace) -> None:
    """Show a stored checkpoint."""
    config, _ = load_config(args.config)
    store = FileCheckpointStore(config.checkpoint_dir)
    checkpoint = await store.load(args.id)
    if checkpoint is None:
        console.print(f"[red]Checkpoint not found: {args.id}[/red]")
        sys.exit(1)

    if args.json:
        console.print_json(json.dumps(checkpoint.to_dict()))
        return

    table = Table(title=f"Checkpoint {checkpoint.id}")
    table.add_column("#", style="dim")
    table.add_column("Id", style="cyan")
    table.add_column("Type")

    for index, element in enumerate(checkpoint.elements):
        if isinstance(element, dict):
            table.add_row(str(index), str(element.get("id") or ""), str(element.get("type") or ""))
        else:
            table.add_row(str(index), "", type(element).__name__)

    console.print(table)
    console.print(f"\n[dim]Total: {len(checkpoint.elements)} elements[/dim]")


def cmd_config(args: argparse.Namespace) -> None:
    """Configuration management commands."""
    if args.config_command == "show":
        _config_show(args.config)
    elif args.config_command == "init":
        _config_init(args.output)
    elif args.config_command == "path":
        _config_path()
    else:
        console.print("[yellow]Usage: diagram-sync config <show|init|path>[/yellow]")


def _config_show(path: str | None) -> None:
    """Show current configuration."""
    config, loaded_from = load_config(path)
    if loaded_from is None:
        console.print("[dim]No config file found. Using defaults.[/dim]")
    else:
        console.print(f"[dim]Loaded from: {loaded_from}[/dim]\n")

    console.print("[bold]Current Configuration:[/bold]\n")
    console.print(yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False))


def _config_init(output: str) -> None:
    """Initialize a new config file."""
    output_path = Path(output)

    if output_path.exists():
        console.print(f"[red]File already exists: {output_path}[/red]")
        sys.exit(1)

    default_config = SyncConfig().to_dict()
    with open(output_path, "w") as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)

    console.print(f"[green]Created config file: {output_path}[/green]")


def _config_path() -> None:
    """Show config file search paths."""
    console.print("[bold]Config file search paths:[/bold]\n")

    names = ["Current directory", "User config"]
    for name, path in zip(names, config_search_paths()):
        exists = "[green]✓[/green]" if path.exists() else "[dim]·[/dim]"
        console.print(f"  {exists} {name}: {path}")


if __name__ == "__main__":
    main()
