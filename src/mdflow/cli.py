"""Command-line interface for mdflow."""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table

from . import __version__
from .core.service import ConversionService
from .errors import MdflowError
from .logging_config import setup_logging
from .models.config import MdflowConfig
from .models.events import ConversionEvent
from .models.presets import PresetName
from .models.results import ConversionResult
from .models.tasks import BatchItem, ConversionTask, PayloadKind
from .queue import TaskCallbacks


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="mdflow",
        description="Convert web pages and HTML files to clean Markdown",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Convert one page and print the Markdown
  mdflow https://example.com/post --stdout

  # Convert several pages into ./notes using the Obsidian preset
  mdflow https://example.com/a https://example.com/b -o notes --preset obsidian

  # Convert local files, downloading images next to the output
  mdflow page.html notes.txt --download-images

  # Show recent conversions
  mdflow --history 20
        """,
    )

    parser.add_argument(
        "sources",
        nargs="*",
        metavar="SOURCE",
        help="URLs or files to convert",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        metavar="FILE",
        help="YAML configuration file",
    )

    parser.add_argument(
        "--preset",
        "-p",
        choices=[preset.value for preset in PresetName],
        default=None,
        help="Conversion preset",
    )

    # Output
    output_group = parser.add_argument_group("output")
    output_group.add_argument(
        "--output-dir",
        "-o",
        type=Path,
        default=None,
        help="Output directory (default: ./markdown)",
    )
    output_group.add_argument(
        "--format",
        "-f",
        choices=["markdown", "html", "text"],
        default=None,
        help="Output format (default: markdown)",
    )
    output_group.add_argument(
        "--stdout",
        action="store_true",
        help="Print results instead of writing files",
    )
    output_group.add_argument(
        "--no-frontmatter",
        action="store_true",
        help="Do not prepend YAML frontmatter",
    )

    # Conversion
    conversion_group = parser.add_argument_group("conversion")
    conversion_group.add_argument(
        "--download-images",
        action="store_true",
        help="Download images and rewrite references to local files",
    )
    conversion_group.add_argument(
        "--no-math",
        action="store_true",
        help="Disable formula detection",
    )
    conversion_group.add_argument(
        "--no-code-highlight",
        action="store_true",
        help="Do not tag code blocks with a language",
    )
    conversion_group.add_argument(
        "--no-metadata",
        action="store_true",
        help="Do not read author/date/tags metadata",
    )
    conversion_group.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Conversions running at once (default: 3)",
    )

    # Network
    network_group = parser.add_argument_group("network settings")
    network_group.add_argument(
        "--proxy",
        type=str,
        metavar="URL",
        help="Proxy URL",
    )
    network_group.add_argument(
        "--user-agent",
        type=str,
        help="Custom User-Agent string",
    )
    network_group.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Maximum retry attempts",
    )

    # History
    history_group = parser.add_argument_group("history")
    history_group.add_argument(
        "--history",
        type=int,
        nargs="?",
        const=10,
        default=None,
        metavar="N",
        help="List the N most recent conversions (default: 10)",
    )
    history_group.add_argument(
        "--no-history",
        action="store_true",
        help="Do not record conversions",
    )

    # Output control
    control_group = parser.add_argument_group("output control")
    control_group.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Verbose output",
    )
    control_group.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress output",
    )

    return parser


def build_config(args: argparse.Namespace) -> MdflowConfig:
    """Merge the config file (if any) with command-line overrides."""
    base = MdflowConfig.from_yaml_file(args.config) if args.config else MdflowConfig()
    data = base.model_dump()

    if args.preset:
        data["preset"] = args.preset

    options: dict = {}
    if args.format:
        options["format"] = args.format
    if args.download_images:
        options["download_images"] = True
    if args.no_math:
        options["enable_math"] = False
    if args.no_code_highlight:
        options["enable_code_highlight"] = False
    if args.no_metadata:
        options["include_metadata"] = False
    data["options"].update(options)

    if args.output_dir:
        data["output"]["directory"] = args.output_dir
    if args.no_frontmatter:
        data["output"]["add_frontmatter"] = False
    if args.concurrency is not None:
        data["queue"]["concurrency"] = args.concurrency
    if args.no_history:
        data["storage"]["enabled"] = False

    if args.proxy:
        data["network"]["proxy"] = args.proxy
    if args.user_agent:
        data["network"]["user_agent"] = args.user_agent
    if args.max_retries is not None:
        data["network"]["max_retries"] = args.max_retries

    if args.verbose:
        data["log_level"] = "DEBUG"
    elif args.quiet:
        data["log_level"] = "ERROR"

    return MdflowConfig.model_validate(data)


def batch_item(source: str) -> BatchItem:
    """Classify a command-line source as URL or file."""
    if source.startswith(("http://", "https://")):
        return BatchItem(source, PayloadKind.URL)
    return BatchItem(source, PayloadKind.FILE)


def output_path(directory: Path, filename: str, used: set[str]) -> Path:
    """Unique path for filename inside directory."""
    stem, dot, extension = filename.rpartition(".")
    candidate = filename
    counter = 2
    while candidate in used or (directory / candidate).exists():
        candidate = f"{stem}_{counter}{dot}{extension}"
        counter += 1
    used.add(candidate)
    return directory / candidate


def print_history(console: Console, config: MdflowConfig, limit: int) -> int:
    async def run() -> int:
        async with ConversionService(config) as service:
            if service.history is None:
                console.print("[yellow]History is disabled[/yellow]")
                return 1
            entries, total = await service.history.list(limit=limit)

        table = Table(title=f"Recent conversions ({len(entries)} of {total})")
        table.add_column("Date")
        table.add_column("Status")
        table.add_column("Title")
        table.add_column("Source", overflow="fold")
        for entry in entries:
            status = "[green]completed[/green]" if entry.status.value == "completed" else "[red]failed[/red]"
            table.add_row(entry.created_at.strftime("%Y-%m-%d %H:%M"), status, entry.title, entry.source_url)
        console.print(table)
        return 0

    return asyncio.run(run())


def run_conversions(args: argparse.Namespace, config: MdflowConfig) -> int:
    """Convert every source through the task queue."""
    console = Console()
    # Results go to stdout, so status goes to stderr
    status_console = Console(stderr=True)
    items = [batch_item(source) for source in args.sources]

    async def run() -> int:
        if not args.quiet:
            status_console.print(f"[bold blue]mdflow[/bold blue] v{__version__}")
            status_console.print(f"Preset: {config.preset or 'default'}")
            status_console.print()

        output_dir = config.output.directory.resolve()
        used_names: set[str] = set()
        written: list[Path] = []

        progress: Optional[Progress] = None
        bar: Optional[TaskID] = None
        if not (args.quiet or args.stdout):
            progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                console=status_console,
                transient=True,
            )
            bar = progress.add_task("Converting...", total=len(items))

        def on_event(event: ConversionEvent) -> None:
            if progress is not None and bar is not None and event.current is not None:
                progress.update(bar, completed=event.current, total=event.total)

        async with ConversionService(config, on_event=on_event) as service:

            def deliver(task: ConversionTask, result: ConversionResult) -> None:
                exported = service.export(result, task=task)
                if args.stdout:
                    console.print(exported.content, markup=False, highlight=False, soft_wrap=True)
                    return
                output_dir.mkdir(parents=True, exist_ok=True)
                path = output_path(output_dir, exported.filename, used_names)
                path.write_text(exported.content, encoding="utf-8")
                written.append(path)

            def report_error(task: ConversionTask, error: BaseException) -> None:
                status_console.print(f"[red]Failed:[/red] {task.payload.value} - {task.error}")

            callbacks = TaskCallbacks(on_complete=deliver, on_error=report_error)
            service.queue.add_batch(items, service.options, callbacks)

            if progress is None:
                await service.queue.join()
            else:
                with progress:
                    await service.queue.join()

            stats = service.queue.get_stats()

        if not args.quiet:
            if not args.stdout:
                for path in written:
                    status_console.print(f"[green]Saved:[/green] {path}")
            status_console.print()
            status_console.print("[bold]Results:[/bold]")
            status_console.print(f"  Converted: {stats.completed}")
            status_console.print(f"  Failed: {stats.failed}")

        return 0 if stats.failed == 0 else 1

    try:
        return asyncio.run(run())
    except MdflowError as e:
        status_console.print(f"[red]Error:[/red] {e}")
        return 1


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    console = Console(stderr=True)

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        return 1

    setup_logging(config.log_level, str(config.log_file) if config.log_file else None)

    if args.history is not None:
        return print_history(console, config, args.history)

    if not args.sources:
        console.print("[red]Error:[/red] Please provide at least one URL or file to convert")
        return 1

    return run_conversions(args, config)


if __name__ == "__main__":
    sys.exit(main())
