import argparse
import asyncio
import sys

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from paperfeed.config import load_settings, save_config
from paperfeed.constants import INGEST_PAGE_SIZE, INGEST_TARGET_PAPERS
from paperfeed.logging_config import configure_logging, get_logger
from paperfeed.pipeline import IngestReport, make_enricher, run_ingest
from paperfeed.services import build_services

console = Console()
logger = get_logger("paperfeed.cli")


def print_report(report: IngestReport, stored_total: int) -> None:
    table = Table(title="Batch processing complete")
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    table.add_row("Papers fetched from arXiv", str(report.fetched))
    table.add_row("New papers summarized", str(report.new))
    table.add_row("With embeddings", str(report.with_embeddings))
    table.add_row("Skipped (already stored)", str(report.skipped))
    table.add_row("Total papers in store", str(stored_total))
    console.print(table)


async def ingest(args) -> int:
    settings = load_settings()
    if not settings.anthropic_api_key:
        console.print("[red]Error: ANTHROPIC_API_KEY not set.[/]")
        return 1
    if not settings.store_configured:
        console.print(
            "[red]Error: no store configured. Set PAPERFEED_STORE_DIR or run "
            "with --store-dir once to save it.[/]"
        )
        return 1

    services = build_services(settings)
    store = services.store
    if store is None:
        console.print(f"[red]Error: could not open store at {settings.store_dir}.[/]")
        return 1
    console.print(f"[dim]Current papers in store: {await store.count()}[/]")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=False,
    ) as progress:
        task = progress.add_task(
            f"[cyan]Processing up to {args.target} new papers...", total=args.target
        )
        try:
            report = await run_ingest(
                store,
                make_enricher(services.complete, services.embed),
                target=args.target,
                page_size=args.page_size,
                max_pages=1 if args.daily else None,
                progress_callback=lambda done, total: progress.update(task, completed=done),
            )
        except Exception as e:
            logger.error("ingest_failed", error=str(e))
            console.print(f"[red]Batch processing failed: {e}[/]")
            return 1

    print_report(report, await store.count())
    return 0


def serve(args) -> int:
    import uvicorn

    uvicorn.run("paperfeed.main:app", host=args.host, port=args.port)
    return 0


def run() -> None:
    parser = argparse.ArgumentParser(description="arXiv paper feed")
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    parser.add_argument(
        "--store-dir", default=None, help="Paper store directory (saved for next time)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_ingest = sub.add_parser("ingest", help="Fetch, summarize and store new papers")
    p_ingest.add_argument(
        "--target",
        type=int,
        default=INGEST_TARGET_PAPERS,
        help=f"Number of new papers to process (default: {INGEST_TARGET_PAPERS})",
    )
    p_ingest.add_argument(
        "--page-size",
        type=int,
        default=INGEST_PAGE_SIZE,
        help=f"Papers per arXiv request (default: {INGEST_PAGE_SIZE})",
    )
    p_ingest.add_argument(
        "--daily", action="store_true", help="Read a single page, as the daily job does"
    )

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=3001)

    args = parser.parse_args()

    if args.store_dir:
        save_config("store_dir", args.store_dir)
    configure_logging(args.log_level or load_settings().log_level)

    if args.command == "serve":
        sys.exit(serve(args))
    sys.exit(asyncio.run(ingest(args)))


if __name__ == "__main__":
    run()
