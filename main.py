#!/usr/bin/env python3
"""
VectorFeed - Feed Ingestion and Embedding Pipeline
==================================================

Main application entry point with CLI interface for management and operations.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py init-db                   # Initialize database
    python main.py trigger                   # Enqueue discovery for configured feeds
    python main.py replay                    # Re-enqueue stored queued items
    python main.py clean --yes               # Delete stored queued items
    python main.py consume                   # Run the queue consumer
    python main.py fetch-feed URL            # Preview a single feed
    python main.py stats                     # Show item and queue statistics
    python main.py test-ai                   # Check the embedding model responds
    python main.py search "some text"        # Query the vector index
"""

import sys
import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from vectorfeed.config.settings import get_settings
from vectorfeed.database.schema import DatabaseSchema
from vectorfeed.database.connection import get_db_manager
from vectorfeed.utils.logging import configure_application_logging
from vectorfeed.utils.exceptions import VectorFeedError

console = Console()
logger = logging.getLogger(__name__)


def _setup(ctx):
    """Load settings, configure logging and make sure the schema exists."""
    settings = get_settings()
    configure_application_logging(
        log_level="DEBUG" if ctx.obj.get('debug') else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )
    DatabaseSchema(settings.database.path).create_tables()
    return settings, get_db_manager(settings.database.path)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, debug):
    """VectorFeed - feed ingestion and embedding pipeline."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        # Show help if no subcommand provided
        click.echo(ctx.get_help())


@cli.command()
def check_config():
    """Validate environment variables and settings."""
    console.print("[bold blue]🔧 Checking VectorFeed Configuration[/bold blue]")

    try:
        settings = get_settings()

        table = Table(title="Configuration Status")
        table.add_column("Component", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Details")

        checks = [
            ("Database", _check_database_config),
            ("Logging", _check_logging_config),
            ("Cloudflare AI", _check_ai_config),
            ("Vector Store", _check_vector_store_config),
            ("Processing", _check_processing_config),
            ("Feeds", _check_feeds_config),
            ("Publishers", _check_publishers_config),
        ]

        all_passed = True
        for name, check_func in checks:
            try:
                status, details = check_func(settings)
                table.add_row(name, "✅ Valid" if status else "❌ Invalid", details)
                if not status:
                    all_passed = False
            except Exception as e:
                table.add_row(name, "❌ Error", str(e))
                all_passed = False

        console.print(table)

        if all_passed:
            console.print("[bold green]✅ All configuration checks passed![/bold green]")
            sys.exit(0)
        else:
            console.print("[bold red]❌ Configuration validation failed[/bold red]")
            sys.exit(1)

    except VectorFeedError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.option('--reset', is_flag=True, help='Drop existing tables first')
@click.pass_context
def init_db(ctx, reset):
    """Create the item store and work queue tables."""
    console.print("[bold blue]🗄️ Initializing VectorFeed Database[/bold blue]")

    try:
        settings = get_settings()
        schema = DatabaseSchema(settings.database.path)

        if reset:
            if not click.confirm("This deletes all items and queued messages. Continue?"):
                console.print("[yellow]Aborted[/yellow]")
                return
            schema.drop_tables()
            console.print("🗑️ Existing tables dropped")

        schema.create_tables()

        if schema.verify_schema():
            console.print(f"[bold green]✅ Database ready at {settings.database.path}[/bold green]")
        else:
            console.print("[bold red]❌ Schema verification failed[/bold red]")
            sys.exit(1)

    except VectorFeedError as e:
        console.print(f"[bold red]❌ Database initialization failed: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.option('--feed', 'feeds', multiple=True, help='Feed URL to discover (default: configured feeds)')
@click.pass_context
def trigger(ctx, feeds):
    """Enqueue one discovery message per feed."""
    try:
        from vectorfeed.services.discovery_service import DiscoveryService

        settings, db_manager = _setup(ctx)
        service = DiscoveryService(db_manager)

        count = service.trigger_discovery(list(feeds) if feeds else None)
        console.print(f"[bold green]✅ Enqueued discovery for {count} feed(s)[/bold green]")

    except VectorFeedError as e:
        console.print(f"[bold red]❌ Trigger failed: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.pass_context
def replay(ctx):
    """Re-enqueue every stored queued item."""
    try:
        from vectorfeed.services.discovery_service import DiscoveryService

        settings, db_manager = _setup(ctx)
        count = DiscoveryService(db_manager).replay()
        console.print(f"[bold green]✅ Re-enqueued {count} queued item(s)[/bold green]")

    except VectorFeedError as e:
        console.print(f"[bold red]❌ Replay failed: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.option('--yes', is_flag=True, help='Skip confirmation')
@click.pass_context
def clean(ctx, yes):
    """Delete stored items that are still queued."""
    try:
        from vectorfeed.services.discovery_service import DiscoveryService

        settings, db_manager = _setup(ctx)

        if not yes and not click.confirm("Delete all queued items?"):
            console.print("[yellow]Aborted[/yellow]")
            return

        count = DiscoveryService(db_manager).clean()
        console.print(f"[bold green]✅ Deleted {count} queued item(s)[/bold green]")

    except VectorFeedError as e:
        console.print(f"[bold red]❌ Clean failed: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.option('--once', is_flag=True, help='Process a single batch and exit')
@click.option('--max-batches', type=int, default=None, help='Stop after this many batches')
@click.option('--batch-size', type=int, default=None, help='Messages per batch (default from settings)')
@click.pass_context
def consume(ctx, once, max_batches, batch_size):
    """Run the queue consumer."""

    async def run_consumer():
        from vectorfeed.processing.consumer import QueueConsumer

        settings, db_manager = _setup(ctx)
        consumer = QueueConsumer(db_manager)

        if once:
            result = await consumer.run_once(batch_size)
            _print_batch_result(result)
            return

        console.print("[bold blue]🚀 Queue consumer running (Ctrl+C to stop)[/bold blue]")
        batches = await consumer.run_forever(max_batches=max_batches)
        console.print(f"[bold green]✅ Processed {batches} batch(es)[/bold green]")

    try:
        asyncio.run(run_consumer())
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 Queue consumer stopped[/yellow]")
    except VectorFeedError as e:
        console.print(f"[bold red]❌ Consumer error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('url')
@click.option('--samples', default=5, help='Number of sample entries to show')
@click.pass_context
def fetch_feed(ctx, url, samples):
    """Fetch and parse a single feed without enqueueing anything."""
    console.print(f"[bold blue]📡 Fetching Feed: {url}[/bold blue]")

    async def run_fetch():
        from vectorfeed.services.discovery_service import DiscoveryService

        settings, db_manager = _setup(ctx)
        service = DiscoveryService(db_manager)
        return await service.fetch_single_feed(url, sample_size=samples)

    try:
        result = asyncio.run(run_fetch())
    except VectorFeedError as e:
        console.print(f"[bold red]❌ Feed fetch error: {e}[/bold red]")
        sys.exit(1)

    if not result.success:
        console.print(f"[bold red]❌ {result.error_message}[/bold red]")
        sys.exit(1)

    console.print("[bold green]✅ Feed fetched successfully![/bold green]")

    info_table = Table(title="Feed Information")
    info_table.add_column("Property", style="cyan")
    info_table.add_column("Value", style="green")
    info_table.add_row("Title", result.title or "Unknown")
    info_table.add_row("Format", result.format or "Unknown")
    info_table.add_row("Entries Found", str(result.entry_count))
    info_table.add_row("New Entries", str(result.new_entries))
    info_table.add_row("Feed URL", url)
    console.print(info_table)

    if result.sample_entries:
        console.print(f"\n[bold blue]📰 Sample Entries (showing first {len(result.sample_entries)}):[/bold blue]")
        for i, entry in enumerate(result.sample_entries, 1):
            console.print(f"\n{i}. [bold]{entry['title'] or 'Untitled'}[/bold]")
            console.print(f"   🆔 Id: {entry['id']}")
            console.print(f"   📅 Published: {entry['published'] or 'No date'}")
            console.print(f"   🔗 Link: {entry['url'] or 'No link'}")
            console.print(f"   📌 Status: {entry['status'] or 'new'}")


@cli.command()
@click.pass_context
def stats(ctx):
    """Show item lifecycle and work queue statistics."""
    try:
        from vectorfeed.storage.item_repository import ItemRepository
        from vectorfeed.processing.work_queue import WorkQueue

        settings, db_manager = _setup(ctx)
        item_counts = ItemRepository(db_manager).count_by_status()
        queue_stats = WorkQueue(db_manager).get_stats()
        db_info = db_manager.get_database_info()

    except VectorFeedError as e:
        console.print(f"[bold red]❌ Error collecting statistics: {e}[/bold red]")
        sys.exit(1)

    items_table = Table(title="Items")
    items_table.add_column("Status", style="cyan")
    items_table.add_column("Count", style="green", justify="right")
    for status, count in item_counts.items():
        items_table.add_row(status, str(count))
    console.print(items_table)

    queue_table = Table(title="Work Queue")
    queue_table.add_column("State", style="cyan")
    queue_table.add_column("Messages", style="green", justify="right")
    for state, count in queue_stats.items():
        queue_table.add_row(state, str(count))
    console.print(queue_table)

    console.print(f"💾 Database size: {db_info['database_size_mb']:.2f} MB ({settings.database.path})")


@cli.command()
@click.argument('text')
@click.option('--top-k', type=int, default=None, help='Number of matches (default from settings)')
@click.pass_context
def search(ctx, text, top_k):
    """Embed TEXT and show the closest items in the vector index."""

    async def run_search():
        from vectorfeed.ai.embedding_client import EmbeddingClient
        from vectorfeed.storage.vector_store import VectorizeIndex

        _setup(ctx)
        [query_vector, *_] = await EmbeddingClient().generate_vectors("query", text, {})
        return await VectorizeIndex().query(query_vector.values, top_k)

    try:
        matches = asyncio.run(run_search())
    except VectorFeedError as e:
        console.print(f"[bold red]❌ Search failed: {e.user_message}[/bold red]")
        sys.exit(1)

    if not matches:
        console.print("[yellow]⚠️ No matches found[/yellow]")
        return

    table = Table(title=f"Matches for: {text}")
    table.add_column("Score", style="green", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("URL", style="blue")
    for match in matches:
        metadata = match.metadata or {}
        title = metadata.get("title") or match.id
        table.add_row(
            f"{match.score:.4f}",
            title[:60] + "..." if len(title) > 60 else title,
            metadata.get("url") or "",
        )
    console.print(table)


@cli.command()
@click.pass_context
def test_ai(ctx):
    """Check the embedding model is reachable through the AI Gateway."""
    console.print("[bold blue]🤖 Testing Workers AI Embeddings[/bold blue]")

    async def run_test():
        from vectorfeed.ai.embedding_client import EmbeddingClient

        _setup(ctx)
        provider = EmbeddingClient().provider
        return provider, await provider.test_connection()

    try:
        provider, connected = asyncio.run(run_test())
    except VectorFeedError as e:
        console.print(f"[bold red]❌ AI test failed: {e.user_message}[/bold red]")
        sys.exit(1)

    if connected:
        console.print(f"[bold green]✅ {provider.model_name} responded[/bold green]")
    else:
        console.print(f"[bold red]❌ {provider.model_name} did not respond, see logs[/bold red]")
        sys.exit(1)


def _print_batch_result(result) -> None:
    if not result.outcomes:
        console.print("[yellow]📭 Queue is empty[/yellow]")
        return

    table = Table(title="Batch Result")
    table.add_column("Outcome", style="cyan")
    table.add_column("Messages", style="green", justify="right")
    table.add_row("Succeeded", str(result.succeeded))
    table.add_row("Skipped", str(result.skipped))
    table.add_row("Retried", str(result.retried))
    table.add_row("Failed", str(result.failed))
    table.add_row("Invalid", str(result.invalid))
    table.add_row("Entries enqueued", str(result.entries_enqueued))
    console.print(table)
    console.print(f"⏱️ Processing time: {result.processing_time_seconds:.2f} seconds")


# Helper functions for configuration checks
def _check_database_config(settings) -> tuple[bool, str]:
    """Check database configuration."""
    try:
        db_path = Path(settings.database.path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return True, f"Path: {settings.database.path}, Pool: {settings.database.pool_size}"
    except OSError as e:
        return False, str(e)


def _check_logging_config(settings) -> tuple[bool, str]:
    """Check logging configuration."""
    try:
        if settings.logging.file_path:
            log_path = Path(settings.logging.file_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
        return True, f"Level: {settings.logging.level.value}, Console: {settings.logging.console_logging}"
    except OSError as e:
        return False, str(e)


def _check_ai_config(settings) -> tuple[bool, str]:
    """Check Cloudflare Workers AI configuration."""
    if not settings.ai.has_credentials():
        return False, "Cloudflare account ID or API token not set"
    return True, f"Model: {settings.ai.embedding_model}, Gateway: {settings.ai.gateway_id}"


def _check_vector_store_config(settings) -> tuple[bool, str]:
    """Check vector index configuration."""
    if not settings.vector_store.index_name:
        return False, "Index name not set"
    return True, f"Index: {settings.vector_store.index_name}, Top K: {settings.vector_store.query_top_k}"


def _check_processing_config(settings) -> tuple[bool, str]:
    """Check processing configuration."""
    processing = settings.processing
    return True, (
        f"Batch: {processing.batch_size}, Concurrency: {processing.max_concurrent_messages}, "
        f"Max attempts: {processing.max_attempts}"
    )


def _check_feeds_config(settings) -> tuple[bool, str]:
    """Check configured feed list."""
    if not settings.feeds:
        return False, "No feeds configured"
    return True, f"{len(settings.feeds)} feeds configured"


def _check_publishers_config(settings) -> tuple[bool, str]:
    """List publishers with full-text augmentation."""
    from vectorfeed.ingestion.content_augmenter import ContentAugmenter
    publishers = ContentAugmenter().supported_publishers()
    return True, ", ".join(publishers)


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 VectorFeed interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[bold red]❌ Unexpected error: {e}[/bold red]")
        sys.exit(1)
