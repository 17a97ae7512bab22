"""Typer CLI entrypoint for ghmirror."""

from __future__ import annotations

import re
import signal
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, PublishTarget, Settings
from .engine import ApiClient, GitHubRetriever
from .errors import MirrorError
from .logging_conf import configure_logging
from .persister import BasePersister, MongoPersister, read_value
from .publisher import AmqpChannel, BackpressurePublisher, PublishStats

app = typer.Typer(
    help="Mirror GitHub API entities into MongoDB and load them onto RabbitMQ.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
retrieve_app = typer.Typer(
    name="retrieve",
    help="Retrieve entities through the local cache.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
app.add_typer(retrieve_app, name="retrieve")

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    settings: Settings
    verbose: bool = False


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    settings = repository.load()
    configure_logging(verbose=verbose, log_dir=repository.locator.logs_dir)
    return AppState(repository=repository, settings=settings, verbose=verbose)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _create_persister(settings: Settings) -> BasePersister:
    return MongoPersister(settings.mongo.uri, settings.mongo.database)


def _create_channel(settings: Settings) -> AmqpChannel:
    return AmqpChannel(settings.amqp)


def _create_retriever(settings: Settings) -> GitHubRetriever:
    client = ApiClient(settings.mirror)
    return GitHubRetriever(client, _create_persister(settings), settings.mirror)


def parse_filters(values: Iterable[str]) -> dict[str, re.Pattern[str]]:
    """Turn ``attr=regexp`` entries (optionally comma separated) into regex selectors."""

    filters: dict[str, re.Pattern[str]] = {}
    for value in values:
        for entry in value.split(","):
            entry = entry.strip()
            if not entry:
                continue
            attr, sep, pattern = entry.partition("=")
            if not sep or not attr or not pattern:
                console.print(f"{entry} not a valid filter", style="yellow")
                continue
            try:
                filters[attr] = re.compile(pattern)
            except re.error as exc:
                raise typer.BadParameter(f"Invalid regular expression for {attr}: {exc}") from exc
    return filters


def _install_signal_handlers(channel: AmqpChannel, publisher: BackpressurePublisher) -> dict[int, Any]:
    previous: dict[int, Any] = {}

    def _stop(_signum: int, _frame: Any) -> None:
        channel.call_soon(publisher.cancel)

    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _stop)
    return previous


def _restore_signal_handlers(previous: dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def _render_stats(target: PublishTarget, stats: PublishStats) -> Table:
    table = Table(title=f"Loaded {target.collection}", box=box.SIMPLE_HEAD)
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="green", justify="right")
    for name, count in stats.as_dict().items():
        table.add_row(name, str(count))
    return table


def _render_records(title: str, records: Sequence[dict], columns: Sequence[str]) -> Table:
    table = Table(title=f"{title} · {len(records)}", box=box.SIMPLE_HEAD)
    for column in columns:
        table.add_column(column, overflow="fold")
    for record in records:
        values = (read_value(record, column) for column in columns)
        table.add_row(*("-" if value is None else str(value) for value in values))
    return table


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    ctx.obj = build_state(verbose)


@app.command("load-items", help="Load stored items onto the queue for further processing.")
def load_items(
    ctx: typer.Context,
    collection: Optional[str] = typer.Option(
        None, "--collection", "-c", help="Collection to load data from (e.g. commits, events)."
    ),
    earliest: Optional[int] = typer.Option(
        None, "--earliest", "-e", help="Seconds since epoch of earliest item to load."
    ),
    filters: Optional[List[str]] = typer.Option(
        None, "--filter", "-f", help="Filter items by regexp on item attributes: item.attr=regexp,..."
    ),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", "-b", min=1, help="Records read per batch (defaults to configuration)."
    ),
) -> None:
    if collection is None:
        raise typer.Exit(code=0)

    state = _get_state(ctx)
    settings = state.settings
    try:
        target = settings.target(collection)
    except KeyError:
        raise typer.BadParameter(
            f"unknown collection '{collection}', expected one of: {', '.join(sorted(settings.targets))}",
            param_hint="--collection",
        ) from None

    selector: dict[str, Any] = dict(parse_filters(filters or []))
    persister = _create_persister(settings)
    if earliest is not None:
        selector.update(persister.id_floor(earliest))
    if state.verbose:
        console.print(f"Loading {collection} with filter {selector}", style="dim")

    channel = _create_channel(settings)
    publisher = BackpressurePublisher(
        persister,
        channel,
        target,
        selector=selector,
        batch_size=batch_size or settings.publisher.batch_size,
    )
    previous = _install_signal_handlers(channel, publisher)
    try:
        channel.connect(publisher.start)
        channel.run()
    except MirrorError as exc:
        console.print(f"Loading {collection} failed: {exc}", style="red")
        raise typer.Exit(code=1) from exc
    finally:
        _restore_signal_handlers(previous)
        persister.close()
    console.print(_render_stats(target, publisher.stats))


def _run_retrieval(ctx: typer.Context, action) -> Any:
    state = _get_state(ctx)
    retriever = _create_retriever(state.settings)
    try:
        return action(retriever)
    except MirrorError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1) from exc
    finally:
        retriever.client.close()
        retriever.persister.close()


@retrieve_app.command("user", help="Retrieve a user or organization by login.")
def retrieve_user(ctx: typer.Context, login: str = typer.Argument(...)) -> None:
    user = _run_retrieval(ctx, lambda r: r.retrieve_user_byusername(login))
    console.print(_render_records("users", [user], ("login", "type", "name", "created_at")))


@retrieve_app.command("repo", help="Retrieve a repository.")
def retrieve_repo(ctx: typer.Context, owner: str = typer.Argument(...), repo: str = typer.Argument(...)) -> None:
    record = _run_retrieval(ctx, lambda r: r.retrieve_repo(owner, repo))
    console.print(_render_records("repos", [record], ("full_name", "owner.login", "language", "created_at")))


@retrieve_app.command("commit", help="Retrieve a single commit.")
def retrieve_commit(
    ctx: typer.Context,
    owner: str = typer.Argument(...),
    repo: str = typer.Argument(...),
    sha: str = typer.Argument(...),
) -> None:
    record = _run_retrieval(ctx, lambda r: r.retrieve_commit(owner, repo, sha))
    console.print(_render_records("commits", [record], ("sha", "commit.author.name", "commit.author.date")))


@retrieve_app.command("followers", help="Sync and list the followers of a user.")
def retrieve_followers(ctx: typer.Context, login: str = typer.Argument(...)) -> None:
    records = _run_retrieval(ctx, lambda r: r.retrieve_user_followers(login))
    console.print(_render_records(f"followers of {login}", records, ("login", "type")))


@retrieve_app.command("pull-requests", help="Sync and list open and closed pull requests.")
def retrieve_pull_requests(
    ctx: typer.Context, owner: str = typer.Argument(...), repo: str = typer.Argument(...)
) -> None:
    records = _run_retrieval(ctx, lambda r: r.retrieve_pull_requests(owner, repo))
    console.print(_render_records(f"pull requests of {owner}/{repo}", records, ("number", "state", "title")))


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
