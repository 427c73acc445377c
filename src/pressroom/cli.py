"""CLI interface for pressroom."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from pressroom.build.builder import StaticBuilder
from pressroom.build.models import BuildOptions, BuildReport
from pressroom.build.renderer import SiteContentService
from pressroom.build.writer import LocalFileWriter
from pressroom.config import PressroomConfig, load_config, merge_cli_overrides
from pressroom.content.services import PostLibrary, load_records
from pressroom.errors import ItemFailure, PressroomError
from pressroom.mirror.client import AtProtoClient
from pressroom.mirror.models import SyncReport
from pressroom.mirror.repository import JsonMappingRepository
from pressroom.mirror.services import LocalIndex, Mirror
from pressroom.mirror.verify import OwnershipVerifier, directory_fetch, http_fetch

app = typer.Typer(
    name="pressroom",
    help="Build a markdown blog as a static site and mirror it to AT Protocol.",
    no_args_is_help=True,
)

console = Console()
logger = logging.getLogger(__name__)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from pressroom import __version__

        console.print(f"pressroom {__version__}")
        raise typer.Exit()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=verbose)],
        force=True,
    )


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]Error:[/red] {escape(message)}", soft_wrap=True)
    return typer.Exit(1)


def _config(ctx: typer.Context) -> PressroomConfig:
    return ctx.obj if isinstance(ctx.obj, PressroomConfig) else load_config()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to a .pressroom.toml file."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output."),
    ] = False,
) -> None:
    """Pressroom - static builds and decentralized mirroring for a markdown blog."""
    _setup_logging(verbose)
    ctx.obj = load_config(config_path)


def _print_failures(failures: list[ItemFailure]) -> None:
    for failure in failures:
        console.print(f"  [red]✗[/red] {escape(str(failure))}", soft_wrap=True)


def _print_build_report(report: BuildReport, output_dir: Path) -> None:
    table = Table(title="Build", show_header=False)
    table.add_row("Routes", str(report.routes))
    table.add_row("Pages", str(report.pages))
    table.add_row("Fragments", str(report.fragments))
    table.add_row("Auxiliary", str(report.auxiliary))
    table.add_row("Assets", str(report.assets))
    table.add_row("Failures", str(len(report.failures)))
    table.add_row("Output", str(output_dir))
    console.print(table)
    _print_failures(report.failures)
    for path in report.skipped_auxiliary:
        console.print(f"  [yellow]skipped[/yellow] {path} (route failures)")
    for path in report.dangling_links:
        console.print(f"  [yellow]dangling[/yellow] partial link to {path}")


def _print_sync_report(report: SyncReport) -> None:
    colour = "green" if report.ok else "yellow"
    console.print(f"[{colour}]{report.summary()}[/{colour}]", soft_wrap=True)
    _print_failures(report.errors)
    for conflict in report.conflicts:
        console.print(f"  [yellow]conflict[/yellow] {escape(str(conflict))}", soft_wrap=True)
    if report.deferred:
        console.print(f"  [yellow]deferred[/yellow] {', '.join(report.deferred)}")


@app.command()
def build(
    ctx: typer.Context,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Output directory. Defaults to [build] output_dir."),
    ] = None,
    base_url: Annotated[
        str | None,
        typer.Option("--base-url", help="Absolute site origin used for canonical URLs."),
    ] = None,
    strict: Annotated[
        bool | None,
        typer.Option("--strict/--no-strict", help="Abort on the first invalid post."),
    ] = None,
    posts_dir: Annotated[
        Path | None,
        typer.Option("--posts-dir", help="Directory of markdown posts."),
    ] = None,
    workers: Annotated[
        int | None,
        typer.Option("--workers", min=1, help="Routes rendered concurrently."),
    ] = None,
) -> None:
    """Render every route as a full page and a fragment into a static tree."""
    config = merge_cli_overrides(
        _config(ctx),
        output_dir=str(output) if output else None,
        base_url=base_url,
        strict=strict,
        posts_dir=str(posts_dir) if posts_dir else None,
        max_workers=workers,
    )
    output_dir = Path(config.build.output_dir)
    public_dir = Path(config.site.public_dir)
    load_failures: list[ItemFailure] = []

    try:
        service = SiteContentService.from_config(config, report=load_failures)
        options = BuildOptions(
            output_dir=output_dir,
            base_url=config.site.base_url,
            public_dir=public_dir if public_dir.is_dir() else None,
            strict=config.build.strict,
            max_workers=config.build.max_workers,
            route_timeout=config.build.route_timeout,
            clean=config.build.clean,
            include_descriptor=bool(config.atproto.did),
        )
        report = StaticBuilder(service).build(options)
    except (PressroomError, ValueError) as exc:
        raise _fail(str(exc)) from exc

    report.failures = sorted(load_failures + report.failures, key=lambda f: (f.subject, f.kind))
    _print_build_report(report, output_dir)
    if not report.ok:
        raise typer.Exit(1)
    console.print("[bold green]Build complete![/bold green]")


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[str, typer.Option(help="Interface to bind.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Port to listen on.")] = 8000,
) -> None:
    """Serve the live site (the same handlers the build renders through)."""
    import uvicorn

    from pressroom.site.app import create_app

    config = _config(ctx)
    try:
        library = PostLibrary.from_directory(Path(config.site.posts_dir), strict=config.build.strict)
    except PressroomError as exc:
        raise _fail(str(exc)) from exc
    console.print(f"[green]Serving {len(library.records)} posts on {host}:{port}[/green]")
    uvicorn.run(create_app(library, config), host=host, port=port)


def _mirror(config: PressroomConfig) -> Mirror:
    if not config.atproto.is_configured:
        raise _fail("AT Protocol is not configured (set ATPROTO_DID, ATPROTO_HANDLE, ATPROTO_APP_PASSWORD)")
    client = AtProtoClient(config.atproto)
    try:
        client.login()
    except PressroomError as exc:
        raise _fail(str(exc)) from exc
    repository = JsonMappingRepository(Path(config.atproto.mapping_file))
    return Mirror(client, repository, config)


@app.command()
def publish(ctx: typer.Context) -> None:
    """Create or update a document record for every new or changed post."""
    config = _config(ctx)
    mirror = _mirror(config)
    load_failures: list[ItemFailure] = []
    try:
        records = load_records(
            Path(config.site.posts_dir),
            strict=config.build.strict,
            report=load_failures,
        )
        mirror.ensure_publication()
        report = mirror.publish(records, deadline=config.atproto.deadline)
    except PressroomError as exc:
        raise _fail(str(exc)) from exc

    report.errors = load_failures + report.errors
    _print_sync_report(report)
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def pull(
    ctx: typer.Context,
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite local files even when they were edited."),
    ] = False,
) -> None:
    """Write remote document records into the posts directory."""
    config = _config(ctx)
    mirror = _mirror(config)
    posts_dir = Path(config.site.posts_dir)
    try:
        remote = mirror.fetch_remote()
        report = mirror.pull(
            remote,
            LocalIndex.from_directory(posts_dir),
            LocalFileWriter(posts_dir),
            force=force,
            deadline=config.atproto.deadline,
        )
    except PressroomError as exc:
        raise _fail(str(exc)) from exc

    _print_sync_report(report)
    if report.local_only:
        console.print(f"  local only: {', '.join(report.local_only)}")
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def prune(ctx: typer.Context) -> None:
    """Forget mappings whose post and remote record are both gone."""
    config = _config(ctx)
    mirror = _mirror(config)
    local = LocalIndex.from_directory(Path(config.site.posts_dir))
    try:
        report = mirror.prune(local.slugs)
    except PressroomError as exc:
        raise _fail(str(exc)) from exc
    _print_sync_report(report)
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def verify(
    ctx: typer.Context,
    site_url: Annotated[
        str | None,
        typer.Option("--site-url", help="Live site to check. Defaults to [site] base_url."),
    ] = None,
    site_dir: Annotated[
        Path | None,
        typer.Option("--site-dir", help="Check a built tree on disk instead of a live site."),
    ] = None,
) -> None:
    """Check the well-known descriptor and the per-post back-links."""
    config = _config(ctx)
    publication_uri = config.atproto.publication_uri
    if not publication_uri:
        raise _fail("ATPROTO_DID is not set")

    if site_dir is not None:
        if not site_dir.is_dir():
            raise _fail(f"{site_dir} is not a directory")
        fetch = directory_fetch(site_dir)
    else:
        fetch = http_fetch
    mapping_file = Path(config.atproto.mapping_file)
    repository = JsonMappingRepository(mapping_file) if mapping_file.is_file() else None

    verifier = OwnershipVerifier(fetch, publication_uri, repository)
    report = verifier.verify(site_url or config.site.base_url)

    for check in report.checks:
        mark = "[green]PASS[/green]" if check.passed else "[red]FAIL[/red]"
        console.print(f"{mark} {check.channel} {check.target} {escape(check.message)}".rstrip(), soft_wrap=True)
    colour = {"pass": "green", "warn": "yellow", "fail": "red"}[report.status]
    console.print(f"[{colour}]Verification: {report.status}[/{colour}]")
    if not report.ok:
        raise typer.Exit(1)
