"""Static build orchestrator.

One pass enumerates the routes, renders every page route in both modes
with bounded concurrency, writes the artifacts, and renders the
auxiliary routes (feed, sitemap, robots, descriptor) last. A failure is
contained to its route: it lands in the report and the pass continues.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from typing import TYPE_CHECKING, Any

from pressroom.build.context import check_base_url
from pressroom.build.models import BuildOptions, BuildReport, OutputArtifact, RenderMode, Route
from pressroom.build.renderer import DualModeRenderer
from pressroom.build.routes import enumerate_routes, output_path
from pressroom.build.writer import LocalFileWriter
from pressroom.errors import (
    EnumerationError,
    ItemFailure,
    PressroomError,
    RenderError,
    WriteError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from pressroom.build.models import RenderResult
    from pressroom.build.renderer import ContentService
    from pressroom.build.writer import FileWriter

logger = logging.getLogger(__name__)


async def run_detached(factory: Callable[[], Coroutine[Any, Any, Any]]) -> Any:
    """Await the coroutine from *factory* on its own event loop in a daemon thread.

    Cancelling the caller abandons the thread rather than waiting for it,
    so a handler that blocks cannot hold up the rest of the pass.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[Any] = loop.create_future()

    def settle(result: Any, error: Exception | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def run() -> None:
        result, error = None, None
        try:
            result = asyncio.run(factory())
        except Exception as exc:
            error = exc
        # The build loop may already be closed once the thread was abandoned.
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(settle, result, error)

    threading.Thread(target=run, name="pressroom-render", daemon=True).start()
    return await future


class StaticBuilder:
    """Materializes a ContentService into a static tree."""

    def __init__(self, service: ContentService, writer: FileWriter | None = None) -> None:
        self._service = service
        self._writer = writer
        self._renderer = DualModeRenderer(service)

    def build(self, options: BuildOptions) -> BuildReport:
        return asyncio.run(self.build_async(options))

    async def build_async(self, options: BuildOptions) -> BuildReport:
        check_base_url(options.base_url)
        report = BuildReport()

        try:
            records = self._service.list_records()
        except EnumerationError:
            raise
        except Exception as exc:
            raise EnumerationError(f"could not list content: {exc}") from exc

        routes = enumerate_routes(
            records,
            strict=options.strict,
            report=report.failures,
            include_descriptor=options.include_descriptor,
        )
        report.routes = len(routes)
        logger.info("Building %d routes into %s", len(routes), options.output_dir)

        writer = self._writer or LocalFileWriter(options.output_dir)
        if options.clean:
            writer.clean(report=report.failures)
        if options.public_dir is not None:
            report.assets = len(writer.copy_tree(options.public_dir, report=report.failures))

        pages = [r for r in routes if r.has_fragment]
        auxiliary = [r for r in routes if not r.has_fragment]
        claimed: dict[str, str] = {}
        fragments_written: set[str] = set()
        link_targets: set[str] = set()
        semaphore = asyncio.Semaphore(max(1, options.max_workers))

        async def build_page(route: Route) -> bool:
            async with semaphore:
                result = await self._render(route, options, report)
                if result is None:
                    return False
                if not await self._write(route, result, writer, claimed, report):
                    return False
                if result.fragment is not None:
                    fragments_written.add(route.path)
                    report.fragments += 1
                report.pages += 1
                link_targets.update(result.link_targets)
                return True

        outcomes = await asyncio.gather(*(build_page(r) for r in pages))
        pages_ok = all(outcomes)

        for route in auxiliary:
            if not pages_ok:
                report.skipped_auxiliary.append(route.path)
                continue
            result = await self._render(route, options, report)
            if result is None:
                continue
            if await self._write(route, result, writer, claimed, report):
                report.auxiliary += 1
        if report.skipped_auxiliary:
            logger.warning(
                "Skipped %d auxiliary artifacts after route failures: %s",
                len(report.skipped_auxiliary),
                ", ".join(report.skipped_auxiliary),
            )

        report.dangling_links = sorted(link_targets - fragments_written)
        for target in report.dangling_links:
            logger.warning("Partial link to %s has no fragment artifact", target)

        report.failures.sort(key=lambda f: (f.subject, f.kind, f.message))
        report.artifacts.sort()
        logger.info(
            "Build finished: %d pages, %d fragments, %d auxiliary, %d assets, %d failures",
            report.pages,
            report.fragments,
            report.auxiliary,
            report.assets,
            len(report.failures),
        )
        return report

    async def _render(self, route: Route, options: BuildOptions, report: BuildReport) -> RenderResult | None:
        try:
            return await asyncio.wait_for(
                run_detached(lambda: self._renderer.render(route, options.base_url)),
                timeout=options.route_timeout,
            )
        except TimeoutError:
            err = RenderError(f"timed out after {options.route_timeout}s", subject=route.path)
        except RenderError as exc:
            err = exc
        logger.warning("Route failed: %s", err)
        report.failures.append(ItemFailure.from_exception(err))
        return None

    async def _write(
        self,
        route: Route,
        result: RenderResult,
        writer: FileWriter,
        claimed: dict[str, str],
        report: BuildReport,
    ) -> bool:
        try:
            artifacts = [OutputArtifact(path=output_path(route, RenderMode.FULL), data=result.full)]
            if result.fragment is not None:
                artifacts.append(
                    OutputArtifact(path=output_path(route, RenderMode.FRAGMENT), data=result.fragment)
                )
            for artifact in artifacts:
                owner = claimed.setdefault(artifact.path, route.path)
                if owner != route.path:
                    raise WriteError(f"{artifact.path} already written for {owner}", subject=route.path)
            for artifact in artifacts:
                await asyncio.to_thread(writer.write, artifact.path, artifact.data)
                report.artifacts.append(artifact.path)
        except PressroomError as exc:
            logger.warning("Write failed: %s", exc)
            report.failures.append(ItemFailure.from_exception(exc, subject=route.path))
            return False
        return True
