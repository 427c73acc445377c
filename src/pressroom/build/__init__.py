"""Static build: materialize every route of the site as full and fragment HTML."""

from pressroom.build.builder import StaticBuilder
from pressroom.build.context import synthesize
from pressroom.build.models import (
    BuildOptions,
    BuildReport,
    RenderMode,
    Route,
    RouteKind,
    SyntheticRequestContext,
)
from pressroom.build.renderer import (
    ContentService,
    DualModeRenderer,
    SiteContentService,
    rewrite_partial_links,
)
from pressroom.build.routes import enumerate_routes, output_path, output_paths
from pressroom.build.writer import FileWriter, LocalFileWriter

__all__ = [
    "BuildOptions",
    "BuildReport",
    "ContentService",
    "DualModeRenderer",
    "FileWriter",
    "LocalFileWriter",
    "RenderMode",
    "Route",
    "RouteKind",
    "SiteContentService",
    "StaticBuilder",
    "SyntheticRequestContext",
    "enumerate_routes",
    "output_path",
    "output_paths",
    "rewrite_partial_links",
    "synthesize",
]
