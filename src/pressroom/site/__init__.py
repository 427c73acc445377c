"""The live site: one FastAPI app serves pages and feeds for both serving and building."""

from pressroom.site.app import DESCRIPTOR_PATH, DOCUMENT_LINK_REL, create_app, is_partial_request

__all__ = [
    "DESCRIPTOR_PATH",
    "DOCUMENT_LINK_REL",
    "create_app",
    "is_partial_request",
]
