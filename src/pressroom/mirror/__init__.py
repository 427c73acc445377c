"""Mirror posts to AT Protocol site.standard records and back."""

from pressroom.mirror.client import AtProtoClient
from pressroom.mirror.mapping import document_to_record, record_to_document, slug_to_rkey
from pressroom.mirror.models import PublicationMapping, RemoteRecord, SyncReport
from pressroom.mirror.repository import (
    InMemoryMappingRepository,
    JsonMappingRepository,
    MappingRepository,
)
from pressroom.mirror.services import LocalIndex, Mirror
from pressroom.mirror.verify import (
    OwnershipVerifier,
    VerificationReport,
    VerificationStatus,
    directory_fetch,
    http_fetch,
)

__all__ = [
    "AtProtoClient",
    "InMemoryMappingRepository",
    "JsonMappingRepository",
    "LocalIndex",
    "MappingRepository",
    "Mirror",
    "OwnershipVerifier",
    "PublicationMapping",
    "RemoteRecord",
    "SyncReport",
    "VerificationReport",
    "VerificationStatus",
    "directory_fetch",
    "document_to_record",
    "http_fetch",
    "record_to_document",
    "slug_to_rkey",
]
