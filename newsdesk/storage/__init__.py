"""Object storage for uploaded images."""

from newsdesk.storage.blobs import (
    ALLOWED_IMAGE_TYPES,
    MAX_IMAGE_BYTES,
    BlobStore,
    LocalBlobStore,
    Upload,
    validate_image,
)

__all__ = [
    "ALLOWED_IMAGE_TYPES",
    "MAX_IMAGE_BYTES",
    "BlobStore",
    "LocalBlobStore",
    "Upload",
    "validate_image",
]
