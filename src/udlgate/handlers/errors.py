"""Translation of backing-store failures into gateway errors."""

import logging

from udlgate.errors import BadRequest, GatewayError, NotFound
from udlgate.storage.backend import InvalidKey, InvalidPart, InvalidPartOrder, NoSuchUpload

logger = logging.getLogger(__name__)

# Storage errors caused by the request rather than by the store.
CLIENT_STORAGE_ERRORS = (NoSuchUpload, InvalidPart, InvalidPartOrder, InvalidKey)


def storage_error(exc: Exception) -> GatewayError:
    """Map one of ``CLIENT_STORAGE_ERRORS`` onto the closest client-visible kind."""
    if isinstance(exc, NoSuchUpload):
        logger.warning("Unknown upload session: %s", exc.upload_id)
        return NotFound("Upload not found")
    logger.warning("Backing store rejected request: %s", exc)
    return BadRequest(str(exc))
