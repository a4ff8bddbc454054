"""Standalone image upload for the editor, mounted at ``/api/upload``."""

from fastapi import APIRouter, Depends, Request

from newsdesk.errors import ValidationFailed
from newsdesk.storage.blobs import validate_image
from newsdesk_api.auth import require_admin
from newsdesk_api.deps import Services, get_services
from newsdesk_api.forms import read_payload

router = APIRouter(prefix="/upload", tags=["upload"])

EDITOR_FOLDER = "editor-uploads"


@router.post("/image", dependencies=[Depends(require_admin)])
async def upload_image(request: Request, services: Services = Depends(get_services)) -> dict:
    _, image = await read_payload(request)
    if image is None:
        raise ValidationFailed("No file uploaded")
    validate_image(image)
    url = await services.blobs.store(image.data, image.mime_type, EDITOR_FOLDER)
    return {"status": "success", "url": url}
