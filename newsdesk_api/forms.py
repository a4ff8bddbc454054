"""Request body parsing shared by the write endpoints.

Create/update accept either JSON or a multipart form with an optional
``image`` file. Form fields arrive as strings, so JSON-looking values
(``content`` blocks, chart ``data``) are decoded here; pydantic coerces the
rest.
"""

import json
from typing import Any

from fastapi import Request
from pydantic import BaseModel, ValidationError
from starlette.datastructures import UploadFile

from newsdesk.errors import ValidationFailed
from newsdesk.storage.blobs import Upload

JSON_FIELDS = ("content", "data")


def field_errors(exc: ValidationError) -> list[dict[str, str]]:
    return [
        {"field": ".".join(str(p) for p in e["loc"] if p != "body"), "message": e["msg"]}
        for e in exc.errors()
    ]


async def read_payload(request: Request) -> tuple[dict[str, Any], Upload | None]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise ValidationFailed("Malformed JSON body") from None
        if not isinstance(body, dict):
            raise ValidationFailed("Request body must be an object")
        return body, None

    form = await request.form()
    data: dict[str, Any] = {}
    image: Upload | None = None
    for name, value in form.multi_items():
        if isinstance(value, str):
            value = _decode(name, value)
            if name in data:
                # Repeated fields (tags=a&tags=b) collect into a list
                previous = data[name] if isinstance(data[name], list) else [data[name]]
                data[name] = [*previous, value]
            else:
                data[name] = value
        elif isinstance(value, UploadFile) and name == "image":
            image = Upload(
                data=await value.read(),
                mime_type=value.content_type or "application/octet-stream",
                filename=value.filename,
            )
    return data, image


def _decode(name: str, value: str) -> Any:
    stripped = value.strip()
    if name in JSON_FIELDS and stripped[:1] in ("[", "{"):
        try:
            return json.loads(stripped)
        except ValueError:
            raise ValidationFailed(f"{name} is not valid JSON") from None
    return value


def parse(model: type[BaseModel], data: dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ValidationFailed("Validation failed", errors=field_errors(exc)) from None


async def read_model(request: Request, model: type[BaseModel]) -> tuple[Any, Upload | None]:
    data, image = await read_payload(request)
    return parse(model, data), image

