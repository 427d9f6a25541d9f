"""Shared schema helpers — boundary validation and embedded summaries."""

from typing import TypeVar

from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from devhance.core.exceptions import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def field_errors(exc: PydanticValidationError | RequestValidationError) -> list[dict]:
    """Flatten pydantic (or FastAPI request) errors into ``[{"field", "message"}]`` using the client-facing names."""
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err["loc"] if part not in ("body", "query", "path", "form")]
        field = ".".join(loc) or "__root__"
        if err["type"] == "missing":
            message = f"{field} is required"
        else:
            message = err["msg"].removeprefix("Value error, ")
        errors.append({"field": field, "message": message})
    return errors


def validate_payload(model: type[ModelT], data: dict) -> ModelT:
    """Validate ``data`` against ``model``, raising the app's 400 ValidationError."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError("Validation failed", errors=field_errors(exc)) from exc


def optional_url(value: object) -> object:
    """Treat blank strings as absent and require an http(s) scheme otherwise."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        if not value.startswith(("http://", "https://")):
            raise ValueError("must be an http(s) URL")
    return value


class AuthorSummary(BaseModel):
    """Public identity embedded in project and comment responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    display_name: str
    profile_picture: str | None = None


class MessageResponse(BaseModel):
    message: str
