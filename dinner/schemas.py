from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, StringConstraints, TypeAdapter
import pydantic

from dinner.errors import ValidationError


Identifier = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class JoinDinner(BaseModel):
    intent: Literal["join"]
    user_id: Identifier
    restaurant_id: Identifier


class LeaveDinner(BaseModel):
    intent: Literal["leave"]
    user_id: Identifier


DinnerAction = TypeAdapter(
    Annotated[JoinDinner | LeaveDinner, Field(discriminator="intent")]
)


def field_errors(e: pydantic.ValidationError) -> dict[str, list[str]]:
    """Flatten pydantic errors to {field: [messages]}."""
    fields: dict[str, list[str]] = {}
    for error in e.errors():
        # Discriminated unions put the tag name in front of the field.
        loc = [str(part) for part in error["loc"] if part not in ("join", "leave")]
        fields.setdefault(".".join(loc) or "intent", []).append(error["msg"])
    return fields


def parse_action(data: dict[str, Any]) -> JoinDinner | LeaveDinner:
    try:
        return DinnerAction.validate_python(data)
    except pydantic.ValidationError as e:
        raise ValidationError(field_errors(e)) from e


def parse_join(user_id: str, restaurant_id: str) -> JoinDinner:
    try:
        return JoinDinner(intent="join", user_id=user_id, restaurant_id=restaurant_id)
    except pydantic.ValidationError as e:
        raise ValidationError(field_errors(e)) from e


def parse_leave(user_id: str) -> LeaveDinner:
    try:
        return LeaveDinner(intent="leave", user_id=user_id)
    except pydantic.ValidationError as e:
        raise ValidationError(field_errors(e)) from e
