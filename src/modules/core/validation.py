"""Bridge between DRF input serializers and the Pydantic service DTOs."""

from __future__ import annotations

from typing import Any, Mapping, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from rest_framework import serializers

DTO = TypeVar("DTO", bound=BaseModel)


def build_dto(dto_class: Type[DTO], data: Mapping[str, Any]) -> DTO:
    """Instantiate ``dto_class``; Pydantic errors become a DRF 400."""
    try:
        return dto_class(**data)
    except PydanticValidationError as exc:
        errors: dict[str, list[str]] = {}
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "non_field_errors"
            errors.setdefault(field, []).append(error["msg"])
        raise serializers.ValidationError(errors) from exc
