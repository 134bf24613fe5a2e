"""Payload checks applied to records before they become model instances."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from numbers import Real
from typing import Any, ClassVar

from ..errors import ValidationError


class ModelValidationError(ValidationError):
    """Raised when a stored record does not satisfy its model's requirements."""

    kind = "invalid_record"

    def __init__(self, model: type[Any], errors: Sequence[str]) -> None:
        self.model = model
        self.errors = list(errors)
        message = ", ".join(self.errors) if self.errors else "invalid payload"
        super().__init__(f"{model.__name__} validation failed: {message}")


@dataclass(frozen=True)
class FieldSpec:
    expected: Any
    description: str
    required: bool = True
    allow_none: bool = False


@dataclass(frozen=True)
class SequenceSpec:
    item: Any


@dataclass(frozen=True)
class MappingSpec:
    key: Any
    value: Any


def is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def is_non_negative_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def is_user_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and value.strip().isdigit()


def _matches(value: Any, expected: Any) -> bool:
    if expected is Any:
        return True
    if isinstance(expected, SequenceSpec):
        if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
            return False
        return all(_matches(item, expected.item) for item in value)
    if isinstance(expected, MappingSpec):
        if not isinstance(value, Mapping):
            return False
        return all(
            _matches(key, expected.key) and _matches(item, expected.value)
            for key, item in value.items()
        )
    if isinstance(expected, tuple):
        return any(_matches(value, option) for option in expected)
    # typing aliases such as typing.Mapping check against their runtime class
    origin = getattr(expected, "__origin__", None)
    if isinstance(origin, type):
        expected = origin
    if isinstance(expected, type):
        if expected is int:
            return isinstance(value, int) and not isinstance(value, bool)
        if expected is float:
            return isinstance(value, Real) and not isinstance(value, bool)
        return isinstance(value, expected)
    if callable(expected):
        try:
            return bool(expected(value))
        except (TypeError, ValueError):
            return False
    return True


class ModelValidator:
    """Base class for record validators.

    Subclasses declare ``model`` and a ``fields`` mapping; unknown keys are
    passed through untouched so older records keep loading.
    """

    model: ClassVar[type[Any]]
    fields: ClassVar[Mapping[str, FieldSpec]]

    @classmethod
    def validate(cls, data: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(data, Mapping):
            raise ModelValidationError(cls.model, ["Payload must be a mapping"])

        errors: list[str] = []
        for name, spec in cls.fields.items():
            if name not in data:
                if spec.required:
                    errors.append(f"Missing required field '{name}' ({spec.description})")
                continue
            value = data[name]
            if value is None:
                if not spec.allow_none:
                    errors.append(f"Field '{name}' cannot be null")
                continue
            if not _matches(value, spec.expected):
                errors.append(
                    f"Field '{name}' expected {spec.description}, "
                    f"received {type(value).__name__}"
                )

        if errors:
            raise ModelValidationError(cls.model, errors)
        return dict(data)


def validate_record(cls: type[Any], data: Mapping[str, Any]) -> dict[str, Any]:
    """Validate ``data`` with the validator registered on ``cls``, if any."""

    validator: type[ModelValidator] | None = getattr(cls, "validator", None)
    if validator is None:
        return dict(data)
    return validator.validate(data)


__all__ = [
    "FieldSpec",
    "MappingSpec",
    "ModelValidationError",
    "ModelValidator",
    "SequenceSpec",
    "is_non_empty_str",
    "is_non_negative_int",
    "is_user_id",
    "validate_record",
]
