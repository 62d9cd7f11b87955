"""
Profile Mutation Algebra
========================
Pure functions that resolve dotted field paths against the profile
schema, validate proposed values before any store interaction, and
project a batch of operations onto a document.

The store layer only ever receives operation batches that passed
``validate_operations``; the projected document is re-validated as a
whole before the conditional write so cross-field effects (e.g. an
increment pushing a tone metric past 10) are caught too.

Architecture: Pure Core / Imperative Shell
"""

from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Annotated, Any, Optional, Union, get_args, get_origin

from pydantic import BaseModel, TypeAdapter, ValidationError

from core.enums import UpdateOperator
from core.exceptions import ProfileNotFoundError, ProfileValidationError
from core.models import ProfileUpdateOperation, StyleProfile, UserProfileDocument, utc_now

DOCUMENT_TARGETS: frozenset[str] = frozenset(
    {"style_profile", "manual_overrides", "profile_versions"}
)
_PROFILE_PREFIX = "style_profile."


@dataclass(frozen=True)
class ResolvedPath:
    """A validated location inside a ``UserProfileDocument``."""

    parts: tuple[str, ...]
    annotation: Any
    adapter: TypeAdapter

    @property
    def dotted(self) -> str:
        return ".".join(self.parts)

    @property
    def in_profile(self) -> bool:
        return self.parts[0] == "style_profile" and len(self.parts) > 1

    @property
    def is_list(self) -> bool:
        return get_origin(self.annotation) is list

    @property
    def is_numeric(self) -> bool:
        return self.annotation in (int, float)

    def element_adapter(self) -> TypeAdapter:
        (item_type,) = get_args(self.annotation) or (Any,)
        return TypeAdapter(item_type)


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) is Union:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


@lru_cache(maxsize=256)
def resolve_path(field_path: str) -> ResolvedPath:
    """
    Resolve a dotted path to its schema annotation and constraints.

    Paths are relative to the style profile unless they name one of the
    document-level targets. A leading ``style_profile.`` is accepted.

    Raises:
        ProfileValidationError: Unknown path or path through a scalar
    """
    if field_path in DOCUMENT_TARGETS:
        parts: tuple[str, ...] = (field_path,)
    elif field_path.startswith(_PROFILE_PREFIX):
        parts = ("style_profile", *field_path[len(_PROFILE_PREFIX) :].split("."))
    else:
        parts = ("style_profile", *field_path.split("."))

    model: type[BaseModel] = UserProfileDocument
    annotation: Any = None
    metadata: list[Any] = []
    for depth, part in enumerate(parts):
        if model is None or part not in model.model_fields:
            raise ProfileValidationError(
                f"Unknown profile field: {field_path}", field_path=field_path
            )
        info = model.model_fields[part]
        annotation = info.annotation
        metadata = list(info.metadata)
        if depth < len(parts) - 1:
            inner = _unwrap_optional(annotation)
            model = inner if isinstance(inner, type) and issubclass(inner, BaseModel) else None

    adapter_type = Annotated[(annotation, *metadata)] if metadata else annotation
    return ResolvedPath(parts=parts, annotation=annotation, adapter=TypeAdapter(adapter_type))


def _validation_messages(exc: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(p) for p in err['loc']) or 'value'}: {err['msg']}"
        for err in exc.errors()
    ]


def validate_operation(op: ProfileUpdateOperation) -> tuple[ResolvedPath, Any]:
    """
    Statically validate one operation against its field's declared type.

    Returns:
        The resolved path and the coerced value to apply

    Raises:
        ProfileValidationError: Value violates the field's range or enum
    """
    path = resolve_path(op.field)
    try:
        if op.operation == UpdateOperator.SET:
            value = path.adapter.validate_python(op.value)
        elif op.operation == UpdateOperator.INC:
            if not path.is_numeric:
                raise ProfileValidationError(
                    f"Cannot increment non-numeric field {op.field}",
                    field_path=op.field,
                    value=op.value,
                )
            if isinstance(op.value, bool) or not isinstance(op.value, (int, float)):
                raise ProfileValidationError(
                    f"Increment delta for {op.field} must be a number",
                    field_path=op.field,
                    value=op.value,
                )
            value = TypeAdapter(path.annotation).validate_python(op.value)
        else:
            if not path.is_list:
                raise ProfileValidationError(
                    f"Cannot {op.operation.value} on non-list field {op.field}",
                    field_path=op.field,
                    value=op.value,
                )
            value = path.element_adapter().validate_python(op.value)
    except ValidationError as exc:
        raise ProfileValidationError(
            f"Invalid value for {op.field}",
            field_path=op.field,
            value=op.value,
            validation_errors=_validation_messages(exc),
            cause=exc,
        ) from exc
    return path, value


def validate_operations(
    operations: list[ProfileUpdateOperation],
) -> list[tuple[ResolvedPath, ProfileUpdateOperation, Any]]:
    """Validate a whole batch; the first invalid operation rejects all of them."""
    if not operations:
        raise ProfileValidationError("Update batch must contain at least one operation")
    validated = []
    for op in operations:
        path, value = validate_operation(op)
        validated.append((path, op, value))
    return validated


def _to_plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, list):
        return [_to_plain(v) for v in value]
    return value


def _container(data: dict[str, Any], parts: tuple[str, ...], user_id: str) -> dict[str, Any]:
    node = data
    for part in parts[:-1]:
        child = node.get(part)
        if child is None:
            if part == "style_profile":
                raise ProfileNotFoundError(user_id)
            child = {}
            node[part] = child
        node = child
    return node


def apply_operations(
    document: UserProfileDocument,
    validated: list[tuple[ResolvedPath, ProfileUpdateOperation, Any]],
    *,
    now: Optional[datetime] = None,
) -> UserProfileDocument:
    """
    Project validated operations onto a copy of ``document``.

    The result is re-validated as a complete document and carries the
    same ``version`` as the input; only the store bumps it. The style
    profile's ``last_updated`` is stamped whenever a profile is present.

    Raises:
        ProfileNotFoundError: A profile-relative path on a document without a profile
        ProfileValidationError: The projected document violates an invariant
    """
    data = document.model_dump()
    for path, op, value in validated:
        parent = _container(data, path.parts, document.user_id)
        key = path.parts[-1]
        if op.operation == UpdateOperator.SET:
            parent[key] = _to_plain(value)
        elif op.operation == UpdateOperator.INC:
            parent[key] = (parent.get(key) or 0) + value
        elif op.operation == UpdateOperator.PUSH:
            parent[key] = [*(parent.get(key) or []), _to_plain(value)]
        elif op.operation == UpdateOperator.PULL:
            plain = _to_plain(value)
            parent[key] = [item for item in (parent.get(key) or []) if item != plain]

    if data.get("style_profile") is not None:
        data["style_profile"]["last_updated"] = now or utc_now()

    try:
        return UserProfileDocument.model_validate(data)
    except ValidationError as exc:
        raise ProfileValidationError(
            "Update would violate profile invariants",
            field_path=",".join(path.dotted for path, _, _ in validated),
            validation_errors=_validation_messages(exc),
            cause=exc,
        ) from exc


def profile_snapshot(profile: StyleProfile) -> dict[str, Any]:
    """JSON-compatible dump of a profile for storage and caching."""
    return profile.model_dump(mode="json")


__all__ = [
    "DOCUMENT_TARGETS",
    "ResolvedPath",
    "resolve_path",
    "validate_operation",
    "validate_operations",
    "apply_operations",
    "profile_snapshot",
]
