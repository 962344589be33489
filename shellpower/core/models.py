"""Base class for validated parameter records."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ValidationError

from .exceptions import PreconditionError


class ParameterModel(BaseModel):
    """Pydantic model whose validation failures raise :class:`PreconditionError`.

    Hosts catching the package's own errors then also see bad parameter
    records, whether built from keyword arguments or from a JSON-like
    record through :meth:`model_validate`.
    """

    def __init__(self, /, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise PreconditionError(
                f"Invalid {type(self).__name__}: {exc}"
            ) from exc

    @classmethod
    def model_validate(cls, obj: Any, **kwargs: Any):
        try:
            return super().model_validate(obj, **kwargs)
        except ValidationError as exc:
            raise PreconditionError(f"Invalid {cls.__name__}: {exc}") from exc
