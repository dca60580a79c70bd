"""Base model for junctionsync wire documents.

Every wire model inherits from :class:`SyncBaseModel` which provides:

* ``alias_generator=to_camel`` so the camelCase JSON keys used on the
  wire map automatically to snake_case fields.
* ``populate_by_name=True`` so Python callers may use either spelling.
* Immutability (``frozen=True``); updates are expressed as new documents.

Timestamps on the wire are epoch milliseconds. :data:`EpochMillis`
coerces the float values some clients send into integers.
"""

from __future__ import annotations

import math
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel


def coerce_epoch_ms(value: Any) -> Any:
    """Coerce a numeric epoch-millisecond value to ``int``.

    Non-numeric values are passed through so pydantic reports them.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return value
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return value


EpochMillis = Annotated[int, BeforeValidator(coerce_epoch_ms)]
"""Annotated type for epoch-millisecond timestamps."""


class SyncBaseModel(BaseModel):
    """Base for junctionsync wire models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
