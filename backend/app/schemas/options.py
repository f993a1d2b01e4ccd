from __future__ import annotations

from typing import Any

from pydantic import Field

from backend.app.schemas.common import CamelModel


class OptionItem(CamelModel):
    id: str
    label: str
    value: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    disabled: bool = False


class OptionsPage(CamelModel):
    items: list[OptionItem]
    next_cursor: str | None = None
    has_more: bool = False
    total: int = 0
