from __future__ import annotations

from decimal import Decimal
from typing import TypeAlias

JSONPrimitive: TypeAlias = str | int | float | bool | None | Decimal
JSONValue: TypeAlias = JSONPrimitive | dict[str, "JSONValue"] | list["JSONValue"]

GENESIS_HASH = "0" * 64
