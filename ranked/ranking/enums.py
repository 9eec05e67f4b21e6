from __future__ import annotations

from enum import Enum


class Position(str, Enum):
    first = "first"
    last = "last"
    middle = "middle"
