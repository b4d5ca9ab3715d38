from __future__ import annotations
from enum import Enum
from typing import Union


class Mode(str, Enum):
    """Arming modes understood by the security controller."""

    AWAY = "away"
    SECURITY = "security"
    SAFE = "safe"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: Union["Mode", str]) -> "Mode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown mode: {value!r}") from None
