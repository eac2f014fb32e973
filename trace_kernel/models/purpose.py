"""Purpose: the governing goal every approved change must serve."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class PurposeMode(str, Enum):
    SAFE = "safe"
    POWER = "power"     # Required to create power-mode-only connections


class Purpose(BaseModel):
    goal: str                               # e.g., "Cut cart abandonment by 15%"
    scope: str = ""                         # e.g., "authentication"
    mode: PurposeMode = PurposeMode.SAFE
    success_criteria: Optional[str] = None

    @property
    def is_set(self) -> bool:
        return bool(self.goal.strip())
