import time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .utils import clamp

ATTACK_RANGE = (10, 200)
HEALTH_RANGE = (20, 500)


class ScanResult(BaseModel):
    """Gameplay attributes derived from one photographed card.

    - attack / health: always clamped to ``ATTACK_RANGE`` / ``HEALTH_RANGE``.
    - character_image: PNG or JPEG data URI, or None when no portrait exists.
    - name: character name when the remote service recognized one.
    """

    model_config = ConfigDict(frozen=True)

    attack: int
    health: int
    character_image: Optional[str] = None
    name: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _clamp_stats(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            if isinstance(data.get("attack"), (int, float)):
                data["attack"] = clamp(int(data["attack"]), *ATTACK_RANGE)
            if isinstance(data.get("health"), (int, float)):
                data["health"] = clamp(int(data["health"]), *HEALTH_RANGE)
        return data


class StoredCardData(ScanResult):
    """A ScanResult as persisted, stamped with its save time (epoch seconds)."""

    timestamp: float = Field(default_factory=time.time)

    @classmethod
    def from_result(cls, result: ScanResult) -> "StoredCardData":
        return cls(**result.model_dump())

    def to_result(self) -> ScanResult:
        return ScanResult(**self.model_dump(exclude={"timestamp"}))


class ExtractedStats(BaseModel):
    """Partial stats recovered from a remote reply; any field may be missing."""

    health: Optional[int] = None
    attack: Optional[int] = None
    name: Optional[str] = None

    def is_empty(self) -> bool:
        return self.health is None and self.attack is None and self.name is None


class AIExtraction(BaseModel):
    """Outcome of one remote extraction attempt."""

    stats: Optional[ExtractedStats] = None
    image: Optional[str] = None

    @property
    def usable(self) -> bool:
        return self.stats is not None or self.image is not None
