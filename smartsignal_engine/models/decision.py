"""Decision models."""

from dataclasses import dataclass
from enum import Enum


class Action(str, Enum):
    """Action chosen by the decision engine."""

    ENTER_LONG = "ENTER_LONG"
    ENTER_SHORT = "ENTER_SHORT"
    WAIT = "WAIT"


@dataclass(frozen=True)
class Decision:
    """Confidence-scored action with its audit trail."""

    action: Action
    confidence: int
    reasons: tuple[str, ...] = ()
    wait_recommendation: str | None = None

    def __post_init__(self) -> None:
        """Validate decision data."""
        if not 0 <= self.confidence <= 95:
            raise ValueError("Confidence must be between 0 and 95")
        if self.wait_recommendation is not None and self.action != Action.WAIT:
            raise ValueError("Wait recommendation only applies to WAIT decisions")

    @property
    def is_entry(self) -> bool:
        """True for ENTER_LONG / ENTER_SHORT."""
        return self.action != Action.WAIT
