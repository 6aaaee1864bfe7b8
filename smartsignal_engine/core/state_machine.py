"""Trade-attempt state machine with validated transitions."""

from enum import Enum


class TradeStep(str, Enum):
    """Steps of one trade attempt."""

    CHECK_LIMITS = "CHECK_LIMITS"
    SET_LEVERAGE = "SET_LEVERAGE"
    PLACE_MARKET_ORDER = "PLACE_MARKET_ORDER"
    PLACE_REDUCE_ONLY_STOP = "PLACE_REDUCE_ONLY_STOP"
    PLACE_REDUCE_ONLY_TAKE_PROFIT = "PLACE_REDUCE_ONLY_TAKE_PROFIT"
    DONE = "DONE"  # Position open and protected
    REJECTED = "REJECTED"  # Safety limits refused the attempt, nothing sent
    FAILED = "FAILED"  # No position was opened
    UNPROTECTED = "UNPROTECTED"  # Position open, a protective order is missing


TERMINAL_STEPS = frozenset(
    {TradeStep.DONE, TradeStep.REJECTED, TradeStep.FAILED, TradeStep.UNPROTECTED}
)

# Valid step transitions
VALID_TRANSITIONS: dict[TradeStep, list[TradeStep]] = {
    TradeStep.CHECK_LIMITS: [TradeStep.SET_LEVERAGE, TradeStep.REJECTED],
    TradeStep.SET_LEVERAGE: [TradeStep.PLACE_MARKET_ORDER, TradeStep.FAILED],
    TradeStep.PLACE_MARKET_ORDER: [TradeStep.PLACE_REDUCE_ONLY_STOP, TradeStep.FAILED],
    TradeStep.PLACE_REDUCE_ONLY_STOP: [
        TradeStep.PLACE_REDUCE_ONLY_TAKE_PROFIT,
        TradeStep.UNPROTECTED,
    ],
    TradeStep.PLACE_REDUCE_ONLY_TAKE_PROFIT: [TradeStep.DONE, TradeStep.UNPROTECTED],
    TradeStep.DONE: [],
    TradeStep.REJECTED: [],
    TradeStep.FAILED: [],
    TradeStep.UNPROTECTED: [],
}


class TradeAttemptStateMachine:
    """State machine for a single trade attempt."""

    def __init__(self, attempt_id: str, symbol: str):
        """
        Initialize state machine.

        Args:
            attempt_id: Idempotency key of the attempt
            symbol: Exchange symbol id (e.g., "BTCUSDT")
        """
        self.attempt_id = attempt_id
        self.symbol = symbol
        self._current_step = TradeStep.CHECK_LIMITS
        self.history: list[TradeStep] = [TradeStep.CHECK_LIMITS]

    @property
    def current_step(self) -> TradeStep:
        """Get current step."""
        return self._current_step

    @property
    def is_terminal(self) -> bool:
        """True once the attempt has finished."""
        return self._current_step in TERMINAL_STEPS

    def transition_to(self, new_step: TradeStep) -> None:
        """
        Transition to a new step with validation.

        Args:
            new_step: Target step

        Raises:
            ValueError: If transition is invalid
        """
        if new_step not in VALID_TRANSITIONS[self._current_step]:
            raise ValueError(
                f"Invalid transition from {self._current_step} to {new_step} "
                f"for {self.symbol} attempt {self.attempt_id}"
            )

        self._current_step = new_step
        self.history.append(new_step)

    def can_transition_to(self, new_step: TradeStep) -> bool:
        """
        Check if transition is valid without executing it.

        Args:
            new_step: Target step

        Returns:
            True if transition is allowed
        """
        return new_step in VALID_TRANSITIONS[self._current_step]
