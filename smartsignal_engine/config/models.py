"""Pydantic configuration models with type safety and validation."""

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class ExecutionConfig(BaseModel):
    """Execution mode settings."""

    mode: Literal["dry-run", "live"] = Field(
        default="dry-run",
        description="Trading mode: dry-run for simulated fills, live for real futures orders",
    )
    testnet: bool = Field(
        default=False,
        description="Route live orders to the exchange testnet",
    )


class TradingConfig(BaseModel):
    """Auto-trading policy: safety caps, sizing targets and protective distances."""

    enabled: bool = Field(
        default=False,
        description="Initial auto-trading state when no persisted flag exists",
    )
    max_daily_trades: int = Field(
        default=10,
        ge=1,
        description="Maximum trades opened per local day",
    )
    max_open_positions: int = Field(
        default=3,
        ge=1,
        description="Maximum simultaneously open positions (one per symbol)",
    )
    target_usd: float = Field(
        default=0.40,
        gt=0.0,
        description="Margin in USD per trade; target notional = target_usd x leverage",
    )
    leverage_mode: Literal["fixed", "bracket"] = Field(
        default="bracket",
        description="fixed: always default_leverage; bracket: exchange max leverage clamped to max_leverage",
    )
    default_leverage: int = Field(
        default=15,
        ge=1,
        le=125,
        description="Leverage used in fixed mode and for fallback plans",
    )
    max_leverage: int = Field(
        default=15,
        ge=1,
        le=125,
        description="Policy ceiling applied to any leverage",
    )
    stop_loss_usd: float = Field(
        default=0.15,
        gt=0.0,
        description="Fixed USD loss at the stop-loss price",
    )
    take_profit_usd: float = Field(
        default=0.37,
        gt=0.0,
        description="Fixed USD gain at the take-profit price",
    )
    fallback_quantity: float = Field(
        default=0.001,
        gt=0.0,
        description="Conservative quantity used when exchange filters are unavailable",
    )

    @model_validator(mode="after")
    def _default_within_ceiling(self) -> "TradingConfig":
        if self.default_leverage > self.max_leverage:
            raise ValueError(
                f"default_leverage ({self.default_leverage}) cannot exceed "
                f"max_leverage ({self.max_leverage})"
            )
        return self


class DecisionConfig(BaseModel):
    """Confidence scoring policy."""

    base_confidence: int = Field(default=50, ge=0, le=95, description="Starting confidence")
    entry_threshold: int = Field(
        default=80,
        ge=1,
        le=95,
        description="Minimum confidence for ENTER_LONG / ENTER_SHORT",
    )
    near_miss_threshold: int = Field(
        default=70,
        ge=0,
        le=95,
        description="Lower bound of the band that gets a specific wait recommendation",
    )
    max_confidence: int = Field(default=95, ge=1, le=95, description="Hard confidence cap")
    projected_boost: int = Field(
        default=15,
        ge=0,
        description="Confidence gain projected for a satisfied recommendation",
    )
    notify_threshold: int = Field(
        default=70,
        ge=0,
        le=95,
        description="Minimum confidence for sending a decision notification",
    )
    execute_threshold: int = Field(
        default=80,
        ge=1,
        le=95,
        description="Minimum confidence for auto-execution",
    )

    @model_validator(mode="after")
    def _thresholds_ordered(self) -> "DecisionConfig":
        if self.near_miss_threshold > self.entry_threshold:
            raise ValueError(
                f"near_miss_threshold ({self.near_miss_threshold}) must not exceed "
                f"entry_threshold ({self.entry_threshold})"
            )
        if self.entry_threshold > self.max_confidence:
            raise ValueError(
                f"entry_threshold ({self.entry_threshold}) cannot exceed "
                f"max_confidence ({self.max_confidence})"
            )
        if self.execute_threshold < self.entry_threshold:
            raise ValueError(
                f"execute_threshold ({self.execute_threshold}) must be >= "
                f"entry_threshold ({self.entry_threshold})"
            )
        return self


class AnalysisConfig(BaseModel):
    """Smart-money analysis thresholds (24h quote volume in USD, changes in %)."""

    high_volume: float = Field(default=1_000_000, gt=0, description="Accumulation volume threshold")
    very_high_volume: float = Field(default=5_000_000, gt=0, description="Markup/distribution volume threshold")
    extreme_volume: float = Field(default=10_000_000, gt=0, description="VERY_HIGH volume band threshold")
    liquidity_volume: float = Field(default=500_000, ge=0, description="Minimum volume for reliable momentum")
    stable_change_pct: float = Field(default=2.0, gt=0, description="Stable 24h price change band")
    large_move_pct: float = Field(default=3.0, gt=0, description="Large 24h move band")
    momentum_trigger_pct: float = Field(default=5.0, gt=0, description="24h change that creates momentum")
    near_entry_pct: float = Field(default=1.0, gt=0, description="Distance to entry mean for LOW risk")
    far_entry_pct: float = Field(default=5.0, gt=0, description="Distance to entry mean for HIGH risk")
    round_number_proximity: float = Field(
        default=0.05,
        gt=0,
        le=1,
        description="Relative distance to a round-number anchor that scores +1",
    )

    @model_validator(mode="after")
    def _bands_ordered(self) -> "AnalysisConfig":
        if not self.high_volume < self.very_high_volume < self.extreme_volume:
            raise ValueError("Volume thresholds must satisfy high < very_high < extreme")
        if self.near_entry_pct >= self.far_entry_pct:
            raise ValueError("near_entry_pct must be less than far_entry_pct")
        return self


class SymbolsConfig(BaseModel):
    """Symbol extraction settings."""

    quote_asset: str = Field(default="USDT", min_length=2, description="Quote asset suffix")
    min_base_length: int = Field(default=2, ge=1, description="Minimum ticker length before the suffix")
    max_base_length: int = Field(default=15, ge=2, description="Maximum ticker length before the suffix")

    @model_validator(mode="after")
    def _length_bounds(self) -> "SymbolsConfig":
        if self.min_base_length > self.max_base_length:
            raise ValueError("min_base_length must not exceed max_base_length")
        if not self.quote_asset.isalnum() or not self.quote_asset.isupper():
            raise ValueError(f"quote_asset must be upper-case alphanumeric, got {self.quote_asset!r}")
        return self


class PipelineConfig(BaseModel):
    """Message pipeline pacing and timeouts."""

    min_interval_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="Minimum spacing between two full pipeline runs",
    )
    dedup_clear_minutes: int = Field(
        default=60,
        ge=1,
        description="Interval for wholesale clearing of the dedup set",
    )
    dedup_prefix_chars: int = Field(
        default=50,
        ge=1,
        description="Characters of raw text used in the dedup key",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout for every external call",
    )
    own_message_marker: str = Field(
        default="SMART MONEY ANALYSIS",
        description="Header carried by our own notifications; messages containing it are ignored",
    )
    reconcile_interval_minutes: int = Field(
        default=0,
        ge=0,
        description="Periodic protective-order reconciliation (0 disables)",
    )


class RetracementConfig(BaseModel):
    """Fibonacci retracement analysis settings."""

    timeframe: str = Field(default="4h", description="Primary kline interval")
    fallback_timeframe: str = Field(default="1h", description="Interval used when primary data is short")
    kline_limit: int = Field(default=100, ge=20, description="Bars requested")
    min_bars: int = Field(default=50, ge=20, description="Bars required for analysis")
    swing_lookback: int = Field(default=20, ge=5, description="Bars scanned for swing high/low")
    level_tolerance_pct: float = Field(default=0.5, gt=0, description="Distance counted as touching a level")


class AIValidatorConfig(BaseModel):
    """Optional AI second-opinion collaborator (OpenAI-compatible chat completions)."""

    enabled: bool = Field(default=False, description="Ask the AI validator before executing")
    base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        description="Base URL of the chat-completions API",
    )
    model: str = Field(default="llama-3.1-8b-instant", description="Model identifier")
    min_confidence: int = Field(
        default=70,
        ge=0,
        le=100,
        description="Verdict confidence required for a veto",
    )
    max_retries: int = Field(default=3, ge=0, le=10, description="Retries on rate-limit responses")
    backoff_seconds: float = Field(default=2.0, ge=0.0, description="Base backoff between retries")
    max_calls_per_hour: int = Field(default=50, ge=1, description="Hourly request quota")
    max_retry_after_seconds: float = Field(
        default=10.0, ge=0.0, description="Longest Retry-After wait honored between retries"
    )
    deadline_seconds: float = Field(
        default=30.0, gt=0.0, description="Overall budget for one validation, retries included"
    )


class BotConfig(BaseModel):
    """Top-level bot configuration."""

    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    trading: TradingConfig = Field(default_factory=TradingConfig)
    decision: DecisionConfig = Field(default_factory=DecisionConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    symbols: SymbolsConfig = Field(default_factory=SymbolsConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    retracement: RetracementConfig = Field(default_factory=RetracementConfig)
    ai_validator: AIValidatorConfig = Field(default_factory=AIValidatorConfig)

    @model_validator(mode="after")
    def _validate_risk_coherence(self) -> "BotConfig":
        """Protective distances must be reachable within one position's margin."""
        if self.trading.stop_loss_usd > self.trading.target_usd:
            raise ValueError(
                f"stop_loss_usd ({self.trading.stop_loss_usd}) "
                f"cannot exceed target_usd margin ({self.trading.target_usd})"
            )
        return self
