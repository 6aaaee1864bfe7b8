"""AI second-opinion validation."""

from .validator import AISignalValidator, AIVerdict, Verdict, parse_verdict

__all__ = ["AISignalValidator", "AIVerdict", "Verdict", "parse_verdict"]
