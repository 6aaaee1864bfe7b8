"""Symbol extraction and signal field parsing."""

from .field_parser import SignalFieldParser
from .symbol_extractor import SymbolExtractor, SymbolValidator

__all__ = ["SignalFieldParser", "SymbolExtractor", "SymbolValidator"]
