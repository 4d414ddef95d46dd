"""
Alarm Insights package.

Pipeline:
- Column mapping inference for arbitrary alarm/event CSV exports.
- Normalization of raw rows into canonical, time-ordered events.
- ISA-18 style statistics (alarm rate, floods, chattering, alarm -> action patterns).
- Control-loop oscillation diagnosis backed by an LLM value extractor.
"""

__all__ = [
    "__version__",
]

__version__ = "1.0.0"
