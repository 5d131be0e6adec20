"""Match assembly and team balancing for recurring small-sided football fixtures."""

__version__ = "0.1.0"
