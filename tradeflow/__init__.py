"""tradeflow — trade-flow aggregation, scoring and forecasting backend."""

__version__ = "0.3.0"
