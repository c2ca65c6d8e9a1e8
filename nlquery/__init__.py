"""NLQuery: natural-language questions answered against tabular data sources."""

__version__ = "0.1.0"
