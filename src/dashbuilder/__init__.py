"""Build a country indicator dashboard from World Bank data and Natural Earth boundaries."""

__version__ = "0.1.0"
