"""
STRATFLOW Backend
Node-graph strategy evaluation and backtesting
"""
__version__ = "1.0.0"

# Primary value of a multi-field indicator record
DEFAULT_INPUT_FIELD = "MACD"

# Field name accepted for scalar indicator series
SCALAR_INPUT_FIELD = "value"

MACD_FIELDS = ("MACD", "signal", "histogram")
