"""flowshift package root."""

from flowshift.exceptions import NeverThrown, UnsupportedConstructError
from flowshift.invariants import never

__all__ = ["__version__", "NeverThrown", "UnsupportedConstructError", "never"]

__version__ = "0.1.0"
