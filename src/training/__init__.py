"""Mental-math training core.

Runs timed exercise sessions, scores them and decides level promotions.
"""

__version__ = "0.1.0"
