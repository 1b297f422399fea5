"""Volume-gated invoice due-date scheduling"""

__version__ = "0.1.0"
