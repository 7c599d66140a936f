"""
aagl-cli: resolves and pre-downloads game and voice package updates.
"""

__version__ = "1.0.0"
