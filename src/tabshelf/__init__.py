"""
tabshelf - local sheet-music and tablature library engine.
"""

__version__ = "0.1.0"
