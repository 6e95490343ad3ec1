"""
Fuge: tiny-habit lifecycle, chaining and clustering engine.

Built around the Fogg Behavior Model (B = MAP). Habits are anchored tiny
behaviors ("after X, I will do Y") that are checked in, scaled back after
repeated misses, evolved in difficulty, and chained into sequences.
"""

__version__ = "0.1.0"
