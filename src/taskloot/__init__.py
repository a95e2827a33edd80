"""TaskLoot task, puzzle, and reward engine."""

__version__ = "0.1.0"
