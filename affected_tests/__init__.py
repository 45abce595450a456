"""Change-impact test selection with a two-phase (head vs. working) run."""

__version__ = "0.1.0"
