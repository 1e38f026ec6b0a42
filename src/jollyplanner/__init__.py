"""Weekly floater planning: coverage gaps, booking conflicts and auto-assignment."""

__version__ = "0.1.0"
