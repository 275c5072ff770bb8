"""RailFlow - payment rail resolution engine and card event state machine."""

__version__ = "0.3.0"
