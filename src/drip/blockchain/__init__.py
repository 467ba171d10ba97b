"""Chain integration for DRIP."""

from .nyksd import CommandResult, NyksdClient, NyksdCommandError

__all__ = ["CommandResult", "NyksdClient", "NyksdCommandError"]
