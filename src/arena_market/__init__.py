"""Arena Market: transactional in-game shop engine."""

__version__ = "1.0.0"
