"""todo-tracks: follow TODO comments across the branches of a git repository."""

__version__ = "0.1.0"
