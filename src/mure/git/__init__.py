"""Git capability used by repository synchronization."""

from mure.git.command import GitCommand, GitRepository

__all__ = ["GitCommand", "GitRepository"]
