"""mure: keep many git repositories in one workspace."""

__version__ = "0.1.0"
