"""
splitsync - Extract monorepo modules into standalone repositories.

This package filters the history of individual module directories out of a
monorepo into their own git repositories, keeps those repositories in sync
on later runs, and versions them through a persistent registry.
"""

__version__ = "1.0.0"
