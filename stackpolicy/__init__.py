"""stackpolicy - tooling policy engine for project stacks."""

__version__ = "0.1.0"
