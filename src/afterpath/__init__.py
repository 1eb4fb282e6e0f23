"""afterpath: recovery stories with a role-gated editorial workflow."""

__version__ = "0.1.0"
