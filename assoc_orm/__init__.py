"""Association-aware query and eager-load planner for relational entities."""

__version__ = "0.1.0"
