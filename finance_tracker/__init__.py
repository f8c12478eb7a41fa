"""Personal Finance Tracker package."""

__all__ = [
    "config",
    "data_loader",
    "merchants",
    "categorizer",
    "importer",
    "analytics",
    "reports",
    "webapp",
    "db",
]

__version__ = "0.1.0"
