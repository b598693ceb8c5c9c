"""SQLite-backed adapters for the snippet and dataset store interfaces."""
