"""CLI module for polychat."""
