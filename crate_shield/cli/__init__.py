"""Command-line interface for CrateShield."""
