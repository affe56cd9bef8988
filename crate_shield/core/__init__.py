"""Core parsing, version matching and reporting logic for CrateShield."""
