"""AetherDEX command line tools."""
