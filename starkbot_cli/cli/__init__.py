"""CLI module for starkbot-cli."""
