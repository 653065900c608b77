"""Discover keybinds from program configs and list them for fzf."""

__version__ = "0.1.0"
