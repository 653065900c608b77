"""Built-in discovery sources. Importing this package registers them."""

from .kitty import KittySource
from .niri import NiriSource

__all__ = ["KittySource", "NiriSource"]
