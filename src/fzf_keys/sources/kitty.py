"""Keybinds from the kitty terminal.

Rather than parsing kitty.conf, this asks kitty's own Python modules for
the shortcuts kitty has actually resolved: defaults that are still
active, added and remapped shortcuts, with ``kitty_mod`` expanded. The
kitty modules must be importable, e.g. by putting kitty's library
directory on ``PYTHONPATH``.
"""

import logging
from typing import Iterator

from ..errors import SourceError, SourceUnavailableError
from ..keybind import Keybind, canonicalize_modifiers
from ..source import Source

logger = logging.getLogger(__name__)

MODIFIERS = {
    "ctrl": "Ctrl",
    "control": "Ctrl",
    "shift": "Shift",
    "alt": "Alt",
    "opt": "Alt",
    "option": "Alt",
    "super": "Super",
    "cmd": "Super",
    "command": "Super",
    "kitty_mod": "Mod",
}


def parse_key_combination(combo: str) -> tuple[tuple[str, ...], str]:
    """Split a kitty shortcut such as ``ctrl+shift+t`` into modifiers and key.

    ``ctrl+shift++`` binds the ``+`` key. Multi-key sequences such as
    ``ctrl+f>2`` keep everything from the first key on as the key.
    """
    if combo.endswith("++"):
        head = combo[:-2]
        return canonicalize_modifiers(head.split("+") if head else [], MODIFIERS), "+"

    first, sep, rest = combo.partition(">")
    parts = first.split("+")
    key = parts[-1] + sep + rest
    if not parts[-1]:
        raise ValueError(f"empty key in combination {combo!r}")
    return canonicalize_modifiers(parts[:-1], MODIFIERS), key


def _read_shortcuts() -> Iterator[tuple[str, str]]:
    """Yield (human readable shortcut, action) pairs from kitty's loaded config."""
    from kitty.config import load_config
    from kitty.types import Shortcut, mod_to_names

    opts = load_config()
    kitty_mod = opts.kitty_mod
    kitty_mod_names = "+".join(mod_to_names(kitty_mod))

    for mode in opts.keyboard_modes.values():
        for key, definitions in mode.keymap.items():
            for definition in definitions:
                if definition.is_sequence:
                    shortcut = Shortcut((definition.trigger,) + tuple(definition.rest))
                else:
                    shortcut = Shortcut((key,))
                combo = shortcut.human_repr(kitty_mod).replace("kitty_mod", kitty_mod_names)
                yield combo, definition.human_repr()


class KittySource(Source):
    name = "kitty"

    def discover(self) -> list[Keybind]:
        try:
            import kitty.config  # noqa: F401
        except ImportError as err:
            raise SourceUnavailableError(
                f"kitty's Python modules are not importable ({err}); "
                "add kitty's library directory to PYTHONPATH",
                self.name,
            ) from err

        try:
            shortcuts = list(_read_shortcuts())
        except Exception as err:
            raise SourceError(f"kitty failed to load its config: {err}", self.name) from err

        keybinds = []
        for combo, action in shortcuts:
            try:
                modifiers, key = parse_key_combination(combo)
            except ValueError as err:
                raise SourceError(str(err), self.name) from err
            keybinds.append(
                Keybind(key=key, action=action, program=self.name, modifiers=modifiers)
            )
        logger.debug("kitty: %d keybinds", len(keybinds))
        return keybinds
