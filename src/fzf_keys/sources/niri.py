"""Keybinds from the niri compositor's KDL config.

Every node directly inside a ``binds`` block whose name looks like
``Mod+Shift+T`` becomes one Keybind. Its children are the action, and its
properties (``hotkey-overlay-title``, ``repeat``, ``cooldown-ms``,
``allow-when-locked``, ``allow-inhibiting``) become the Keybind's flags.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .. import kdl
from ..config import config_home, expand_path, setting
from ..errors import ConfigReadError, ParseError
from ..keybind import (
    DEFAULT_ALLOW_INHIBITING,
    DEFAULT_ALLOW_WHEN_LOCKED,
    Keybind,
    canonicalize_modifiers,
)
from ..source import Source

logger = logging.getLogger(__name__)

BINDS_BLOCK = "binds"

MODIFIERS = {
    "mod": "Mod",
    "super": "Super",
    "win": "Super",
    "alt": "Alt",
    "ctrl": "Ctrl",
    "control": "Ctrl",
    "shift": "Shift",
    "iso_level3_shift": "ISO_Level3_Shift",
    "mod5": "ISO_Level3_Shift",
    "iso_level5_shift": "ISO_Level5_Shift",
    "mod3": "ISO_Level5_Shift",
}

NAMED_KEYS = (
    "Return", "Space", "Tab", "Escape", "BackSpace", "Delete", "Insert",
    "Home", "End", "Page_Up", "Page_Down", "Left", "Right", "Up", "Down",
    "Print", "Pause", "Scroll_Lock", "Menu", "Caps_Lock", "Num_Lock",
    "Slash", "Backslash", "Comma", "Period", "Minus", "Equal", "Plus",
    "Semicolon", "Apostrophe", "Grave", "BracketLeft", "BracketRight",
) + tuple(f"F{n}" for n in range(1, 25))

XF86_KEYS = tuple(
    "XF86" + name
    for name in (
        "AudioRaiseVolume", "AudioLowerVolume", "AudioMute", "AudioMicMute",
        "AudioPlay", "AudioPause", "AudioStop", "AudioNext", "AudioPrev",
        "AudioRecord", "AudioRewind", "AudioForward", "AudioMedia",
        "MonBrightnessUp", "MonBrightnessDown", "MonBrightnessCycle",
        "KbdBrightnessUp", "KbdBrightnessDown", "KbdLightOnOff",
        "PowerOff", "PowerDown", "Sleep", "Suspend", "Hibernate", "WakeUp",
        "ScreenSaver", "Display", "Eject", "Calculator", "Explorer",
        "HomePage", "Mail", "Search", "WWW", "Favorites", "Tools",
        "Terminal", "Messenger", "MyComputer", "Documents", "Music",
        "Pictures", "Video", "Battery", "Bluetooth", "WLAN", "RFKill",
        "TouchpadToggle", "TouchpadOn", "TouchpadOff", "Webcam",
        "Back", "Forward", "Refresh", "Reload", "Close", "Open", "Save",
        "Copy", "Cut", "Paste", "Undo", "Redo", "Phone", "Keyboard",
        "LaunchA", "LaunchB", "Launch1", "Launch2", "Launch3", "Launch4",
        "Launch5", "Launch6", "Launch7", "Launch8", "Launch9",
        "RotateWindows", "Game", "AudioPreset", "Assistant",
    )
)

MOUSE_KEYS = ("MouseLeft", "MouseRight", "MouseMiddle", "MouseBack", "MouseForward")

SCROLL_KEYS = tuple(
    f"{device}Scroll{direction}"
    for device in ("Wheel", "Touchpad")
    for direction in ("Down", "Up", "Left", "Right")
)

_KEYS = {
    name.lower(): name
    for name in NAMED_KEYS + XF86_KEYS + MOUSE_KEYS + SCROLL_KEYS
}


@dataclass(frozen=True)
class BindDefaults:
    """Values assumed for eligibility flags a bind leaves unset."""
    allow_when_locked: bool = DEFAULT_ALLOW_WHEN_LOCKED
    allow_inhibiting: bool = DEFAULT_ALLOW_INHIBITING


def default_config_path() -> Path:
    return config_home() / "niri" / "config.kdl"


def canonicalize_key(token: str) -> str:
    """Return niri's spelling of a known key name, or ``token`` unchanged."""
    return _KEYS.get(token.lower(), token)


def is_known_key(token: str) -> bool:
    return token.lower() in _KEYS


def split_key_combination(combo: str) -> tuple[tuple[str, ...], str]:
    """Split ``Mod+Shift+T`` into canonical modifiers and key.

    Raises ValueError when any segment is empty.
    """
    parts = combo.split("+")
    if not all(parts):
        raise ValueError(f"empty segment in key combination {combo!r}")
    return canonicalize_modifiers(parts[:-1], MODIFIERS), canonicalize_key(parts[-1])


def format_action(children: Iterable[kdl.Node]) -> str:
    return " ".join(kdl.format_node(child) for child in children)


def _flag(node: kdl.Node, name: str, default: bool) -> bool:
    value = node.properties.get(name)
    if value is None:
        return default
    if not isinstance(value, bool):
        logger.warning(
            "line %d: ignoring %s=%r on %s, expected a boolean",
            node.line, name, value, node.name,
        )
        return default
    return value


def _cooldown(node: kdl.Node) -> Optional[int]:
    value = node.properties.get("cooldown-ms")
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        logger.warning(
            "line %d: ignoring cooldown-ms=%r on %s, expected a non-negative integer",
            node.line, value, node.name,
        )
        return None
    return value


def interpret_bind(
    node: kdl.Node,
    program: str = "niri",
    defaults: BindDefaults = BindDefaults(),
) -> Optional[Keybind]:
    """Turn one child of a ``binds`` block into a Keybind.

    Returns None for nodes that are not key combinations.
    """
    try:
        modifiers, key = split_key_combination(node.name)
    except ValueError as err:
        logger.debug("line %d: skipping %s", node.line, err)
        return None

    # a bare lowercase word is a directive, not a key, unless it names one
    if not modifiers and key[0].islower() and not is_known_key(key):
        logger.debug("line %d: skipping non-bind node %r", node.line, node.name)
        return None

    description = node.properties.get("hotkey-overlay-title")
    if not isinstance(description, str):
        description = None

    return Keybind(
        key=key,
        action=format_action(node.children),
        program=program,
        modifiers=modifiers,
        description=description,
        repeat=_flag(node, "repeat", True),
        cooldown_ms=_cooldown(node),
        allow_when_locked=_flag(node, "allow-when-locked", defaults.allow_when_locked),
        allow_inhibiting=_flag(node, "allow-inhibiting", defaults.allow_inhibiting),
    )


def extract_keybinds(
    nodes: Iterable[kdl.Node],
    program: str = "niri",
    defaults: BindDefaults = BindDefaults(),
) -> list[Keybind]:
    """Collect keybinds from every top-level ``binds`` block, in document order."""
    keybinds = []
    for node in nodes:
        if node.name != BINDS_BLOCK:
            continue
        for child in node.children:
            keybind = interpret_bind(child, program, defaults)
            if keybind is not None:
                keybinds.append(keybind)
    return keybinds


class NiriSource(Source):
    name = "niri"

    def __init__(self, config_path: Path, defaults: BindDefaults = BindDefaults()):
        self.config_path = config_path
        self.defaults = defaults

    @classmethod
    def from_settings(cls, section: dict) -> "NiriSource":
        config = setting(section, "config", str, "")
        path = expand_path(config) if config else default_config_path()
        defaults = BindDefaults(
            allow_when_locked=setting(
                section, "allow-when-locked", bool, DEFAULT_ALLOW_WHEN_LOCKED
            ),
            allow_inhibiting=setting(
                section, "allow-inhibiting", bool, DEFAULT_ALLOW_INHIBITING
            ),
        )
        return cls(path, defaults)

    def read_config(self) -> str:
        path = self.config_path
        try:
            with path.open(encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError as err:
            raise ConfigReadError(path, "not-found", "no such file", self.name) from err
        except PermissionError as err:
            raise ConfigReadError(
                path, "permission-denied", "permission denied", self.name
            ) from err
        except IsADirectoryError as err:
            raise ConfigReadError(path, "not-a-file", "is a directory", self.name) from err
        except UnicodeDecodeError as err:
            raise ConfigReadError(
                path, "unreadable", f"not valid UTF-8 ({err.reason})", self.name
            ) from err
        except OSError as err:
            raise ConfigReadError(
                path, "unreadable", err.strerror or str(err), self.name
            ) from err

    def discover(self) -> list[Keybind]:
        text = self.read_config()
        try:
            nodes = kdl.parse(text)
        except ParseError as err:
            raise err.with_path(self.config_path, self.name) from None
        keybinds = extract_keybinds(nodes, self.name, self.defaults)
        logger.debug("%s: %d keybinds", self.config_path, len(keybinds))
        return keybinds
