"""Settings file lookup and loading."""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .errors import SettingsError

FORMATS = ("line", "tsv", "json")
DEFAULT_SOURCES = ("niri",)

SAMPLE_CONFIG = """\
# fzf-keys settings

# Sources to run, in output order. Known: niri, kitty
sources = ["niri"]

# Output format: line, tsv or json
format = "line"

[niri]
# config = "~/.config/niri/config.kdl"

# Values assumed when a bind does not set these properties.
allow-when-locked = false
allow-inhibiting = true
"""


@dataclass
class Settings:
    """Parsed settings file."""
    sources: list[str] = field(default_factory=lambda: list(DEFAULT_SOURCES))
    format: str = "line"
    sections: dict[str, dict] = field(default_factory=dict)

    def section(self, name: str) -> dict:
        return self.sections.get(name, {})


def config_home() -> Path:
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config)
    return Path.home() / ".config"


def get_default_config_paths() -> list[Path]:
    paths = []
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        paths.append(Path(xdg_config) / "fzf-keys/config.toml")
    paths.append(Path.home() / ".config/fzf-keys/config.toml")
    paths.append(Path.home() / ".fzf-keys.toml")
    return paths


def find_config() -> Optional[Path]:
    for p in get_default_config_paths():
        if p.exists():
            return p
    return None


def expand_path(value: str) -> Path:
    """Expand ``~`` and environment variables in a configured path."""
    return Path(os.path.expandvars(value)).expanduser()


def load_config(config_path: Path) -> dict:
    """Load settings from TOML file."""
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as err:
        raise SettingsError(f"{config_path}: {err}") from err
    except OSError as err:
        raise SettingsError(f"{config_path}: {err.strerror or err}") from err


def setting(section: dict, key: str, expected: type, default: Any) -> Any:
    """Read ``key`` from a settings table, checking its type."""
    value = section.get(key, default)
    # bool is an int subclass
    if isinstance(value, bool) != (expected is bool) or not isinstance(value, expected):
        raise SettingsError(
            f"setting {key!r} must be {expected.__name__}, got {type(value).__name__}"
        )
    return value


def load_settings(config_path: Optional[Path]) -> Settings:
    """Load settings, or the built-in defaults when there is no file."""
    if config_path is None:
        return Settings()

    data = load_config(config_path)

    sources = data.get("sources", list(DEFAULT_SOURCES))
    if not isinstance(sources, list) or not all(isinstance(s, str) for s in sources):
        raise SettingsError(f"{config_path}: 'sources' must be a list of source names")

    fmt = data.get("format", "line")
    if fmt not in FORMATS:
        raise SettingsError(
            f"{config_path}: 'format' must be one of {', '.join(FORMATS)}, got {fmt!r}"
        )

    sections = {name: cfg for name, cfg in data.items() if isinstance(cfg, dict)}
    return Settings(sources=sources, format=fmt, sections=sections)


def write_sample_config(path: Path) -> Path:
    """Write the sample settings file, refusing to overwrite one."""
    if path.exists():
        raise SettingsError(f"{path} already exists")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(SAMPLE_CONFIG)
    return path
