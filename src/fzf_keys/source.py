"""The discovery source capability and the loop that runs sources."""

import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Iterable

from .errors import SettingsError, SourceError
from .keybind import Keybind

logger = logging.getLogger(__name__)


class Source(ABC):
    """Discovers the keybinds of one program.

    Subclasses are registered under their ``name`` when defined, unless
    they pass ``register=False``.
    """

    name: ClassVar[str] = ""
    _registry: ClassVar[dict[str, type["Source"]]] = {}

    def __init_subclass__(cls, register: bool = True, **kwargs):
        super().__init_subclass__(**kwargs)
        if register and cls.name:
            Source._registry[cls.name] = cls

    @classmethod
    def from_settings(cls, section: dict) -> "Source":
        """Build the source from its table in the settings file."""
        return cls()

    @abstractmethod
    def discover(self) -> list[Keybind]:
        """Return the program's keybinds in the order they are defined.

        Raises SourceError if they cannot be read.
        """


def registered_sources() -> dict[str, type[Source]]:
    return dict(Source._registry)


def create_source(name: str, section: dict) -> Source:
    try:
        cls = Source._registry[name]
    except KeyError:
        known = ", ".join(sorted(Source._registry)) or "none"
        raise SettingsError(f"unknown source {name!r} (known: {known})") from None
    return cls.from_settings(section)


def discover_all(
    sources: Iterable[Source],
) -> tuple[list[Keybind], dict[str, SourceError]]:
    """Run every source, one after another.

    Returns (keybinds, failures). A failing source contributes no keybinds
    and does not stop the others; its error is keyed by source name.
    """
    keybinds: list[Keybind] = []
    failures: dict[str, SourceError] = {}

    for source in sources:
        try:
            found = source.discover()
        except SourceError as err:
            logger.debug("source %s failed: %s", source.name, err)
            failures[source.name] = err
            continue
        logger.debug("source %s found %d keybinds", source.name, len(found))
        keybinds.extend(found)

    return keybinds, failures
