"""The keybind record shared by every source, and how it is rendered."""

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

# niri's documented defaults for the two eligibility flags
DEFAULT_ALLOW_WHEN_LOCKED = False
DEFAULT_ALLOW_INHIBITING = True


def canonicalize_modifiers(
    segments: Iterable[str], aliases: Mapping[str, str]
) -> tuple[str, ...]:
    """Map modifier segments to canonical names, dropping repeats.

    Lookup is case-insensitive. Segments missing from ``aliases`` are kept
    verbatim. Order of first appearance is preserved.
    """
    canonical = (aliases.get(s.lower(), s) for s in segments)
    return tuple(dict.fromkeys(canonical))


def _one_line(text: str) -> str:
    return " ".join(text.split())


@dataclass(frozen=True)
class Keybind:
    """One binding discovered in some program's configuration."""
    key: str
    action: str
    program: str
    modifiers: tuple[str, ...] = ()
    description: Optional[str] = None
    repeat: bool = True
    cooldown_ms: Optional[int] = None
    allow_when_locked: bool = DEFAULT_ALLOW_WHEN_LOCKED
    allow_inhibiting: bool = DEFAULT_ALLOW_INHIBITING

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("key cannot be empty")
        object.__setattr__(self, "modifiers", tuple(dict.fromkeys(self.modifiers)))

    @property
    def combo(self) -> str:
        return "+".join(self.modifiers + (self.key,))

    @property
    def annotations(self) -> list[str]:
        """Properties that differ from their defaults, in display form."""
        notes = []
        if not self.repeat:
            notes.append("no-repeat")
        if self.cooldown_ms is not None:
            notes.append(f"cooldown={self.cooldown_ms}ms")
        if self.allow_when_locked != DEFAULT_ALLOW_WHEN_LOCKED:
            notes.append("allow-locked" if self.allow_when_locked else "no-locked")
        if self.allow_inhibiting != DEFAULT_ALLOW_INHIBITING:
            notes.append("no-inhibit" if not self.allow_inhibiting else "allow-inhibit")
        return notes

    def to_line(self) -> str:
        parts = [f"{self.program}: {self.combo}"]
        # the bracketed field holds no brackets of its own
        description = _one_line(self.description or "").replace("[", "(").replace("]", ")")
        if description:
            parts.append(f"[{description}]")
        notes = self.annotations
        if notes:
            parts.append(f"({', '.join(notes)})")
        action = _one_line(self.action)
        if action:
            parts.append(f"-> {action}")
        return " ".join(parts)

    def to_tsv(self) -> str:
        fields = (self.program, self.combo, self.description or "", self.action)
        return "\t".join(_one_line(f.replace("\t", " ")) for f in fields)

    def to_dict(self) -> dict:
        return {
            "program": self.program,
            "modifiers": list(self.modifiers),
            "key": self.key,
            "action": self.action,
            "description": self.description,
            "repeat": self.repeat,
            "cooldown_ms": self.cooldown_ms,
            "allow_when_locked": self.allow_when_locked,
            "allow_inhibiting": self.allow_inhibiting,
        }


def find_conflicts(
    keybinds: Iterable[Keybind],
) -> dict[tuple[str, frozenset, str], list[Keybind]]:
    """Find key combinations that are bound more than once.

    Returns dict mapping (program, modifiers, key) to the bindings sharing
    it. Modifier order and key case are ignored. Only includes entries with
    2+ bindings.
    """
    by_combo: dict[tuple[str, frozenset, str], list[Keybind]] = defaultdict(list)
    for kb in keybinds:
        by_combo[(kb.program, frozenset(kb.modifiers), kb.key.lower())].append(kb)

    return {k: v for k, v in by_combo.items() if len(v) > 1}
