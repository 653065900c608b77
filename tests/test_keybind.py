"""Tests for the Keybind record and its rendering."""

import dataclasses

import pytest

from fzf_keys.keybind import Keybind, canonicalize_modifiers, find_conflicts


def make_keybind(**kwargs) -> Keybind:
    fields = {"key": "T", "action": 'spawn "alacritty";', "program": "niri"}
    fields.update(kwargs)
    return Keybind(**fields)


class TestKeybind:
    def test_empty_key_rejected(self):
        with pytest.raises(ValueError):
            make_keybind(key="")

    def test_modifiers_deduplicated_in_order(self):
        kb = make_keybind(modifiers=("Mod", "Shift", "Mod"))
        assert kb.modifiers == ("Mod", "Shift")

    def test_immutable(self):
        kb = make_keybind()
        with pytest.raises(dataclasses.FrozenInstanceError):
            kb.key = "Q"

    def test_combo(self):
        assert make_keybind(modifiers=("Mod", "Shift")).combo == "Mod+Shift+T"
        assert make_keybind(key="Print").combo == "Print"

    def test_canonicalize_modifiers(self):
        aliases = {"ctrl": "Ctrl", "control": "Ctrl"}
        assert canonicalize_modifiers(["Control", "ctrl", "Weird"], aliases) == ("Ctrl", "Weird")


class TestToLine:
    def test_with_description(self):
        kb = make_keybind(modifiers=("Mod", "Shift"), description="Open Terminal")
        assert kb.to_line() == 'niri: Mod+Shift+T [Open Terminal] -> spawn "alacritty";'

    def test_without_description(self):
        kb = make_keybind(modifiers=("Mod",), key="Q", action="close-window;")
        assert kb.to_line() == "niri: Mod+Q -> close-window;"

    def test_without_modifiers(self):
        kb = make_keybind(key="XF86AudioRaiseVolume", action="volume-up;")
        assert kb.to_line() == "niri: XF86AudioRaiseVolume -> volume-up;"

    def test_with_properties(self):
        kb = make_keybind(
            modifiers=("Mod",),
            key="WheelScrollDown",
            action="focus-workspace-down;",
            repeat=False,
            cooldown_ms=150,
        )
        assert kb.to_line() == (
            "niri: Mod+WheelScrollDown (no-repeat, cooldown=150ms) -> focus-workspace-down;"
        )

    def test_eligibility_flags(self):
        kb = make_keybind(
            key="XF86AudioMute",
            description="Mute",
            allow_when_locked=True,
            allow_inhibiting=False,
        )
        assert kb.to_line() == (
            'niri: XF86AudioMute [Mute] (allow-locked, no-inhibit) -> spawn "alacritty";'
        )

    def test_no_action(self):
        assert make_keybind(action="").to_line() == "niri: T"

    def test_single_line(self):
        kb = make_keybind(description="two\nlines", action="a;\n  b;")
        line = kb.to_line()
        assert "\n" not in line
        assert line == "niri: T [two lines] -> a; b;"

    def test_action_comes_last(self):
        kb = make_keybind(description="d", repeat=False)
        assert kb.to_line().endswith('-> spawn "alacritty";')

    def test_blank_description_leaves_no_brackets(self):
        assert make_keybind(description="  \n ").to_line() == 'niri: T -> spawn "alacritty";'

    def test_brackets_in_description_cannot_close_the_field(self):
        line = make_keybind(description="a] -> b [c]").to_line()
        assert line == 'niri: T [a) -> b (c)] -> spawn "alacritty";'
        assert line.count("]") == 1
        assert line.split("] ", 1)[1] == '-> spawn "alacritty";'


class TestOtherFormats:
    def test_tsv(self):
        kb = make_keybind(modifiers=("Mod",), description="Open\tTerminal")
        assert kb.to_tsv() == 'niri\tMod+T\tOpen Terminal\tspawn "alacritty";'

    def test_dict(self):
        data = make_keybind(modifiers=("Mod",)).to_dict()
        assert data["modifiers"] == ["Mod"]
        assert data["key"] == "T"
        assert data["repeat"] is True
        assert data["description"] is None


class TestConflicts:
    def test_finds_duplicates(self):
        a = make_keybind(modifiers=("Mod", "Shift"), action="a;")
        b = make_keybind(modifiers=("Shift", "Mod"), key="t", action="b;")
        c = make_keybind(modifiers=("Mod",), action="c;")

        conflicts = find_conflicts([a, b, c])

        assert list(conflicts.values()) == [[a, b]]

    def test_programs_do_not_conflict(self):
        a = make_keybind(modifiers=("Mod",))
        b = make_keybind(modifiers=("Mod",), program="kitty")
        assert find_conflicts([a, b]) == {}
