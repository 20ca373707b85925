"""
Unit tests for hotkey.py.

pynput is never started; only the combo translation and the queue hand-off
are exercised.
"""

import queue

import pytest

from whis.hotkey import HotkeyListener, to_pynput


class TestToPynput:
    def test_default_combo(self):
        assert to_pynput("ctrl+shift+r") == "<ctrl>+<shift>+r"

    def test_case_and_spaces_ignored(self):
        assert to_pynput(" Ctrl + Alt + W ") == "<ctrl>+<alt>+w"

    def test_named_keys(self):
        assert to_pynput("super+space") == "<cmd>+<space>"
        assert to_pynput("f9") == "<f9>"

    def test_aliases(self):
        assert to_pynput("ctrl+escape") == "<ctrl>+<esc>"
        assert to_pynput("option+return") == "<alt>+<enter>"

    @pytest.mark.parametrize("bad", ["", "ctrl+", "ctrl+shift", "ctrl+banana", "r+r", "ctrl+control+r"])
    def test_invalid_combos(self, bad):
        with pytest.raises(ValueError):
            to_pynput(bad)


class TestHotkeyListener:
    def test_activation_puts_token(self):
        events = queue.Queue()
        listener = HotkeyListener("ctrl+shift+r", events)
        listener._on_activate()
        listener._on_activate()
        assert events.qsize() == 2

    def test_invalid_hotkey_rejected_up_front(self):
        with pytest.raises(ValueError):
            HotkeyListener("ctrl+", queue.Queue())

    def test_stop_without_start(self):
        HotkeyListener("f9", queue.Queue()).stop()
