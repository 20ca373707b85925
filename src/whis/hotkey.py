"""
Global hotkey listener for the whis service.

The listener lives on its own pynput thread and does nothing but put a token
on a queue each time the hotkey fires. The service loop drains the queue.
"""

import queue

from .utils import log

_MODIFIERS = {
    "ctrl": "<ctrl>",
    "control": "<ctrl>",
    "shift": "<shift>",
    "alt": "<alt>",
    "option": "<alt>",
    "super": "<cmd>",
    "cmd": "<cmd>",
    "meta": "<cmd>",
    "win": "<cmd>",
}

_NAMED_KEYS = {
    "space", "enter", "tab", "esc", "backspace", "delete", "insert",
    "home", "end", "page_up", "page_down", "up", "down", "left", "right",
    "pause", "print_screen", "scroll_lock", "caps_lock",
} | {f"f{i}" for i in range(1, 21)}

_ALIASES = {"escape": "esc", "return": "enter", "pgup": "page_up", "pgdn": "page_down"}


def to_pynput(hotkey: str) -> str:
    """Convert 'ctrl+shift+r' style text to pynput's '<ctrl>+<shift>+r'."""
    parts = [p.strip().lower() for p in hotkey.split("+")]
    if not parts or any(not p for p in parts):
        raise ValueError(f"Invalid hotkey: {hotkey!r}")

    keys = []
    for part in parts:
        part = _ALIASES.get(part, part)
        if part in _MODIFIERS:
            keys.append(_MODIFIERS[part])
        elif part in _NAMED_KEYS:
            keys.append(f"<{part}>")
        elif len(part) == 1:
            keys.append(part)
        else:
            raise ValueError(f"Unknown key '{part}' in hotkey {hotkey!r}")

    if all(k in _MODIFIERS.values() for k in keys):
        raise ValueError(f"Hotkey {hotkey!r} needs a non-modifier key")
    if len(set(keys)) != len(keys):
        raise ValueError(f"Hotkey {hotkey!r} repeats a key")
    return "+".join(keys)


class HotkeyListener:
    """Signals `events` once per hotkey press from a dedicated thread."""

    def __init__(self, hotkey: str, events: queue.Queue):
        self.hotkey = hotkey
        self._combo = to_pynput(hotkey)
        self._events = events
        self._listener = None

    def start(self) -> bool:
        try:
            from pynput import keyboard
            self._listener = keyboard.GlobalHotKeys({self._combo: self._on_activate})
            self._listener.daemon = True
            self._listener.start()
        except Exception as e:
            log(f"Hotkey listener failed to start: {e}", "ERR")
            self._listener = None
            return False
        log(f"Hotkey {self.hotkey} registered", "OK")
        return True

    def stop(self):
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.stop()

    def _on_activate(self):
        self._events.put_nowait(None)
