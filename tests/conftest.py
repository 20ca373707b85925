"""
Shared test setup.

No test touches a real audio device: sounddevice is replaced in sys.modules
before any whis module is imported, and each audio test gets a fresh mock.
"""

import sys
from unittest.mock import MagicMock

import pytest


class FakePortAudioError(Exception):
    pass


def make_fake_sounddevice() -> MagicMock:
    sd = MagicMock(name="sounddevice")
    sd.PortAudioError = FakePortAudioError
    sd.query_devices.return_value = {
        "name": "Test Mic",
        "max_input_channels": 1,
        "default_samplerate": 16000.0,
    }
    return sd


sys.modules["sounddevice"] = make_fake_sounddevice()


@pytest.fixture
def fake_sd(monkeypatch):
    import whis.audio
    sd = make_fake_sounddevice()
    monkeypatch.setattr(whis.audio, "sd", sd)
    return sd
