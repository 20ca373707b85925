# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Unit tests for audio.py.

Uses numpy-generated blocks and a mocked sounddevice. No microphone needed.
"""

import threading

import numpy as np
import pytest

from whis.audio import AudioCapture, CapturedAudio, SampleBuffer, to_float32
from whis.errors import DeviceError, EmptyRecordingError


def _open_callback(fake_sd):
    """The callback AudioCapture handed to the (mocked) InputStream."""
    return fake_sd.InputStream.call_args.kwargs["callback"]


# ---------------------------------------------------------------------------
# Sample conversion
# ---------------------------------------------------------------------------

class TestToFloat32:
    def test_float32_passes_through(self):
        block = np.array([[0.5], [-0.25]], dtype=np.float32)
        out = to_float32(block, "float32")
        assert out.dtype == np.float32
        np.testing.assert_allclose(out, [0.5, -0.25])

    def test_int16_full_scale(self):
        block = np.array([[-32768], [0], [16384]], dtype=np.int16)
        np.testing.assert_allclose(to_float32(block, "int16"), [-1.0, 0.0, 0.5])

    def test_uint8_is_centred(self):
        block = np.array([[0], [128], [192]], dtype=np.uint8)
        np.testing.assert_allclose(to_float32(block, "uint8"), [-1.0, 0.0, 0.5])

    def test_int32_full_scale(self):
        block = np.array([[-2147483648]], dtype=np.int32)
        np.testing.assert_allclose(to_float32(block, "int32"), [-1.0])

    def test_stereo_block_is_interleaved(self):
        block = np.array([[0.1, 0.2], [0.3, 0.4]], dtype=np.float32)
        np.testing.assert_allclose(to_float32(block, "float32"), [0.1, 0.2, 0.3, 0.4], rtol=1e-6)

    def test_unknown_format_raises(self):
        with pytest.raises(DeviceError):
            to_float32(np.zeros((2, 1)), "float64")


# ---------------------------------------------------------------------------
# SampleBuffer
# ---------------------------------------------------------------------------

class TestSampleBuffer:
    def test_take_concatenates_in_order(self):
        buf = SampleBuffer()
        buf.append(np.array([1, 2], dtype=np.float32))
        buf.append(np.array([3], dtype=np.float32))
        assert len(buf) == 3
        np.testing.assert_array_equal(buf.take(), [1, 2, 3])

    def test_take_leaves_buffer_empty(self):
        buf = SampleBuffer()
        buf.append(np.ones(4, dtype=np.float32))
        buf.take()
        assert len(buf) == 0
        assert buf.take().size == 0

    def test_empty_take_is_float32(self):
        assert SampleBuffer().take().dtype == np.float32

    def test_concurrent_appends_are_all_kept(self):
        buf = SampleBuffer()

        def writer():
            for _ in range(100):
                buf.append(np.zeros(10, dtype=np.float32))

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(buf.take()) == 4000


class TestCapturedAudio:
    def test_duration_accounts_for_channels(self):
        audio = CapturedAudio(np.zeros(32000, dtype=np.float32), 16000, 2)
        assert audio.duration == pytest.approx(1.0)


# ---------------------------------------------------------------------------
# AudioCapture
# ---------------------------------------------------------------------------

class TestAudioCapture:
    def test_start_opens_default_device(self, fake_sd):
        cap = AudioCapture()
        cap.start()
        kwargs = fake_sd.InputStream.call_args.kwargs
        assert kwargs["samplerate"] == 16000
        assert kwargs["channels"] == 1
        assert kwargs["dtype"] == "float32"
        assert cap.recording
        fake_sd.InputStream.return_value.start.assert_called_once()
        cap.close()

    def test_channels_capped_at_two(self, fake_sd):
        fake_sd.query_devices.return_value = {
            "name": "Interface", "max_input_channels": 8, "default_samplerate": 48000.0,
        }
        cap = AudioCapture()
        cap.start()
        assert fake_sd.InputStream.call_args.kwargs["channels"] == 2
        cap.close()

    def test_stop_returns_captured_samples(self, fake_sd):
        cap = AudioCapture("int16")
        cap.start()
        callback = _open_callback(fake_sd)
        callback(np.array([[16384], [-16384]], dtype=np.int16), 2, None, None)
        callback(np.array([[0]], dtype=np.int16), 1, None, None)

        audio = cap.stop()
        np.testing.assert_allclose(audio.samples, [0.5, -0.5, 0.0])
        assert audio.sample_rate == 16000
        assert audio.channels == 1
        assert not cap.recording

    def test_stop_releases_device(self, fake_sd):
        cap = AudioCapture()
        cap.start()
        _open_callback(fake_sd)(np.zeros((4, 1), dtype=np.float32), 4, None, None)
        cap.stop()
        stream = fake_sd.InputStream.return_value
        stream.stop.assert_called_once()
        stream.close.assert_called_once()

    def test_stop_without_samples_raises_empty(self, fake_sd):
        cap = AudioCapture()
        cap.start()
        with pytest.raises(EmptyRecordingError, match="No audio data recorded"):
            cap.stop()
        fake_sd.InputStream.return_value.close.assert_called_once()

    def test_stop_without_start_raises_empty(self, fake_sd):
        with pytest.raises(EmptyRecordingError):
            AudioCapture().stop()

    def test_callback_after_stop_is_ignored(self, fake_sd):
        cap = AudioCapture()
        cap.start()
        callback = _open_callback(fake_sd)
        callback(np.ones((2, 1), dtype=np.float32), 2, None, None)
        audio = cap.stop()
        callback(np.ones((5, 1), dtype=np.float32), 5, None, None)
        assert len(audio.samples) == 2

    def test_double_start_raises(self, fake_sd):
        cap = AudioCapture()
        cap.start()
        with pytest.raises(DeviceError, match="already"):
            cap.start()
        cap.close()

    def test_no_input_device_raises(self, fake_sd):
        fake_sd.query_devices.side_effect = ValueError("No input device matching")
        with pytest.raises(DeviceError, match="No input device"):
            AudioCapture().start()

    def test_device_without_input_channels_raises(self, fake_sd):
        fake_sd.query_devices.return_value = {
            "name": "Speakers", "max_input_channels": 0, "default_samplerate": 44100.0,
        }
        with pytest.raises(DeviceError):
            AudioCapture().start()

    def test_stream_open_failure_raises_and_resets(self, fake_sd):
        fake_sd.InputStream.side_effect = fake_sd.PortAudioError("busy")
        cap = AudioCapture()
        with pytest.raises(DeviceError, match="busy"):
            cap.start()
        assert not cap.recording

    def test_unsupported_dtype_raises(self, fake_sd):
        with pytest.raises(DeviceError):
            AudioCapture("float64").start()
        fake_sd.InputStream.assert_not_called()

    def test_context_manager_closes(self, fake_sd):
        with AudioCapture() as cap:
            cap.start()
        assert not cap.recording
        fake_sd.InputStream.return_value.close.assert_called_once()
