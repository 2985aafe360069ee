"""Audio module for voice-transcribe.

Microphone capture and the in-memory PCM buffer.

Usage:
    from audio import AudioBuffer, CaptureDevice, peak_level

    buffer = AudioBuffer()
    device = CaptureDevice()
    device.open()
    frame = device.read_frame()
    buffer.append(frame)
    level = peak_level(frame)
    device.close()
"""

from .buffer import AudioBuffer
from .recording import CaptureDevice, DeviceError, peak_level

__all__ = [
    "AudioBuffer",
    "CaptureDevice",
    "DeviceError",
    "peak_level",
]
