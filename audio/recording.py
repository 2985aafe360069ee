"""Microphone capture for voice-transcribe.

Blocking reads of fixed-size int16 frames via sounddevice, with a
hardware-first / default-device-fallback open strategy.
"""

import logging

from config import (
    CHANNELS,
    FALLBACK_LATENCY,
    FRAMES_PER_READ,
    INT16_FULL_SCALE,
    PRIMARY_CAPTURE_DEVICE,
    PRIMARY_LATENCY,
    SAMPLE_RATE,
)
from utils.logging import get_session_id

logger = logging.getLogger("voice_transcribe")


class DeviceError(Exception):
    """No usable capture device, or the device failed beyond recovery."""


def peak_level(frame: bytes) -> float:
    """Peak meter: max |sample| of an int16 frame, normalized to [0, 1]."""
    import numpy as np

    usable = len(frame) - len(frame) % 2
    if usable == 0:
        return 0.0
    samples = np.frombuffer(frame[:usable], dtype="<i2")
    # int32 so that abs(-32768) does not wrap around
    peak = int(np.abs(samples.astype(np.int32)).max())
    return min(peak / INT16_FULL_SCALE, 1.0)


class CaptureDevice:
    """Capture device adapter.

    Usage:
        device = CaptureDevice()
        device.open()
        try:
            frame = device.read_frame()
        finally:
            device.close()
    """

    def __init__(
        self,
        primary_device: str | int | None = PRIMARY_CAPTURE_DEVICE,
        sample_rate: int = SAMPLE_RATE,
        channels: int = CHANNELS,
        frames_per_read: int = FRAMES_PER_READ,
    ) -> None:
        self.primary_device = primary_device
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames_per_read = frames_per_read

        self._sd = None
        self._stream = None
        self.device_name: str | None = None
        self.overflows = 0

    def _candidates(self) -> list[tuple[str | int | None, str]]:
        """(device, latency) pairs in order of preference."""
        candidates: list[tuple[str | int | None, str]] = []
        if self.primary_device is not None:
            candidates.append((self.primary_device, PRIMARY_LATENCY))
        candidates.append((None, FALLBACK_LATENCY))
        return candidates

    def open(self) -> None:
        """Opens the first device that accepts 16 kHz mono int16.

        Raises:
            DeviceError: Neither the primary nor the default device works
        """
        import sounddevice as sd

        self._sd = sd
        last_error: Exception | None = None

        for device, latency in self._candidates():
            label = "default" if device is None else str(device)
            stream = None
            try:
                stream = sd.RawInputStream(
                    device=device,
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="int16",
                    blocksize=self.frames_per_read,
                    latency=latency,
                )
                stream.start()
            except (sd.PortAudioError, ValueError) as e:
                logger.warning(f"[{get_session_id()}] Capture device '{label}' failed: {e}")
                if stream is not None:
                    stream.close(ignore_errors=True)
                last_error = e
                continue

            self._stream = stream
            self.device_name = label
            logger.info(f"[{get_session_id()}] Capture device opened: {label}")
            return

        raise DeviceError(f"Cannot open audio device: {last_error}")

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def read_frame(self) -> bytes:
        """Reads one frame (blocking).

        An overflow keeps the data, a device error gets one restart attempt
        and yields an empty frame.

        Raises:
            DeviceError: Device not open, or recovery failed
        """
        if self._stream is None:
            raise DeviceError("Capture device is not open")

        try:
            data, overflowed = self._stream.read(self.frames_per_read)
        except self._sd.PortAudioError as e:
            self._recover(e)
            return b""

        if overflowed:
            self.overflows += 1
            logger.debug("Input overflow, samples were lost")
        return bytes(data)

    def _recover(self, cause: Exception) -> None:
        logger.warning(f"[{get_session_id()}] Capture error, restarting stream: {cause}")
        try:
            self._stream.stop(ignore_errors=True)
            self._stream.start()
        except self._sd.PortAudioError as e:
            raise DeviceError(f"Capture recovery failed: {e}") from e

    def close(self) -> None:
        """Stops and closes the stream. Safe to call repeatedly."""
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop(ignore_errors=True)
            stream.close(ignore_errors=True)
        except self._sd.PortAudioError as e:
            logger.warning(f"Closing capture device failed: {e}")
        if self.overflows:
            logger.info(f"[{get_session_id()}] Input overflows: {self.overflows}")
