"""Central configuration for voice-transcribe.

Shared constants for audio capture, status IPC and transcription.
Keeps modules from duplicating magic numbers.
"""

from pathlib import Path

# =============================================================================
# Audio
# =============================================================================

# Fixed capture format: Whisper works best with 16 kHz mono, 16-bit is plenty for speech
SAMPLE_RATE = 16000
CHANNELS = 1
SAMPLE_WIDTH = 2  # bytes per sample (int16)
FRAMES_PER_READ = 1024  # samples per device read (~64 ms)

# Full scale of int16, used to normalize peak levels to [0, 1]
INT16_FULL_SCALE = 32768

# Buffer starts with room for 10s of audio, then doubles
INITIAL_BUFFER_BYTES = SAMPLE_RATE * SAMPLE_WIDTH * CHANNELS * 10

# Hard ceiling for a single recording
MAX_RECORDING_SECONDS = 300

# Capture devices in order of preference: (device, latency)
# None = system default (PulseAudio/PipeWire on most desktops)
PRIMARY_CAPTURE_DEVICE = "hw:0,0"
PRIMARY_LATENCY = "low"
FALLBACK_LATENCY = "high"

# =============================================================================
# Status pacing (seconds)
# =============================================================================

STATUS_INTERVAL = 0.05  # 20 updates/s for the visualizer
STATUS_DRAIN = 0.1  # Status thread lingers after stop
READY_SETTLE = 0.2
PROCESSING_DWELL = 0.2
UPLOADING_DWELL = 0.2
COPIED_DWELL = 1.0
FAILED_DWELL = 2.0  # also used for NO_AUDIO and ERROR

# =============================================================================
# Transcription
# =============================================================================

DEFAULT_API_MODEL = "whisper-1"
API_KEY_NAME = "OPENAI_API_KEY"

# =============================================================================
# IPC files
# =============================================================================

# /tmp for fast access and automatic cleanup on reboot
PID_FILE = Path("/tmp/voice_transcribe.pid")  # Active recorder PID -> SIGUSR1 stop
STATUS_FILE = Path("/tmp/voice_transcribe.status")  # STATUS|level|MM:SS for visualizers

# =============================================================================
# Local paths
# =============================================================================

USER_CONFIG_DIR = Path.home() / ".voice_transcribe"
USER_ENV_FILE = USER_CONFIG_DIR / ".env"

LOG_DIR = USER_CONFIG_DIR / "logs"
LOG_FILE = LOG_DIR / "voice_transcribe.log"


__all__ = [
    # Audio
    "SAMPLE_RATE",
    "CHANNELS",
    "SAMPLE_WIDTH",
    "FRAMES_PER_READ",
    "INT16_FULL_SCALE",
    "INITIAL_BUFFER_BYTES",
    "MAX_RECORDING_SECONDS",
    "PRIMARY_CAPTURE_DEVICE",
    "PRIMARY_LATENCY",
    "FALLBACK_LATENCY",
    # Pacing
    "STATUS_INTERVAL",
    "STATUS_DRAIN",
    "READY_SETTLE",
    "PROCESSING_DWELL",
    "UPLOADING_DWELL",
    "COPIED_DWELL",
    "FAILED_DWELL",
    # Transcription
    "DEFAULT_API_MODEL",
    "API_KEY_NAME",
    # IPC
    "PID_FILE",
    "STATUS_FILE",
    # Paths
    "USER_CONFIG_DIR",
    "USER_ENV_FILE",
    "LOG_DIR",
    "LOG_FILE",
]
