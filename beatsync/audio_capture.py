"""Microphone capture using sounddevice, feeding an AudioSource ring buffer."""

import numpy as np
import sounddevice as sd
from typing import Optional
from dataclasses import dataclass

from .audio_source import AudioSource
from .logging_utils import log_event


@dataclass
class CaptureConfig:
    """Configuration for audio capture."""
    block_size: int = 512  # ~23ms at 22050Hz
    channels: int = 1
    device: Optional[int] = None  # None = system default input
    dtype: str = 'float32'


class AudioCapture:
    """
    Real-time input stream writing into an AudioSource.

    The sounddevice callback runs on the PortAudio thread and only downmixes
    and writes; onset detection happens when the session polls the source.
    """

    def __init__(self, source: AudioSource, config: Optional[CaptureConfig] = None):
        self.source = source
        self.config = config or CaptureConfig()
        self.stream: Optional[sd.InputStream] = None
        self.is_running = False
        self.overflow_count = 0

    def _audio_callback(self, indata: np.ndarray, frames: int,
                        time_info, status: sd.CallbackFlags) -> None:
        """Internal callback called by sounddevice."""
        if status.input_overflow:
            self.overflow_count += 1
        mono = indata.mean(axis=1) if indata.ndim > 1 else indata
        self.source.write(mono)

    def start(self, time_origin: float) -> None:
        """Open the input stream; its first sample is stamped ``time_origin``."""
        if self.is_running:
            return

        stream_kwargs = {
            'samplerate': self.source.config.sample_rate,
            'blocksize': self.config.block_size,
            'channels': self.config.channels,
            'dtype': self.config.dtype,
            'callback': self._audio_callback,
        }
        if self.config.device is not None:
            stream_kwargs['device'] = self.config.device

        self.source.start(time_origin)
        self.stream = sd.InputStream(**stream_kwargs)
        self.stream.start()
        self.is_running = True
        device_name = f"device {self.config.device}" if self.config.device is not None else "default device"
        log_event("info", "Capture", f"Capture started on {device_name}",
                  source=self.source.name, rate=self.source.config.sample_rate,
                  block=self.config.block_size)

    def stop(self) -> None:
        """Stop audio capture."""
        if not self.is_running:
            return

        if self.stream:
            self.stream.stop()
            self.stream.close()
            self.stream = None
        self.is_running = False
        log_event("info", "Capture", "Capture stopped",
                  source=self.source.name, overflows=self.overflow_count)

    @staticmethod
    def list_devices() -> list[dict]:
        """List available audio input devices."""
        default_input = sd.default.device[0]
        return [
            {
                "id": i,
                "name": dev["name"],
                "channels": dev["max_input_channels"],
                "sample_rate": dev["default_samplerate"],
                "default": i == default_input,
            }
            for i, dev in enumerate(sd.query_devices())
            if dev["max_input_channels"] > 0
        ]
