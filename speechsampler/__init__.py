"""
Speechsampler - representative speech sampling for media categorization.

Pulls a bounded, speech-bearing audio sample out of arbitrary video/audio
files: energy-based voice activity detection, distributed clip sampling for
long media, and an FFmpeg → built-in decoder fallback cascade with retry,
timeout and temporary-file cleanup guarantees.
"""

__version__ = "0.1.0"
