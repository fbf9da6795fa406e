"""
speechsampler.analyze - Energy-based voice activity detection.

Chunked RMS loudness → hysteresis speech segmenter → gap merge and
duration budgeting.
"""

from __future__ import annotations
