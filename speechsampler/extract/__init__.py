"""
speechsampler.extract - Audio extraction from media files.

Clip planning for long media, the FFmpeg → built-in backend cascade,
error classification, retry with backoff, and temporary artifact lifecycle.
"""

from __future__ import annotations
