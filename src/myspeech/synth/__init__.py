"""Procedural fallback synthesis."""
from .fallback import fallback_duration, fallback_num_samples, synthesize_fallback

__all__ = ["synthesize_fallback", "fallback_duration", "fallback_num_samples"]
