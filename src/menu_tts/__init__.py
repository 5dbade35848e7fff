"""Menu TTS cache: tiered audio caching and speech synthesis coordination."""

__version__ = "1.0.0"
