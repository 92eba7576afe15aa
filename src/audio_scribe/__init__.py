"""Audio Scribe: stream microphone audio to Gemini Live and insert the transcript."""

__version__ = "0.1.0"
