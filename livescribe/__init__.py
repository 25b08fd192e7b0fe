"""livescribe: live transcription sessions with speaker labels, correction and translation."""

__version__ = "0.1.0"
