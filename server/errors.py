# server/errors.py
"""
Error kinds for the relay. None of them is fatal: the orchestrator recovers
from each one locally and always answers with some text.
"""


class RelayError(Exception):
    """Base class for relay errors."""


class ModelCallFailed(RelayError):
    """The language model call failed (network, auth, quota, bad response)."""


class FragmentParseFailed(RelayError):
    """A detected JSON fragment in a reply could not be decoded."""


class InvalidInput(RelayError):
    """Missing utterance or child id. Normalized, never rejected."""


class SpeechServiceError(RelayError):
    """Speech synthesis or transcription failed."""
