# agent/errors.py
"""Exceptions raised by the agent layer."""


class SignalProcessingError(ValueError):
    """The model's reply to a signal extraction request could not be parsed into a decision."""

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message)
        self.raw_response = raw_response
