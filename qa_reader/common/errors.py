"""
Error types shared by the services and the HTTP layer.

Each error carries the HTTP status the API reports it with, so services
raise domain errors and the app maps them to ``{"error": message}``.
"""


class ReaderError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(ReaderError):
    """Missing credential, rubric or API configuration."""
    status_code = 400


class SourceMissingError(ReaderError):
    """A source table the operation reads from does not exist."""
    status_code = 400


class InvalidRequestError(ReaderError):
    status_code = 400


class StorageError(ReaderError):
    status_code = 502
