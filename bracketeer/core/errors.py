from typing import Optional


class BracketEngineError(Exception):
    """Base exception for bracketeer errors"""
    pass


class PersistenceError(BracketEngineError):
    """
    Raised when a call against the match store fails for good: either the
    error was not retryable, or every retry attempt failed. The underlying
    exception is kept on ``last_error``.
    """

    def __init__(self, message: str, last_error: Optional[BaseException] = None, retryable: bool = False):
        super().__init__(message)
        self.last_error = last_error
        self.retryable = retryable
