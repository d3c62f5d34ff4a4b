# errors.py
from __future__ import annotations


class PlannerError(Exception):
    """Base error. `user_message` is safe to show in the browser; str(e) is for logs."""

    user_message = "Something went wrong. Please try again."

    def __init__(self, detail: str | None = None, *, user_message: str | None = None):
        super().__init__(detail or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class ValidationError(PlannerError):
    """A form field is missing or invalid. Raised before any network call."""

    def __init__(self, message: str):
        super().__init__(message, user_message=message)


class DirectoryUnavailable(PlannerError):
    user_message = "Could not load cryptocurrencies."


class UnknownCoin(PlannerError):
    user_message = "Unknown cryptocurrency. Please pick a coin from the list."


class ServiceUnavailable(PlannerError):
    user_message = "The service is unavailable right now. Please try again."


class EmptyCompletion(PlannerError):
    user_message = "Received an empty response from the travel planning service."


class SubmissionInProgress(PlannerError):
    user_message = "A plan is already being generated. Please wait for it to finish."
