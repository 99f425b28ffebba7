# classes/errors.py


class AppError(Exception):
    """
    Base class for errors that are reported back to the user as a notification.
    `title` is the short headline shown next to the message.
    """
    title = "Something went wrong"


class ValidationError(AppError):
    title = "Missing information"


class AlreadySubmittedError(ValidationError):
    title = "Already completed"


class StoreError(AppError):
    title = "Storage unavailable"


class GenerationError(AppError):
    title = "Generation failed"


class AuthError(AppError):
    title = "Sign in required"


class ConflictError(StoreError):
    """A write collided with an existing row (unique constraint)."""
    title = "Already exists"
