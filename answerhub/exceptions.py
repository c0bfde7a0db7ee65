class AnswerHubError(Exception):
    """Base error. ``title`` heads the notification shown for it."""
    title = "Error"


class AuthError(AnswerHubError):
    title = "Authentication Failed"


class InvalidCredentials(AuthError):
    title = "Login Failed"


class EmailUnconfirmed(AuthError):
    title = "Email Not Verified"


class UsernameTaken(AuthError):
    title = "Registration Failed"


class NotAuthenticated(AuthError):
    title = "Authentication Required"


class ValidationError(AnswerHubError):
    pass


class PermissionDenied(AnswerHubError):
    title = "Permission Denied"


class RemoteError(AnswerHubError):
    """A backend call failed. The message is the backend's own."""


class NotFoundError(AnswerHubError):
    title = "Not Found"
