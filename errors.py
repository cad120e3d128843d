class SlackCliError(Exception):
    """Base class for errors surfaced to the command line"""

    prefix = "Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.prefix}: {self.message}"


class ApiError(SlackCliError):
    prefix = "Slack API error"


class AuthError(SlackCliError):
    prefix = "Authentication error"


class ConfigError(SlackCliError):
    prefix = "Configuration error"


class ChannelNotFoundError(SlackCliError):
    prefix = "Channel not found"


class UserNotFoundError(SlackCliError):
    prefix = "User not found"


class TransportError(SlackCliError):
    """HTTP failure or timeout talking to Slack"""

    prefix = "Transport error"
