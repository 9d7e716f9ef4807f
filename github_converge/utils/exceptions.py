from typing import Any


class ProviderError(Exception):
    """A call against the SCM provider failed."""

    def __init__(self, msg: Any, status: int | None = None) -> None:
        super().__init__(str(msg))
        self.status = status


class AuthorizationError(ProviderError):
    """The SCM provider rejected the credential (HTTP 401)."""


class GithubApiError(ProviderError):
    """Any other non-success response from the GitHub API."""


class RateLimitedError(GithubApiError):
    pass


class AbuseDetectedError(GithubApiError):
    pass


class ConfigError(Exception):
    pass


class ParameterError(Exception):
    pass
