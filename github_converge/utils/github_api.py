import logging
import os
import time
from collections.abc import (
    Callable,
    Iterator,
)
from typing import (
    Any,
    TypeVar,
)

from github import (
    Auth,
    Github,
    GithubException,
    RateLimitExceededException,
)
from github.PaginatedList import PaginatedList
from pydantic import BaseModel

from github_converge.utils.exceptions import (
    AbuseDetectedError,
    AuthorizationError,
    GithubApiError,
    RateLimitedError,
)
from github_converge.utils.metrics import github_request

GH_BASE_URL = os.environ.get("GITHUB_API", "https://api.github.com")

PAGE_SIZE = 100
DEFAULT_RETRY_AFTER = 60

HOOK_NAME = "web"
HOOK_EVENTS = ["*"]

T = TypeVar("T")


class GithubHook(BaseModel):
    id: int
    active: bool
    url: str | None = None


class GithubOwner(BaseModel):
    id: int
    login: str
    url: str | None = None


class GithubRepo(BaseModel):
    id: int
    name: str
    full_name: str
    url: str | None = None
    default_branch: str | None = None
    archived: bool = False


def _error_message(e: GithubException) -> str:
    if isinstance(e.data, dict) and e.data.get("message"):
        return f"{e.status} {e.data['message']}"
    return str(e)


def _is_abuse_detection(e: GithubException) -> bool:
    if not isinstance(e.data, dict):
        return False
    text = f"{e.data.get('message', '')} {e.data.get('documentation_url', '')}"
    return "abuse" in text.lower()


def _is_rate_limit(e: GithubException) -> bool:
    return isinstance(e, RateLimitExceededException) or e.status == 429


def retry_after(e: GithubException) -> float:
    """Seconds to wait before the request may be sent again."""
    headers = {k.lower(): v for k, v in (e.headers or {}).items()}
    if headers.get("retry-after"):
        return float(headers["retry-after"])
    if headers.get("x-ratelimit-reset"):
        return max(float(headers["x-ratelimit-reset"]) - time.time(), 0) + 1
    return DEFAULT_RETRY_AFTER


def _hook(hook: Any) -> GithubHook:
    return GithubHook(id=hook.id, active=hook.active, url=hook.config.get("url"))


def _owner(owner: Any) -> GithubOwner:
    return GithubOwner(id=owner.id, login=owner.login, url=owner.html_url)


def _repo(repo: Any) -> GithubRepo:
    return GithubRepo(
        id=repo.id,
        name=repo.name,
        full_name=repo.full_name,
        url=repo.html_url,
        default_branch=repo.default_branch,
        archived=repo.archived,
    )


class GithubWebhookApi:
    """
    Narrow GitHub client for webhook convergence and repository discovery.

    Only plain models leave this class, PyGithub objects stay inside.
    Every call is retried exactly once after a rate limit response, honouring
    the delay the server asks for. Abuse detection responses are not retried.

    :param token: auth token for GitHub
    :param api_url: the GitHub API base URL, e.g. for GitHub Enterprise
    """

    def __init__(
        self,
        token: str,
        api_url: str | None = None,
        timeout: int = 30,
        github: Github | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._sleep = sleep
        self._gh = github or Github(
            auth=Auth.Token(token),
            base_url=(api_url or GH_BASE_URL).rstrip("/"),
            timeout=timeout,
            per_page=PAGE_SIZE,
            # rate limits are handled by _call
            retry=None,
        )

    def _call(self, verb: str, func: Callable[[], T]) -> T:
        rate_limited = False
        while True:
            github_request.labels(verb=verb).inc()
            try:
                return func()
            except GithubException as e:
                message = _error_message(e)
                if e.status == 401:
                    raise AuthorizationError(message, e.status) from e
                if _is_abuse_detection(e):
                    logging.warning(["abuse_detection", verb, message])
                    raise AbuseDetectedError(message, e.status) from e
                if not _is_rate_limit(e):
                    raise GithubApiError(message, e.status) from e
                if rate_limited:
                    raise RateLimitedError(message, e.status) from e
                rate_limited = True
                delay = retry_after(e)
                logging.warning(
                    f"GitHub rate limit hit on {verb}, retrying in {delay:.0f}s"
                )
                self._sleep(delay)

    def _pages(self, verb: str, paginated: PaginatedList) -> Iterator[list[Any]]:
        page = 0
        while True:
            items = self._call(verb, lambda: paginated.get_page(page))
            if items:
                yield items
            if len(items) < PAGE_SIZE:
                return
            page += 1

    @staticmethod
    def _hook_config(url: str, secret: str) -> dict[str, str]:
        return {"url": url, "secret": secret, "content_type": "json"}

    def get_org_hook(self, org: str, hook_id: int) -> GithubHook:
        return self._call(
            "get_org_hook",
            lambda: _hook(self._gh.get_organization(org).get_hook(hook_id)),
        )

    def create_org_hook(self, org: str, url: str, secret: str) -> int:
        hook = self._call(
            "create_org_hook",
            lambda: self._gh.get_organization(org).create_hook(
                name=HOOK_NAME,
                config=self._hook_config(url, secret),
                events=HOOK_EVENTS,
                active=True,
            ),
        )
        return hook.id

    def delete_org_hook(self, org: str, hook_id: int) -> None:
        self._call(
            "delete_org_hook",
            lambda: self._gh.get_organization(org).get_hook(hook_id).delete(),
        )

    def get_repo_hook(self, owner: str, repo: str, hook_id: int) -> GithubHook:
        return self._call(
            "get_repo_hook",
            lambda: _hook(self._gh.get_repo(f"{owner}/{repo}").get_hook(hook_id)),
        )

    def create_repo_hook(self, owner: str, repo: str, url: str, secret: str) -> int:
        hook = self._call(
            "create_repo_hook",
            lambda: self._gh.get_repo(f"{owner}/{repo}").create_hook(
                name=HOOK_NAME,
                config=self._hook_config(url, secret),
                events=HOOK_EVENTS,
                active=True,
            ),
        )
        return hook.id

    def delete_repo_hook(self, owner: str, repo: str, hook_id: int) -> None:
        self._call(
            "delete_repo_hook",
            lambda: self._gh.get_repo(f"{owner}/{repo}").get_hook(hook_id).delete(),
        )

    def list_org_repos(self, org: str) -> Iterator[list[GithubRepo]]:
        """Yield the repositories of an organization page by page."""
        gh_org = self._call("get_org", lambda: self._gh.get_organization(org))
        for page in self._pages("list_org_repos", gh_org.get_repos(type="all")):
            yield [_repo(r) for r in page]

    def list_user_repos(self, username: str) -> Iterator[list[GithubRepo]]:
        """Yield the repositories of a user page by page."""
        gh_user = self._call("get_user", lambda: self._gh.get_user(username))
        for page in self._pages("list_user_repos", gh_user.get_repos()):
            yield [_repo(r) for r in page]

    def list_authenticated_orgs(self) -> list[GithubOwner]:
        orgs = []
        for page in self._pages("list_orgs", self._gh.get_user().get_orgs()):
            orgs.extend(_owner(o) for o in page)
        return orgs

    def get_authenticated_user(self) -> GithubOwner:
        return self._call("get_user", lambda: _owner(self._gh.get_user()))
