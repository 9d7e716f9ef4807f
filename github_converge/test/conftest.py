import copy
import time
from collections.abc import (
    Callable,
    Iterable,
)
from typing import Any

import pytest

from github_converge.test.fixtures import Fixtures
from github_converge.utils.exceptions import GithubApiError
from github_converge.utils.github_api import GithubHook
from github_converge.webhooks.models import (
    CreatedWebhook,
    Job,
    ProviderStateName,
    ScmProvider,
    Webhook,
    WebhookTag,
)
from github_converge.webhooks.store import error_text

WEBHOOK_URL = "https://webhook.atomist.com/atomist/github/teams/T123/{id}"


class FakeWebhookStore:
    """In-memory graph store holding one provider."""

    def __init__(self, provider: dict[str, Any]):
        self.provider = copy.deepcopy(provider)
        self.provider.setdefault("webhooks", [])
        self.jobs: list[dict[str, Any]] = []
        self.writes: list[tuple] = []
        self._next_id = 0

    def _webhooks(self) -> list[dict[str, Any]]:
        return self.provider["webhooks"]

    def add_webhook(self, tags: dict[str, str], url: str | None = None) -> str:
        self._next_id += 1
        webhook_id = f"wh-{self._next_id}"
        self._webhooks().append({
            "id": webhook_id,
            "url": url or WEBHOOK_URL.format(id=webhook_id),
            "tags": [{"name": k, "value": v} for k, v in tags.items()],
        })
        return webhook_id

    def webhook(self, webhook_id: str) -> Webhook:
        return next(
            Webhook(**w) for w in self._webhooks() if w["id"] == webhook_id
        )

    @property
    def webhooks(self) -> list[Webhook]:
        return [Webhook(**w) for w in self._webhooks()]

    @property
    def state(self) -> dict[str, Any] | None:
        return self.provider.get("state")

    def fetch_provider(self, id: str) -> ScmProvider | None:
        if id != self.provider["id"]:
            return None
        return ScmProvider(**copy.deepcopy(self.provider))

    def set_provider_state(
        self,
        provider: ScmProvider,
        state: ProviderStateName,
        errors: Iterable[str] = (),
    ) -> bool:
        error = error_text(errors)
        current = self.provider.get("state") or {}
        if current.get("name") == state and current.get("error") == error:
            return False
        self.provider["state"] = {"name": state.value, "error": error}
        self.writes.append(("set_provider_state", state.value, error))
        return True

    def create_webhook(
        self, provider: ScmProvider, name: str, secret: str, tags: list[WebhookTag]
    ) -> CreatedWebhook:
        webhook_id = self.add_webhook({t.name: t.value for t in tags})
        self.writes.append(("create_webhook", name))
        return CreatedWebhook(webhook=self.webhook(webhook_id), secret=secret)

    def add_webhook_tag(self, webhook_id: str, name: str, value: str) -> None:
        for w in self._webhooks():
            if w["id"] == webhook_id:
                w["tags"].append({"name": name, "value": value})
        self.writes.append(("add_webhook_tag", webhook_id, name, value))

    def delete_webhook(self, webhook_id: str) -> None:
        self.provider["webhooks"] = [
            w for w in self._webhooks() if w["id"] != webhook_id
        ]
        self.writes.append(("delete_webhook", webhook_id))

    def set_owner_login(self, provider_id: str, owner: str, login: str) -> None:
        self.writes.append(("set_owner_login", provider_id, owner, login))

    def set_repo_login(
        self, provider_id: str, owner: str, repo: str, login: str
    ) -> None:
        self.writes.append(("set_repo_login", provider_id, owner, repo, login))

    def jobs_by_name(self, name: str) -> list[Job]:
        return [Job(**j) for j in self.jobs if j["name"] == name]

    def create_job(
        self, name: str, description: str, command: str, parameters: dict[str, Any]
    ) -> None:
        self.jobs.append({"name": name, "state": "running"})
        self.writes.append(("create_job", name, command, parameters))


class FakeGithub:
    """In-memory GitHub hooks, keyed by org name or owner/repo slug."""

    def __init__(self) -> None:
        self.hooks: dict[str, dict[int, GithubHook]] = {}
        self.errors: dict[str, Exception] = {}
        self.mutations: list[tuple] = []
        self._next_id = 100

    def add_hook(self, target: str, url: str, active: bool = True) -> int:
        self._next_id += 1
        self.hooks.setdefault(target, {})[self._next_id] = GithubHook(
            id=self._next_id, active=active, url=url
        )
        return self._next_id

    def _check(self, target: str) -> None:
        if target in self.errors:
            raise self.errors[target]

    def _get(self, target: str, hook_id: int) -> GithubHook:
        self._check(target)
        hook = self.hooks.get(target, {}).get(hook_id)
        if hook is None:
            raise GithubApiError("404 Not Found", 404)
        return hook

    def _create(self, target: str, url: str) -> int:
        self._check(target)
        hook_id = self.add_hook(target, url)
        self.mutations.append(("create", target, hook_id))
        return hook_id

    def _delete(self, target: str, hook_id: int) -> None:
        self._check(target)
        self.mutations.append(("delete", target, hook_id))
        if self.hooks.get(target, {}).pop(hook_id, None) is None:
            raise GithubApiError("404 Not Found", 404)

    def get_org_hook(self, org: str, hook_id: int) -> GithubHook:
        return self._get(org, hook_id)

    def create_org_hook(self, org: str, url: str, secret: str) -> int:
        return self._create(org, url)

    def delete_org_hook(self, org: str, hook_id: int) -> None:
        self._delete(org, hook_id)

    def get_repo_hook(self, owner: str, repo: str, hook_id: int) -> GithubHook:
        return self._get(f"{owner}/{repo}", hook_id)

    def create_repo_hook(self, owner: str, repo: str, url: str, secret: str) -> int:
        return self._create(f"{owner}/{repo}", url)

    def delete_repo_hook(self, owner: str, repo: str, hook_id: int) -> None:
        self._delete(f"{owner}/{repo}", hook_id)

    def active_hooks(self) -> list[str]:
        return sorted(
            target
            for target, hooks in self.hooks.items()
            for hook in hooks.values()
            if hook.active
        )


@pytest.fixture
def patch_sleep(mocker):
    yield mocker.patch.object(time, "sleep")


@pytest.fixture
def fx() -> Fixtures:
    return Fixtures("webhooks")


@pytest.fixture
def provider_data(fx: Fixtures) -> dict[str, Any]:
    return fx.get_json("provider.json")


@pytest.fixture
def store_builder(
    provider_data: dict[str, Any],
) -> Callable[..., FakeWebhookStore]:
    def builder(
        orgs: list[str] | None = None,
        repos: list[tuple[str, str]] | None = None,
        **overrides: Any,
    ) -> FakeWebhookStore:
        data = copy.deepcopy(provider_data)
        data["targetConfiguration"] = {
            "orgSpecs": orgs or [],
            "repoSpecs": [{"ownerSpec": o, "nameSpec": r} for o, r in repos or []],
        }
        data.update(overrides)
        return FakeWebhookStore(data)

    return builder


@pytest.fixture
def github() -> FakeGithub:
    return FakeGithub()
