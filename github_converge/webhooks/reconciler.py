import logging
import secrets
from collections.abc import (
    Callable,
    Iterable,
)
from dataclasses import (
    dataclass,
    field,
)
from functools import (
    partial,
    reduce,
)

from github_converge.utils import metrics
from github_converge.utils.exceptions import AuthorizationError
from github_converge.utils.github_api import (
    GithubHook,
    GithubWebhookApi,
)
from github_converge.webhooks.discovery import (
    DISCOVERY_JOB_NAME,
    enqueue_discovery_job,
)
from github_converge.webhooks.models import (
    HOOK_ID_TAG,
    ORG_TAG,
    REPO_TAG,
    IngestOrgParameters,
    ProviderStateName,
    ScmProvider,
    Webhook,
    WebhookTag,
)
from github_converge.webhooks.store import WebhookStore

GithubApiFactory = Callable[[str, str | None], GithubWebhookApi]


@dataclass(frozen=True)
class ConvergenceResult:
    """Outcome of converging the orgs and repos of one provider."""

    org_errors: tuple[str, ...] = field(default=())
    repo_errors: tuple[str, ...] = field(default=())
    auth_occurred: bool = False

    def merge(self, other: "ConvergenceResult") -> "ConvergenceResult":
        return ConvergenceResult(
            org_errors=self.org_errors + other.org_errors,
            repo_errors=self.repo_errors + other.repo_errors,
            auth_occurred=self.auth_occurred or other.auth_occurred,
        )

    @property
    def errors(self) -> list[str]:
        return list(self.org_errors + self.repo_errors)

    @property
    def state(self) -> ProviderStateName:
        if self.auth_occurred:
            return ProviderStateName.UNAUTHORIZED
        if self.errors:
            return ProviderStateName.MISCONFIGURED
        return ProviderStateName.CONVERGED

    @classmethod
    def org_failure(cls, org: str, error: Exception) -> "ConvergenceResult":
        return cls(
            org_errors=(_failure_message(f"GitHub org '{org}'", error),),
            auth_occurred=isinstance(error, AuthorizationError),
        )

    @classmethod
    def repo_failure(
        cls, owner: str, repo: str, error: Exception
    ) -> "ConvergenceResult":
        return cls(
            repo_errors=(_failure_message(f"GitHub repo '{owner}/{repo}'", error),),
            auth_occurred=isinstance(error, AuthorizationError),
        )


def _failure_message(label: str, error: Exception) -> str:
    if isinstance(error, AuthorizationError):
        return f"Authorization error occurred converging {label}"
    return f"Failed to converge {label}: {error}"


class WebhookReconciler:
    """
    Converges the webhooks of a single SCM provider with its target
    configuration.

    One org (or repo) failing does not stop the others; failures end up in the
    provider state. The provider passed to `converge_provider` is only used
    for this cycle, webhook lists are re-fetched wherever earlier steps may
    have changed them.
    """

    def __init__(
        self,
        store: WebhookStore,
        dry_run: bool = False,
        github_factory: GithubApiFactory = GithubWebhookApi,
        secret_factory: Callable[[], str] = lambda: secrets.token_hex(20),
    ):
        self.store = store
        self.dry_run = dry_run
        self.github_factory = github_factory
        self.secret_factory = secret_factory

    def converge_provider(self, provider: ScmProvider) -> ConvergenceResult | None:
        """Run one convergence cycle. Never raises for convergence failures."""
        token = provider.token
        target = provider.target_configuration
        if not token or not target:
            logging.debug(f"Skipping provider {provider.id}: no credential or target")
            return None

        gh = self.github_factory(token, provider.api_url)

        result = reduce(
            ConvergenceResult.merge,
            (
                self._attempt(
                    f"GitHub org '{org}'",
                    partial(self.converge_org, org, provider, gh),
                    partial(ConvergenceResult.org_failure, org),
                )
                for org in target.orgs()
            ),
            ConvergenceResult(),
        )
        result = reduce(
            ConvergenceResult.merge,
            (
                self._attempt(
                    f"GitHub repo '{owner}/{repo}'",
                    partial(self.converge_repo, owner, repo, provider, gh),
                    partial(ConvergenceResult.repo_failure, owner, repo),
                )
                for owner, repo in target.repos()
            ),
            result,
        )

        # obsolete webhooks are deleted from the store even when the orphan
        # lookup fails
        to_delete: list[str] = []
        try:
            to_delete += self._obsolete_webhooks(provider, gh)
        except Exception:
            logging.exception(f"Failed to collect obsolete webhooks of {provider.id}")
        try:
            to_delete += self._orphaned_webhooks(provider)
        except Exception:
            logging.exception(f"Failed to collect orphaned webhooks of {provider.id}")
        self._delete_webhooks(to_delete)

        state = result.state
        self._set_state(provider, state, result.errors)
        if state == ProviderStateName.CONVERGED:
            self._enqueue_discovery(provider)
        return result

    @staticmethod
    def _attempt(
        label: str,
        converge: Callable[[], None],
        failure: Callable[[Exception], ConvergenceResult],
    ) -> ConvergenceResult:
        logging.info(f"Converging {label}")
        try:
            converge()
        except AuthorizationError as e:
            logging.error(f"Authorization error converging {label}: {e}")
            return failure(e)
        except Exception as e:
            logging.exception(f"Failed to converge {label}")
            return failure(e)
        return ConvergenceResult()

    def converge_org(
        self, org: str, provider: ScmProvider, gh: GithubWebhookApi
    ) -> None:
        label = f"GitHub org '{org}'"
        webhook = provider.org_webhook(org)
        if webhook is None:
            logging.info(f"No webhook found for {label}. Creating new webhook")
        elif self._webhook_is_current(
            webhook,
            label,
            get_hook=lambda hook_id: gh.get_org_hook(org, hook_id),
            delete_hook=lambda hook_id: gh.delete_org_hook(org, hook_id),
        ):
            return

        logging.info(["create_org_webhook", provider.provider_id, org])
        if self.dry_run:
            return
        created = self.store.create_webhook(
            provider,
            name=f"GitHub org {org}",
            secret=self.secret_factory(),
            tags=[WebhookTag(name=ORG_TAG, value=org)],
        )
        hook_id = gh.create_org_hook(org, self._url(created.webhook), created.secret)
        self.store.add_webhook_tag(created.webhook.id, HOOK_ID_TAG, str(hook_id))
        logging.debug(
            f"Created new webhook for {label} with hook_id '{hook_id}' "
            f"and url '{created.webhook.url}'"
        )

        login = self._login(provider)
        if login:
            self.store.set_owner_login(provider.provider_id, org, login)

    def converge_repo(
        self, owner: str, repo: str, provider: ScmProvider, gh: GithubWebhookApi
    ) -> None:
        slug = f"{owner}/{repo}"
        label = f"GitHub repo '{slug}'"
        # an org webhook already delivers the events of this repo
        org_has_hook = bool(
            provider.target_configuration
            and provider.target_configuration.has_org(owner)
        )
        webhook = provider.repo_webhook(owner, repo)
        if webhook is None:
            current = False
            if not org_has_hook:
                logging.info(f"No webhook found for {label}. Creating new webhook")
        else:
            current = self._webhook_is_current(
                webhook,
                label,
                get_hook=lambda hook_id: gh.get_repo_hook(owner, repo, hook_id),
                delete_hook=lambda hook_id: gh.delete_repo_hook(owner, repo, hook_id),
                force_delete=org_has_hook,
            )

        if org_has_hook:
            logging.debug(f"{label} is covered by the webhook of org '{owner}'")
            return
        if current:
            return

        logging.info(["create_repo_webhook", provider.provider_id, slug])
        if self.dry_run:
            return
        created = self.store.create_webhook(
            provider,
            name=f"GitHub repo {slug}",
            secret=self.secret_factory(),
            tags=[WebhookTag(name=REPO_TAG, value=slug)],
        )
        hook_id = gh.create_repo_hook(
            owner, repo, self._url(created.webhook), created.secret
        )
        self.store.add_webhook_tag(created.webhook.id, HOOK_ID_TAG, str(hook_id))
        logging.debug(
            f"Created new webhook for {label} with hook_id '{hook_id}' "
            f"and url '{created.webhook.url}'"
        )

        login = self._login(provider)
        if login:
            self.store.set_repo_login(provider.provider_id, owner, repo, login)

    def _webhook_is_current(
        self,
        webhook: Webhook,
        label: str,
        get_hook: Callable[[int], GithubHook],
        delete_hook: Callable[[int], None],
        force_delete: bool = False,
    ) -> bool:
        """
        Check a stored webhook against its GitHub hook. Anything that is not
        current is removed, from the store and, when the hook still exists,
        from GitHub.
        """
        if not webhook.tag(HOOK_ID_TAG):
            logging.info(
                f"Webhook found for {label} on SCM provider but no hook_id. "
                "Deleting and creating new webhook"
            )
            self._delete_webhook(webhook.id)
            return False

        try:
            hook_id = webhook.hook_id
            hook = get_hook(hook_id)
        except AuthorizationError:
            raise
        except Exception as e:
            logging.info(
                f"Webhook found for {label} on SCM provider but webhook not "
                f"found on GitHub ({e}). Deleting and creating new webhook"
            )
            self._delete_webhook(webhook.id)
            return False

        if force_delete or not hook.active or hook.url != webhook.url:
            logging.info(
                f"Webhook found for {label} on SCM provider but webhook is inactive "
                "or has a different url or is covered by an org webhook. "
                "Deleting and creating new webhook"
            )
            self._delete_webhook(webhook.id)
            logging.info(["delete_github_hook", label, hook_id])
            if not self.dry_run:
                delete_hook(hook_id)
            return False

        return True

    def _reload_webhooks(self, provider: ScmProvider) -> list[Webhook]:
        reloaded = self.store.fetch_provider(provider.id)
        return list(reloaded.webhooks or []) if reloaded else []

    def _obsolete_webhooks(
        self, provider: ScmProvider, gh: GithubWebhookApi
    ) -> list[str]:
        """Webhooks of orgs and repos that are no longer in the target configuration."""
        target = provider.target_configuration
        obsolete = []
        for webhook in self._reload_webhooks(provider):
            org = webhook.tag(ORG_TAG)
            repo = webhook.tag(REPO_TAG)
            if org and not target.has_org(org):
                logging.info(
                    f"Deleting GitHub webhook on org '{org}' because it is no "
                    "longer in target configuration"
                )
                obsolete.append(webhook.id)
                self._delete_github_hook(
                    webhook,
                    f"org '{org}'",
                    lambda hook_id: gh.delete_org_hook(org, hook_id),
                )
            elif repo:
                owner, _, name = repo.partition("/")
                if target.has_repo(owner, name):
                    continue
                logging.info(
                    f"Deleting GitHub webhook on repo '{repo}' because it is no "
                    "longer in target configuration"
                )
                obsolete.append(webhook.id)
                self._delete_github_hook(
                    webhook,
                    f"repo '{repo}'",
                    lambda hook_id: gh.delete_repo_hook(owner, name, hook_id),
                )
        return obsolete

    def _orphaned_webhooks(self, provider: ScmProvider) -> list[str]:
        orphaned = []
        for webhook in self._reload_webhooks(provider):
            if not webhook.tag(HOOK_ID_TAG):
                logging.info(f"Deleting webhook {webhook.id} because of missing hook_id")
                orphaned.append(webhook.id)
        return orphaned

    def _delete_github_hook(
        self, webhook: Webhook, label: str, delete_hook: Callable[[int], None]
    ) -> None:
        if not webhook.tag(HOOK_ID_TAG):
            return
        logging.info(["delete_github_hook", label, webhook.tag(HOOK_ID_TAG)])
        if self.dry_run:
            return
        try:
            delete_hook(webhook.hook_id)
        except Exception as e:
            logging.info(f"Failed to delete GitHub webhook on {label}: {e}")

    def _delete_webhook(self, webhook_id: str) -> None:
        logging.info(["delete_webhook", webhook_id])
        if not self.dry_run:
            self.store.delete_webhook(webhook_id)

    def _delete_webhooks(self, webhook_ids: Iterable[str]) -> None:
        for webhook_id in dict.fromkeys(webhook_ids):
            try:
                self._delete_webhook(webhook_id)
            except Exception:
                logging.exception(f"Failed to delete webhook {webhook_id}")

    def _set_state(
        self, provider: ScmProvider, state: ProviderStateName, errors: list[str]
    ) -> None:
        metrics.set_provider_state(provider.provider_id, state)
        logging.info(["set_provider_state", provider.id, state.value])
        if self.dry_run:
            return
        try:
            self.store.set_provider_state(provider, state, errors)
        except Exception:
            logging.exception(f"Failed to set state of provider {provider.id}")

    def _enqueue_discovery(self, provider: ScmProvider) -> None:
        params = IngestOrgParameters(
            id=provider.id,
            provider_id=provider.provider_id,
            api_url=provider.api_url,
        )
        try:
            enqueue_discovery_job(self.store, DISCOVERY_JOB_NAME, params, self.dry_run)
        except Exception:
            logging.exception("Failed to create repository discovery job")

    @staticmethod
    def _url(webhook: Webhook) -> str:
        if not webhook.url:
            raise ValueError(f"webhook {webhook.id} was stored without url")
        return webhook.url

    @staticmethod
    def _login(provider: ScmProvider) -> str | None:
        login = provider.credential.login if provider.credential else None
        if not login:
            logging.warning(f"No credential owner login on provider {provider.id}")
        return login
