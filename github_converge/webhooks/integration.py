import logging
from typing import Any

from github_converge.utils import gql
from github_converge.utils.config import get_converge_settings
from github_converge.utils.exceptions import ConfigError
from github_converge.utils.runtime.integration import (
    ConvergeIntegration,
    PydanticRunParams,
)
from github_converge.webhooks.discovery import RepositoryDiscovery
from github_converge.webhooks.handlers import (
    EventContext,
    handle_event,
)
from github_converge.webhooks.models import (
    IngestOrgParameters,
    ProviderType,
    ScmProvider,
)
from github_converge.webhooks.reconciler import (
    ConvergenceResult,
    WebhookReconciler,
)
from github_converge.webhooks.store import WebhookStore

INTEGRATION_NAME = "github-webhooks"


class GithubWebhooksIntegrationParams(PydanticRunParams):
    workspace_ids: list[str] = []
    provider_type: ProviderType | None = None
    provider_id: str | None = None


class GithubWebhooksIntegration(
    ConvergeIntegration[GithubWebhooksIntegrationParams]
):
    """Converge the GitHub webhooks of every provider in the configured workspaces."""

    @property
    def name(self) -> str:
        return INTEGRATION_NAME

    def run(self, dry_run: bool) -> None:
        settings = get_converge_settings()
        workspace_ids = self.params.workspace_ids or settings.workspace_ids
        if not workspace_ids:
            raise ConfigError("no workspace ids configured in [converge.github]")
        provider_type = self.params.provider_type or settings.provider_type

        for workspace_id in workspace_ids:
            logging.info(f"Converging workspace {workspace_id}")
            store = WebhookStore(gql.init_from_config(workspace_id))
            self.converge_workspace(store, provider_type, dry_run)

    def providers(
        self, store: WebhookStore, provider_type: ProviderType
    ) -> list[ScmProvider]:
        if self.params.provider_id:
            provider = store.fetch_provider(self.params.provider_id)
            return [provider] if provider else []
        return store.providers_by_type(provider_type)

    def converge_workspace(
        self, store: WebhookStore, provider_type: ProviderType, dry_run: bool
    ) -> list[ConvergenceResult | None]:
        reconciler = WebhookReconciler(store, dry_run=dry_run)
        results = []
        for provider in self.providers(store, provider_type):
            try:
                results.append(reconciler.converge_provider(provider))
            except Exception:
                logging.exception(f"Failed to converge provider {provider.id}")
                results.append(None)
        return results


class IngestOrgIntegrationParams(PydanticRunParams):
    workspace_id: str
    ingest: IngestOrgParameters


class IngestOrgIntegration(ConvergeIntegration[IngestOrgIntegrationParams]):
    """Ingest the orgs and repositories of a provider into the graph store."""

    @property
    def name(self) -> str:
        return "ingest-org"

    def run(self, dry_run: bool) -> None:
        store = WebhookStore(gql.init_from_config(self.params.workspace_id))
        RepositoryDiscovery(store, dry_run=dry_run).ingest_org(self.params.ingest)


class HandleEventIntegrationParams(PydanticRunParams):
    workspace_id: str
    event: str
    payload: dict[str, Any]


class HandleEventIntegration(ConvergeIntegration[HandleEventIntegrationParams]):
    @property
    def name(self) -> str:
        return "handle-event"

    def run(self, dry_run: bool) -> None:
        store = WebhookStore(gql.init_from_config(self.params.workspace_id))
        context = EventContext(
            workspace_id=self.params.workspace_id,
            dry_run=dry_run,
            settings=get_converge_settings(),
        )
        handle_event(self.params.event, self.params.payload, store, context)
