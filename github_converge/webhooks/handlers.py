"""
Handlers for the graph store events that feed webhook convergence.

Every handler receives the `data` part of the event payload. Subscribing to
the events is not done here.
"""

import logging
from collections.abc import Callable
from dataclasses import (
    dataclass,
    field,
)
from typing import Any

from github_converge.utils.config import ConvergeSettings
from github_converge.webhooks.discovery import (
    enqueue_discovery_job,
    installation_job_name,
)
from github_converge.webhooks.models import (
    IngestOrgParameters,
    RepoSpec,
    ScmProvider,
    TargetConfiguration,
)
from github_converge.webhooks.reconciler import (
    ConvergenceResult,
    WebhookReconciler,
)
from github_converge.webhooks.store import WebhookStore


class EventNotSupportedError(Exception):
    pass


@dataclass
class EventContext:
    workspace_id: str
    dry_run: bool = False
    settings: ConvergeSettings = field(default_factory=ConvergeSettings)


def add_repo_spec(
    store: WebhookStore,
    provider_id: str,
    target: TargetConfiguration,
    owner: str,
    repo: str,
    dry_run: bool = False,
) -> bool:
    """Append a repo spec to the target configuration, unless it exists."""
    if target.has_repo(owner, repo):
        return False

    repo_specs = [*(target.repo_specs or []), RepoSpec(owner_spec=owner, name_spec=repo)]
    logging.info(["add_repo_spec", provider_id, f"{owner}/{repo}"])
    if not dry_run:
        store.configure_target_configuration(
            provider_id, target.org_specs or [], repo_specs
        )
    return True


def on_scm_provider(
    event: dict[str, Any], store: WebhookStore, context: EventContext
) -> list[ConvergenceResult | None]:
    reconciler = WebhookReconciler(store, dry_run=context.dry_run)
    return [
        reconciler.converge_provider(ScmProvider(**p))
        for p in event.get("SCMProvider") or []
    ]


def on_channel_linked(
    event: dict[str, Any], store: WebhookStore, context: EventContext
) -> None:
    for link in event.get("ChannelLink") or []:
        repo = link.get("repo") or {}
        provider = (repo.get("org") or {}).get("scmProvider")
        if not provider:
            logging.warning("No provider found on newly linked repo")
            continue

        target = TargetConfiguration(**(provider.get("targetConfiguration") or {}))
        add_repo_spec(
            store, provider["id"], target, repo["owner"], repo["name"], context.dry_run
        )


def on_repo_provenance(
    event: dict[str, Any], store: WebhookStore, context: EventContext
) -> None:
    if not context.settings.repo_generated:
        logging.debug("Webhooks for generated repos are disabled")
        return

    for provenance in event.get("SdmRepoProvenance") or []:
        repo = provenance["repo"]
        owner, name = repo["owner"], repo["name"]
        provider = store.fetch_provider(f"{context.workspace_id}_{repo['providerId']}")
        if not provider:
            logging.warning(f"No provider found for generated repo {owner}/{name}")
            continue

        target = provider.target_configuration or TargetConfiguration()
        if target.has_org(owner):
            logging.debug(f"Generated repo {owner}/{name} is covered by org {owner}")
            continue
        add_repo_spec(store, provider.id, target, owner, name, context.dry_run)


def on_github_app_installation(
    event: dict[str, Any], store: WebhookStore, context: EventContext
) -> None:
    for app in event.get("GitHubAppInstallation") or []:
        provider = app["gitHubAppResourceProvider"]
        owner_login = (
            ((provider.get("credential") or {}).get("owner") or {}).get("login")
            or app["owner"]
        )
        params = IngestOrgParameters(
            id=provider["id"],
            provider_id=provider["providerId"],
            api_url=provider.get("apiUrl"),
            org=app["owner"],
            org_id=app["id"],
            type=app.get("ownerType"),
        )
        name = installation_job_name(params.provider_id, owner_login, app["owner"])
        enqueue_discovery_job(store, name, params, context.dry_run)


EVENT_HANDLERS: dict[
    str, Callable[[dict[str, Any], WebhookStore, EventContext], Any]
] = {
    "OnScmProvider": on_scm_provider,
    "ChannelLinkCreated": on_channel_linked,
    "OnSdmRepoProvenance": on_repo_provenance,
    "OnGitHubAppInstallation": on_github_app_installation,
}


def handle_event(
    name: str, payload: dict[str, Any], store: WebhookStore, context: EventContext
) -> Any:
    handler = EVENT_HANDLERS.get(name)
    if handler is None:
        raise EventNotSupportedError(
            f"Unsupported event {name}, expected one of {sorted(EVENT_HANDLERS)}"
        )
    logging.info(f"Handling event {name}")
    return handler(payload.get("data", payload), store, context)
