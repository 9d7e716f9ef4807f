import logging
from collections.abc import Callable

from github_converge.utils.exceptions import ParameterError
from github_converge.utils.github_api import (
    GithubRepo,
    GithubWebhookApi,
)
from github_converge.webhooks.models import (
    READ_ORG_SCOPE,
    IngestedOrg,
    IngestOrgParameters,
    OrgInput,
    OwnerType,
    RepoRecord,
    ScmProvider,
    to_gql_variables,
)
from github_converge.webhooks.store import WebhookStore

DISCOVERY_JOB_NAME = "RepositoryDiscovery"
DISCOVERY_JOB_DESCRIPTION = "Discovering repositories"
INGEST_ORG_COMMAND = "IngestOrg"


def installation_job_name(provider_id: str, owner_login: str, org: str) -> str:
    return f"{DISCOVERY_JOB_NAME}/{provider_id}/{owner_login}/{org}"


def enqueue_discovery_job(
    store: WebhookStore,
    name: str,
    params: IngestOrgParameters,
    dry_run: bool = False,
) -> bool:
    """Create a discovery job, unless a job with the same name is running.

    Returns True if a job was (or, on dry-run, would have been) created.
    """
    if any(job.running for job in store.jobs_by_name(name)):
        logging.info(f"Not creating job '{name}' as one is already running")
        return False

    logging.info(["create_job", name, INGEST_ORG_COMMAND, params.provider_id])
    if not dry_run:
        store.create_job(
            name=name,
            description=DISCOVERY_JOB_DESCRIPTION,
            command=INGEST_ORG_COMMAND,
            parameters=to_gql_variables(params),
        )
    return True


def _new_repos(page: list[GithubRepo], existing: set[str]) -> list[RepoRecord]:
    return [
        RepoRecord(
            name=r.name,
            repo_id=str(r.id),
            url=r.url,
            default_branch=r.default_branch,
        )
        for r in page
        if not r.archived and r.name not in existing
    ]


class RepositoryDiscovery:
    """Ingests the orgs and repositories a provider credential can see."""

    def __init__(
        self,
        store: WebhookStore,
        dry_run: bool = False,
        github_factory: Callable[[str, str | None], GithubWebhookApi] = GithubWebhookApi,
    ):
        self.store = store
        self.dry_run = dry_run
        self.github_factory = github_factory

    def ingest_org(self, params: IngestOrgParameters) -> None:
        provider = self.store.fetch_provider(params.id)
        if not provider or not provider.token:
            logging.info(f"Skipping discovery for provider {params.id}: no credential")
            return

        gh = self.github_factory(provider.token, params.api_url or provider.api_url)
        if params.org:
            if not params.org_id:
                raise ParameterError(f"orgId is required to ingest org {params.org}")
            owners = [
                IngestedOrg(
                    id=params.org_id,
                    owner=params.org,
                    owner_type=params.type or OwnerType.ORGANIZATION,
                )
            ]
        else:
            owners = self.ingest_owners(provider, gh)

        for owner in owners:
            try:
                self.ingest_repos(provider, owner, gh)
            except Exception:
                logging.exception(f"Failed to ingest repos for '{owner.owner}'")
        logging.info("Ingesting orgs and repos finished")

    def ingest_owners(
        self, provider: ScmProvider, gh: GithubWebhookApi
    ) -> list[IngestedOrg]:
        """
        Ingest the orgs of the authenticated user, when the credential may
        read them, and the user itself.
        """
        orgs = []
        scopes = (provider.credential.scopes if provider.credential else None) or []
        if READ_ORG_SCOPE in scopes:
            orgs = [
                OrgInput(
                    name=o.login,
                    id=str(o.id),
                    url=o.url,
                    owner_type=OwnerType.ORGANIZATION,
                )
                for o in gh.list_authenticated_orgs()
            ]
        user = gh.get_authenticated_user()
        orgs.append(
            OrgInput(
                name=user.login,
                id=str(user.id),
                url=user.url,
                owner_type=OwnerType.USER,
            )
        )

        logging.info(["ingest_orgs", provider.provider_id, [o.name for o in orgs]])
        if self.dry_run:
            return [
                IngestedOrg(id=o.id, owner=o.name, owner_type=o.owner_type)
                for o in orgs
            ]
        return self.store.ingest_orgs(provider.id, orgs)

    def ingest_repos(
        self, provider: ScmProvider, owner: IngestedOrg, gh: GithubWebhookApi
    ) -> None:
        logging.info(f"Ingesting repos for org '{owner.owner}'")
        existing = self.store.repo_names_by_org(owner.owner, provider.provider_id)
        if owner.owner_type == OwnerType.USER:
            pages = gh.list_user_repos(owner.owner)
        else:
            pages = gh.list_org_repos(owner.owner)

        for page in pages:
            repos = _new_repos(page, existing)
            if not repos:
                continue
            logging.info(["ingest_repos", owner.owner, [r.name for r in repos]])
            if not self.dry_run:
                self.store.ingest_repos(provider.id, owner.id, owner.owner, repos)
        logging.info(f"Ingesting repos for org '{owner.owner}' completed")
