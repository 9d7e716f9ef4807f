import json
import logging
from collections.abc import Iterable
from typing import Any

from github_converge.utils.gql import GqlApi
from github_converge.webhooks.models import (
    CreatedWebhook,
    IngestedOrg,
    Job,
    OrgInput,
    ProviderState,
    ProviderStateName,
    ProviderType,
    RepoRecord,
    RepoSpec,
    ScmProvider,
    Webhook,
    WebhookTag,
    to_gql_variables,
)

WEBHOOK_HEADER = "X-Hub-Signature"

SCM_PROVIDER_FIELDS = """
fragment ScmProviderFields on SCMProvider {
  id
  providerId
  providerType
  apiUrl
  credential {
    secret
    scopes
    owner {
      login
    }
  }
  targetConfiguration {
    orgSpecs
    repoSpecs {
      ownerSpec
      nameSpec
    }
  }
  state {
    name
    error
  }
  webhooks {
    id
    url
    tags {
      name
      value
    }
  }
}
"""

FETCH_PROVIDER_QUERY = (
    """
query FetchProvider($id: ID!) {
  SCMProvider(id: $id) {
    ...ScmProviderFields
  }
}
"""
    + SCM_PROVIDER_FIELDS
)

SCM_PROVIDER_BY_TYPE_QUERY = (
    """
query ScmProviderByType($type: ProviderType!) {
  SCMProvider(providerType: $type) {
    ...ScmProviderFields
  }
}
"""
    + SCM_PROVIDER_FIELDS
)

SET_PROVIDER_STATE_MUTATION = """
mutation SetProviderState($id: ID!, $state: SCMProviderStateName!, $error: String) {
  setSCMProviderState(id: $id, providerState: {state: $state, error: $error}) {
    id
  }
}
"""

CREATE_WEBHOOK_MUTATION = """
mutation CreateWebhook(
  $resourceProviderId: String!
  $header: String!
  $name: String!
  $secret: String!
  $tags: [TagInput]
) {
  createWebhook(
    webhook: {
      resourceProviderId: $resourceProviderId
      name: $name
      authType: hmac_sha1
      hmacSha1: {header: $header, secret: $secret}
      tags: $tags
    }
  ) {
    id
    url
    tags {
      name
      value
    }
  }
}
"""

ADD_WEBHOOK_TAG_MUTATION = """
mutation AddWebhookTag($id: ID!, $name: String!, $value: String!) {
  addWebhookTag(id: $id, name: $name, value: $value) {
    id
  }
}
"""

DELETE_WEBHOOK_MUTATION = """
mutation DeleteWebhook($id: ID!) {
  deleteWebhook(id: $id)
}
"""

SET_OWNER_LOGIN_MUTATION = """
mutation SetOwnerLogin($providerId: String!, $owner: String!, $login: String!) {
  setOwnerLogin(providerId: $providerId, owner: $owner, login: $login) {
    owner
    providerId
    login
  }
}
"""

SET_REPO_LOGIN_MUTATION = """
mutation SetRepoLogin(
  $providerId: String!
  $owner: String!
  $repo: String!
  $login: String!
) {
  setRepoLogin(providerId: $providerId, owner: $owner, repo: $repo, login: $login) {
    owner
    name
    login
  }
}
"""

INGEST_ORGS_MUTATION = """
mutation IngestScmOrgs($scmProviderId: String!, $scmOrgsInput: SCMOrgsInput!) {
  ingestSCMOrgs(scmProviderId: $scmProviderId, scmOrgsInput: $scmOrgsInput) {
    id
    owner
    ownerType
  }
}
"""

INGEST_REPOS_MUTATION = """
mutation IngestScmRepos($providerId: String!, $repos: SCMReposInput!) {
  ingestSCMRepos(scmProviderId: $providerId, scmReposInput: $repos) {
    id
  }
}
"""

REPOS_BY_ORG_QUERY = """
query ReposByOrg($owner: String!, $providerId: String!) {
  Repo(owner: $owner, providerId: $providerId) {
    name
  }
}
"""

JOB_BY_NAME_QUERY = """
query JobByName($name: String!) {
  AtmJob(name: $name) {
    name
    state
  }
}
"""

CREATE_JOB_MUTATION = """
mutation CreateJob(
  $name: String!
  $description: String!
  $command: String!
  $parameters: String!
) {
  createAtmJob(
    jobInput: {
      name: $name
      description: $description
      data: $command
      jobTasks: [{name: $command, data: $parameters}]
    }
  ) {
    id
  }
}
"""

CONFIGURE_TARGET_CONFIGURATION_MUTATION = """
mutation ConfigureTargetConfiguration(
  $id: ID!
  $orgs: [String!]!
  $repos: [GitHubProviderRepoSpec!]!
) {
  configureGitHubResourceProvider(id: $id, config: {orgs: $orgs, repos: $repos}) {
    id
  }
}
"""


def error_text(errors: Iterable[str]) -> str | None:
    """Deduplicated, sorted and joined error messages."""
    return ", ".join(sorted(set(errors))) or None


class WebhookStore:
    """
    Named read and write operations against the graph store for one
    workspace. Reads always go to the server.
    """

    def __init__(self, gqlapi: GqlApi):
        self.gqlapi = gqlapi

    def fetch_provider(self, id: str) -> ScmProvider | None:
        data = self.gqlapi.query(FETCH_PROVIDER_QUERY, {"id": id})
        providers = data.get("SCMProvider") or []
        return ScmProvider(**providers[0]) if providers else None

    def providers_by_type(self, provider_type: ProviderType) -> list[ScmProvider]:
        data = self.gqlapi.query(
            SCM_PROVIDER_BY_TYPE_QUERY, {"type": provider_type.value}
        )
        return [ScmProvider(**p) for p in data.get("SCMProvider") or []]

    def set_provider_state(
        self,
        provider: ScmProvider,
        state: ProviderStateName,
        errors: Iterable[str] = (),
    ) -> bool:
        """Persist the provider state, unless it did not change.

        Returns True if a write happened.
        """
        error = error_text(errors)
        current = provider.state or ProviderState()
        if current.name == state and (current.error or None) == error:
            logging.debug(["provider_state_unchanged", provider.id, state.value])
            return False
        self.gqlapi.mutate(
            SET_PROVIDER_STATE_MUTATION,
            {"id": provider.id, "state": state.value, "error": error},
        )
        return True

    def create_webhook(
        self, provider: ScmProvider, name: str, secret: str, tags: list[WebhookTag]
    ) -> CreatedWebhook:
        data = self.gqlapi.mutate(
            CREATE_WEBHOOK_MUTATION,
            {
                "resourceProviderId": provider.id,
                "header": WEBHOOK_HEADER,
                "name": name,
                "secret": secret,
                "tags": [to_gql_variables(t) for t in tags],
            },
        )
        webhook = Webhook(**data["createWebhook"])
        return CreatedWebhook(webhook=webhook, secret=secret)

    def add_webhook_tag(self, webhook_id: str, name: str, value: str) -> None:
        self.gqlapi.mutate(
            ADD_WEBHOOK_TAG_MUTATION, {"id": webhook_id, "name": name, "value": value}
        )

    def delete_webhook(self, webhook_id: str) -> None:
        self.gqlapi.mutate(DELETE_WEBHOOK_MUTATION, {"id": webhook_id})

    def set_owner_login(self, provider_id: str, owner: str, login: str) -> None:
        self.gqlapi.mutate(
            SET_OWNER_LOGIN_MUTATION,
            {"providerId": provider_id, "owner": owner, "login": login},
        )

    def set_repo_login(
        self, provider_id: str, owner: str, repo: str, login: str
    ) -> None:
        self.gqlapi.mutate(
            SET_REPO_LOGIN_MUTATION,
            {"providerId": provider_id, "owner": owner, "repo": repo, "login": login},
        )

    def ingest_orgs(self, provider_id: str, orgs: list[OrgInput]) -> list[IngestedOrg]:
        data = self.gqlapi.mutate(
            INGEST_ORGS_MUTATION,
            {
                "scmProviderId": provider_id,
                "scmOrgsInput": {"orgs": [to_gql_variables(o) for o in orgs]},
            },
        )
        return [IngestedOrg(**o) for o in data.get("ingestSCMOrgs") or []]

    def ingest_repos(
        self, provider_id: str, org_id: str, owner: str, repos: list[RepoRecord]
    ) -> None:
        self.gqlapi.mutate(
            INGEST_REPOS_MUTATION,
            {
                "providerId": provider_id,
                "repos": {
                    "orgId": org_id,
                    "owner": owner,
                    "repos": [to_gql_variables(r) for r in repos],
                },
            },
        )

    def repo_names_by_org(self, owner: str, provider_id: str) -> set[str]:
        data = self.gqlapi.query(
            REPOS_BY_ORG_QUERY, {"owner": owner, "providerId": provider_id}
        )
        return {r["name"] for r in data.get("Repo") or []}

    def jobs_by_name(self, name: str) -> list[Job]:
        data = self.gqlapi.query(JOB_BY_NAME_QUERY, {"name": name})
        return [Job(**j) for j in data.get("AtmJob") or []]

    def create_job(
        self,
        name: str,
        description: str,
        command: str,
        parameters: dict[str, Any],
    ) -> None:
        self.gqlapi.mutate(
            CREATE_JOB_MUTATION,
            {
                "name": name,
                "description": description,
                "command": command,
                "parameters": json.dumps(parameters),
            },
        )

    def configure_target_configuration(
        self, id: str, orgs: list[str], repos: list[RepoSpec]
    ) -> None:
        self.gqlapi.mutate(
            CONFIGURE_TARGET_CONFIGURATION_MUTATION,
            {
                "id": id,
                "orgs": orgs,
                "repos": [{"owner": r.owner_spec, "repo": r.name_spec} for r in repos],
            },
        )
