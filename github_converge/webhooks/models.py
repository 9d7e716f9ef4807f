from enum import StrEnum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

ORG_TAG = "org"
REPO_TAG = "repo"
HOOK_ID_TAG = "hook_id"

READ_ORG_SCOPE = "read:org"


class ConfiguredBaseModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ProviderType(StrEnum):
    GITHUB_COM = "github_com"
    GHE = "ghe"


class ProviderStateName(StrEnum):
    CONVERGED = "converged"
    MISCONFIGURED = "misconfigured"
    UNAUTHORIZED = "unauthorized"


class OwnerType(StrEnum):
    ORGANIZATION = "organization"
    USER = "user"


class JobState(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class WebhookTag(ConfiguredBaseModel):
    name: str = Field(..., alias="name")
    value: str = Field(..., alias="value")


class Webhook(ConfiguredBaseModel):
    id: str = Field(..., alias="id")
    secret: str | None = Field(None, alias="secret")
    url: str | None = Field(None, alias="url")
    tags: list[WebhookTag] | None = Field(None, alias="tags")

    def tag(self, name: str) -> str | None:
        for t in self.tags or []:
            if t.name == name:
                return t.value
        return None

    @property
    def hook_id(self) -> int | None:
        hook_id = self.tag(HOOK_ID_TAG)
        return int(hook_id) if hook_id else None

    def is_org_hook(self, org: str) -> bool:
        return self.tag(ORG_TAG) == org

    def is_repo_hook(self, owner: str, repo: str) -> bool:
        return self.tag(REPO_TAG) == f"{owner}/{repo}"


class RepoSpec(ConfiguredBaseModel):
    owner_spec: str = Field(..., alias="ownerSpec")
    name_spec: str = Field(..., alias="nameSpec")

    @property
    def slug(self) -> str:
        return f"{self.owner_spec}/{self.name_spec}"


class TargetConfiguration(ConfiguredBaseModel):
    org_specs: list[str] | None = Field(None, alias="orgSpecs")
    repo_specs: list[RepoSpec] | None = Field(None, alias="repoSpecs")

    def orgs(self) -> list[str]:
        """Org specs without duplicates, in declaration order."""
        return list(dict.fromkeys(self.org_specs or []))

    def repos(self) -> list[tuple[str, str]]:
        """(owner, repo) pairs without duplicates, in declaration order."""
        return list(
            dict.fromkeys((r.owner_spec, r.name_spec) for r in self.repo_specs or [])
        )

    def has_org(self, org: str) -> bool:
        return org in (self.org_specs or [])

    def has_repo(self, owner: str, repo: str) -> bool:
        return (owner, repo) in self.repos()


class CredentialOwner(ConfiguredBaseModel):
    login: str | None = Field(None, alias="login")


class Credential(ConfiguredBaseModel):
    secret: str | None = Field(None, alias="secret")
    scopes: list[str] | None = Field(None, alias="scopes")
    owner: CredentialOwner | None = Field(None, alias="owner")

    @property
    def login(self) -> str | None:
        return self.owner.login if self.owner else None


class ProviderState(ConfiguredBaseModel):
    name: ProviderStateName | None = Field(None, alias="name")
    error: str | None = Field(None, alias="error")


class ScmProvider(ConfiguredBaseModel):
    id: str = Field(..., alias="id")
    provider_id: str = Field(..., alias="providerId")
    provider_type: ProviderType | None = Field(None, alias="providerType")
    api_url: str | None = Field(None, alias="apiUrl")
    credential: Credential | None = Field(None, alias="credential")
    target_configuration: TargetConfiguration | None = Field(
        None, alias="targetConfiguration"
    )
    state: ProviderState | None = Field(None, alias="state")
    webhooks: list[Webhook] | None = Field(None, alias="webhooks")

    @property
    def token(self) -> str | None:
        return self.credential.secret if self.credential else None

    def org_webhook(self, org: str) -> Webhook | None:
        return next((w for w in self.webhooks or [] if w.is_org_hook(org)), None)

    def repo_webhook(self, owner: str, repo: str) -> Webhook | None:
        return next(
            (w for w in self.webhooks or [] if w.is_repo_hook(owner, repo)), None
        )


class CreatedWebhook(ConfiguredBaseModel):
    webhook: Webhook
    secret: str


class OrgInput(ConfiguredBaseModel):
    name: str = Field(..., alias="name")
    id: str = Field(..., alias="id")
    url: str | None = Field(None, alias="url")
    owner_type: OwnerType = Field(..., alias="ownerType")


class IngestedOrg(ConfiguredBaseModel):
    id: str = Field(..., alias="id")
    owner: str = Field(..., alias="owner")
    owner_type: OwnerType = Field(OwnerType.ORGANIZATION, alias="ownerType")


class RepoRecord(ConfiguredBaseModel):
    name: str = Field(..., alias="name")
    repo_id: str = Field(..., alias="repoId")
    url: str | None = Field(None, alias="url")
    default_branch: str | None = Field(None, alias="defaultBranch")


class IngestOrgParameters(ConfiguredBaseModel):
    id: str = Field(..., alias="id")
    provider_id: str = Field(..., alias="providerId")
    api_url: str | None = Field(None, alias="apiUrl")
    org: str | None = Field(None, alias="org")
    org_id: str | None = Field(None, alias="orgId")
    type: OwnerType | None = Field(None, alias="type")


class Job(ConfiguredBaseModel):
    name: str = Field(..., alias="name")
    state: str | None = Field(None, alias="state")

    @property
    def running(self) -> bool:
        return self.state == JobState.RUNNING


def to_gql_variables(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")
