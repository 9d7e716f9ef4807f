from typing import Any

import toml
from pydantic import (
    BaseModel,
    Field,
)

from github_converge.webhooks.models import ProviderType

DEFAULT_GRAPHQL_SERVER = "https://automation.atomist.com/graphql/team/{workspace_id}"

_config = None


class ConfigNotFound(Exception):
    pass


class ConvergeSettings(BaseModel):
    workspace_ids: list[str] = Field(default_factory=list)
    provider_type: ProviderType = ProviderType.GITHUB_COM
    repo_generated: bool = False


def get_config():
    return _config


def init(config):
    global _config  # noqa: PLW0603
    _config = config
    return _config


def init_from_toml(configfile):
    return init(toml.load(configfile))


def read(path: str) -> Any:
    """Return the config section or value found at a slash separated path."""
    try:
        section = get_config()
        for t in path.split("/"):
            section = section[t]
        return section
    except (KeyError, TypeError) as e:
        raise ConfigNotFound(f"key not found in config file {path}: {e!s}") from None


def get_converge_settings() -> ConvergeSettings:
    try:
        return ConvergeSettings(**read("converge/github"))
    except ConfigNotFound:
        return ConvergeSettings()


def get_graphql_server(workspace_id: str) -> tuple[str, str | None]:
    try:
        graphql = read("graphql")
    except ConfigNotFound:
        graphql = {}
    server = graphql.get("server", DEFAULT_GRAPHQL_SERVER)
    return server.format(workspace_id=workspace_id), graphql.get("token")
