from unittest.mock import create_autospec

import pytest

from github_converge.utils import config
from github_converge.utils.exceptions import ConfigError
from github_converge.utils.gql import GqlApi
from github_converge.webhooks.integration import (
    GithubWebhooksIntegration,
    GithubWebhooksIntegrationParams,
    HandleEventIntegration,
    HandleEventIntegrationParams,
)
from github_converge.webhooks.models import (
    ProviderType,
    ScmProvider,
)
from github_converge.webhooks.reconciler import (
    ConvergenceResult,
    WebhookReconciler,
)
from github_converge.webhooks.store import WebhookStore


@pytest.fixture
def converge_config():
    config.init({
        "graphql": {"server": "https://graph.example.com/team/{workspace_id}"},
        "converge": {"github": {"workspace_ids": ["T1", "T2"], "provider_type": "ghe"}},
    })
    yield
    config.init(None)


@pytest.fixture
def init_gql(mocker):
    return mocker.patch(
        "github_converge.webhooks.integration.gql.init_from_config",
        return_value=create_autospec(GqlApi),
    )


@pytest.fixture
def store(provider_data) -> WebhookStore:
    store = create_autospec(WebhookStore)
    store.providers_by_type.return_value = [
        ScmProvider(**{**provider_data, "id": "p1"}),
        ScmProvider(**{**provider_data, "id": "p2"}),
    ]
    return store


def test_run_converges_every_configured_workspace(mocker, converge_config, init_gql):
    converge_workspace = mocker.patch.object(
        GithubWebhooksIntegration, "converge_workspace", autospec=True
    )

    GithubWebhooksIntegration(GithubWebhooksIntegrationParams()).run(dry_run=True)

    assert [c.args[0] for c in init_gql.call_args_list] == ["T1", "T2"]
    assert [c.args[2:] for c in converge_workspace.call_args_list] == [
        (ProviderType.GHE, True),
        (ProviderType.GHE, True),
    ]


def test_run_params_override_config(mocker, converge_config, init_gql):
    mocker.patch.object(GithubWebhooksIntegration, "converge_workspace", autospec=True)

    GithubWebhooksIntegration(
        GithubWebhooksIntegrationParams(workspace_ids=["T9"])
    ).run(dry_run=False)

    init_gql.assert_called_once_with("T9")


def test_run_without_workspaces():
    config.init({})
    with pytest.raises(ConfigError):
        GithubWebhooksIntegration(GithubWebhooksIntegrationParams()).run(dry_run=False)
    config.init(None)


def test_converge_workspace_continues_after_failure(mocker, store):
    converge = mocker.patch.object(
        WebhookReconciler,
        "converge_provider",
        autospec=True,
        side_effect=[Exception("store unavailable"), ConvergenceResult()],
    )
    integration = GithubWebhooksIntegration(GithubWebhooksIntegrationParams())

    results = integration.converge_workspace(store, ProviderType.GITHUB_COM, False)

    assert results == [None, ConvergenceResult()]
    assert converge.call_count == 2
    store.providers_by_type.assert_called_once_with(ProviderType.GITHUB_COM)


def test_converge_single_provider(mocker, store, provider_data):
    store.fetch_provider.return_value = ScmProvider(**provider_data)
    converge = mocker.patch.object(
        WebhookReconciler, "converge_provider", autospec=True
    )
    integration = GithubWebhooksIntegration(
        GithubWebhooksIntegrationParams(provider_id="T123_github_com")
    )

    integration.converge_workspace(store, ProviderType.GITHUB_COM, False)

    store.fetch_provider.assert_called_once_with("T123_github_com")
    store.providers_by_type.assert_not_called()
    converge.assert_called_once()


def test_handle_event_integration(mocker, converge_config, init_gql):
    handle_event = mocker.patch(
        "github_converge.webhooks.integration.handle_event", autospec=True
    )

    HandleEventIntegration(
        HandleEventIntegrationParams(
            workspace_id="T1", event="OnScmProvider", payload={"data": {}}
        )
    ).run(dry_run=True)

    init_gql.assert_called_once_with("T1")
    name, payload, _, context = handle_event.call_args.args
    assert (name, payload) == ("OnScmProvider", {"data": {}})
    assert context.workspace_id == "T1"
    assert context.dry_run
