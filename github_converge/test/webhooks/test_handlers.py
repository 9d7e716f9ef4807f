from unittest.mock import create_autospec

import pytest

from github_converge.utils.config import ConvergeSettings
from github_converge.webhooks import handlers
from github_converge.webhooks.handlers import (
    EventContext,
    EventNotSupportedError,
    add_repo_spec,
    handle_event,
)
from github_converge.webhooks.models import (
    Job,
    RepoSpec,
    ScmProvider,
    TargetConfiguration,
)
from github_converge.webhooks.reconciler import WebhookReconciler
from github_converge.webhooks.store import WebhookStore


@pytest.fixture
def store() -> WebhookStore:
    return create_autospec(WebhookStore)


@pytest.fixture
def context() -> EventContext:
    return EventContext(
        workspace_id="T123", settings=ConvergeSettings(repo_generated=True)
    )


def test_add_repo_spec(store):
    target = TargetConfiguration(
        org_specs=["acme"], repo_specs=[RepoSpec(owner_spec="o", name_spec="a")]
    )

    assert add_repo_spec(store, "T123_github_com", target, "o", "b")

    store.configure_target_configuration.assert_called_once_with(
        "T123_github_com",
        ["acme"],
        [RepoSpec(owner_spec="o", name_spec="a"), RepoSpec(owner_spec="o", name_spec="b")],
    )


def test_add_repo_spec_existing(store):
    target = TargetConfiguration(repo_specs=[RepoSpec(owner_spec="o", name_spec="a")])

    assert not add_repo_spec(store, "T123_github_com", target, "o", "a")
    store.configure_target_configuration.assert_not_called()


def test_on_channel_linked(store, context, fx):
    handle_event("ChannelLinkCreated", fx.get_json("channel_linked.json"), store, context)

    store.configure_target_configuration.assert_called_once_with(
        "T123_github_com",
        ["other"],
        [
            RepoSpec(owner_spec="acme", name_spec="gadgets"),
            RepoSpec(owner_spec="acme", name_spec="widgets"),
        ],
    )


def test_on_channel_linked_existing_repo(store, context, fx):
    payload = fx.get_json("channel_linked.json")
    link = payload["data"]["ChannelLink"][0]
    link["repo"]["name"] = "gadgets"

    handle_event("ChannelLinkCreated", payload, store, context)

    store.configure_target_configuration.assert_not_called()


def test_on_channel_linked_without_provider(store, context):
    event = {"ChannelLink": [{"repo": {"name": "widgets", "owner": "acme", "org": {}}}]}

    handlers.on_channel_linked(event, store, context)

    store.configure_target_configuration.assert_not_called()


def provenance_event(owner: str = "acme", name: str = "new-repo") -> dict:
    return {
        "SdmRepoProvenance": [
            {"repo": {"owner": owner, "name": name, "providerId": "github_com"}}
        ]
    }


def test_on_repo_provenance(store, context, provider_data):
    store.fetch_provider.return_value = ScmProvider(**provider_data)

    handlers.on_repo_provenance(provenance_event(), store, context)

    store.fetch_provider.assert_called_once_with("T123_github_com")
    store.configure_target_configuration.assert_called_once_with(
        "T123_github_com", [], [RepoSpec(owner_spec="acme", name_spec="new-repo")]
    )


def test_on_repo_provenance_covered_by_org(store, context, provider_data):
    provider_data["targetConfiguration"]["orgSpecs"] = ["acme"]
    store.fetch_provider.return_value = ScmProvider(**provider_data)

    handlers.on_repo_provenance(provenance_event(), store, context)

    store.configure_target_configuration.assert_not_called()


def test_on_repo_provenance_disabled(store, provider_data):
    context = EventContext(workspace_id="T123")

    handlers.on_repo_provenance(provenance_event(), store, context)

    store.fetch_provider.assert_not_called()


def test_on_github_app_installation(store, context, fx):
    store.jobs_by_name.return_value = []

    handle_event(
        "OnGitHubAppInstallation", fx.get_json("app_installation.json"), store, context
    )

    store.jobs_by_name.assert_called_once_with(
        "RepositoryDiscovery/zjlmxjzwhurspem/octocat/acme"
    )
    store.create_job.assert_called_once()
    assert store.create_job.call_args.kwargs["parameters"] == {
        "id": "T123_github_app",
        "providerId": "zjlmxjzwhurspem",
        "apiUrl": "https://api.github.com/",
        "org": "acme",
        "orgId": "T123_acme",
        "type": "organization",
    }


def test_on_github_app_installation_running(store, context, fx):
    store.jobs_by_name.return_value = [
        Job(name="RepositoryDiscovery/zjlmxjzwhurspem/octocat/acme", state="running")
    ]

    handle_event(
        "OnGitHubAppInstallation", fx.get_json("app_installation.json"), store, context
    )

    store.create_job.assert_not_called()


def test_on_scm_provider(mocker, store, context, provider_data):
    converge = mocker.patch.object(
        WebhookReconciler, "converge_provider", autospec=True, return_value=None
    )

    handle_event("OnScmProvider", {"SCMProvider": [provider_data]}, store, context)

    converge.assert_called_once()
    assert converge.call_args.args[1] == ScmProvider(**provider_data)


def test_unknown_event(store, context):
    with pytest.raises(EventNotSupportedError):
        handle_event("OnPush", {}, store, context)

