import warnings

from github_converge.webhooks.models import (
    RepoSpec,
    ScmProvider,
    Webhook,
    to_gql_variables,
)


def test_models_populate_by_field_name():
    spec = RepoSpec(owner_spec="acme", name_spec="widgets")

    assert spec.slug == "acme/widgets"
    assert to_gql_variables(spec) == {"ownerSpec": "acme", "nameSpec": "widgets"}


def test_models_ignore_unknown_fields(provider_data):
    provider_data["chatTeam"] = {"id": "T123"}

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        provider = ScmProvider(**provider_data)

    assert provider.provider_id == "zjlmxjzwhurspem"
    assert not hasattr(provider, "chatTeam")


def test_webhook_hook_id():
    webhook = Webhook(
        id="wh-1",
        tags=[{"name": "org", "value": "acme"}, {"name": "hook_id", "value": "12"}],
    )

    assert webhook.hook_id == 12
    assert webhook.is_org_hook("acme")
    assert Webhook(id="wh-2").hook_id is None
