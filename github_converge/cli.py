import json
import logging
import os
import sys
import traceback
from collections.abc import Callable
from typing import Any

import click
import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from github_converge.status import ExitCodes
from github_converge.utils.config import ConfigNotFound
from github_converge.utils.gql import GqlApiSingleton
from github_converge.utils.runtime.environment import init_env
from github_converge.utils.runtime.integration import ConvergeIntegration
from github_converge.webhooks.handlers import EventNotSupportedError

# Enable Sentry
if os.getenv("SENTRY_DSN"):
    match os.environ.get("SENTRY_EVENT_LEVEL", "CRITICAL").upper():
        case "CRITICAL":
            sentry_event_level = logging.CRITICAL
        case "ERROR":
            sentry_event_level = logging.ERROR
        case _:
            raise ValueError(
                "Invalid value for SENTRY_EVENT_LEVEL. Must be CRITICAL or ERROR."
            )

    sentry_sdk.init(
        os.environ["SENTRY_DSN"],
        integrations=[
            LoggingIntegration(event_level=sentry_event_level),
        ],
    )


def config_file(function: Callable) -> Callable:
    help_msg = "Path to configuration file in toml format."
    function = click.option(
        "--config",
        "configfile",
        required=True,
        default=os.environ.get("CONVERGE_CONFIG"),
        help=help_msg,
    )(function)
    return function


def log_level(function: Callable) -> Callable:
    function = click.option(
        "--log-level",
        help="log-level of the command. Defaults to INFO.",
        type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    )(function)
    return function


def dry_run(function: Callable) -> Callable:
    help_msg = (
        "If `true`, it will only print the planned actions "
        "that would be performed, without executing them."
    )

    function = click.option("--dry-run/--no-dry-run", default=False, help=help_msg)(
        function
    )
    return function


def workspace_id(function: Callable) -> Callable:
    function = click.option(
        "--workspace-id",
        help="Id of the workspace in the graph store.",
        required=True,
        envvar="WORKSPACE_ID",
    )(function)
    return function


def run_class_integration(
    integration: ConvergeIntegration,
    ctx: click.Context,
) -> None:
    try:
        integration.run(ctx.obj["dry_run"])
    except ConfigNotFound as e:
        sys.stderr.write(str(e) + "\n")
        sys.exit(ExitCodes.CONFIG_NOT_FOUND)
    except EventNotSupportedError as e:
        sys.stderr.write(str(e) + "\n")
        sys.exit(ExitCodes.EVENT_NOT_SUPPORTED)
    except Exception:
        traceback.print_exc(file=sys.stderr)
        sys.exit(ExitCodes.ERROR)


@click.group()
@config_file
@dry_run
@log_level
@click.pass_context
def integration(
    ctx: click.Context,
    configfile: str,
    dry_run: bool,
    log_level: str | None,
) -> None:
    ctx.ensure_object(dict)

    init_env(
        log_level=log_level,
        config_file=configfile,
        dry_run=dry_run,
    )

    ctx.obj["dry_run"] = dry_run


@integration.result_callback()
def exit_integration(*args: Any, **kwargs: Any) -> None:
    GqlApiSingleton.close()


@integration.command(short_help="Converge GitHub webhooks of SCM providers.")
@click.option(
    "--workspace-id",
    "workspace_ids",
    help="Only converge this workspace. Defaults to [converge.github] workspace_ids.",
    multiple=True,
)
@click.option(
    "--provider-type",
    help="Type of the SCM providers to converge.",
    type=click.Choice(["github_com", "ghe"]),
    default=None,
)
@click.option(
    "--provider-id",
    help="Only converge the provider with this internal id.",
    default=None,
)
@click.pass_context
def github_webhooks(
    ctx: click.Context,
    workspace_ids: tuple[str, ...],
    provider_type: str | None,
    provider_id: str | None,
) -> None:
    from github_converge.webhooks.integration import (
        GithubWebhooksIntegration,
        GithubWebhooksIntegrationParams,
    )

    run_class_integration(
        integration=GithubWebhooksIntegration(
            GithubWebhooksIntegrationParams(
                workspace_ids=list(workspace_ids),
                provider_type=provider_type,
                provider_id=provider_id,
            )
        ),
        ctx=ctx,
    )


@integration.command(short_help="Ingest orgs and repositories of an SCM provider.")
@workspace_id
@click.option("--id", "id_", help="Internal id of the provider.", required=True)
@click.option("--provider-id", help="Id of the provider.", required=True)
@click.option("--api-url", help="URL of the api endpoint.", default=None)
@click.option("--org", help="Only ingest this org or user.", default=None)
@click.option("--org-id", help="Graph store id of --org.", default=None)
@click.option(
    "--type",
    "owner_type",
    help="Owner type of --org.",
    type=click.Choice(["organization", "user"]),
    default=None,
)
@click.pass_context
def ingest_org(
    ctx: click.Context,
    workspace_id: str,
    id_: str,
    provider_id: str,
    api_url: str | None,
    org: str | None,
    org_id: str | None,
    owner_type: str | None,
) -> None:
    from github_converge.webhooks.integration import (
        IngestOrgIntegration,
        IngestOrgIntegrationParams,
    )
    from github_converge.webhooks.models import IngestOrgParameters

    run_class_integration(
        integration=IngestOrgIntegration(
            IngestOrgIntegrationParams(
                workspace_id=workspace_id,
                ingest=IngestOrgParameters(
                    id=id_,
                    provider_id=provider_id,
                    api_url=api_url,
                    org=org,
                    org_id=org_id,
                    type=owner_type,
                ),
            )
        ),
        ctx=ctx,
    )


@integration.command(short_help="Dispatch a graph store event to its handler.")
@workspace_id
@click.argument("event")
@click.argument("payload_file", type=click.File("r"))
@click.pass_context
def handle_event(
    ctx: click.Context,
    workspace_id: str,
    event: str,
    payload_file: Any,
) -> None:
    from github_converge.webhooks.integration import (
        HandleEventIntegration,
        HandleEventIntegrationParams,
    )

    run_class_integration(
        integration=HandleEventIntegration(
            HandleEventIntegrationParams(
                workspace_id=workspace_id,
                event=event,
                payload=json.load(payload_file),
            )
        ),
        ctx=ctx,
    )
