#!/usr/bin/env python3

import logging
import os
import sys
import time

from prometheus_client import start_http_server

from github_converge.status import ExitCodes
from github_converge.utils.config import ConfigNotFound
from github_converge.utils.gql import GqlApiSingleton
from github_converge.utils.metrics import (
    execution_counter,
    run_status,
    run_time,
)
from github_converge.utils.runtime.environment import (
    DRY_RUN_MAP,
    init_env,
)
from github_converge.utils.runtime.integration import ConvergeIntegration
from github_converge.webhooks.integration import (
    GithubWebhooksIntegration,
    GithubWebhooksIntegrationParams,
)

RUN_ONCE = os.environ.get("RUN_ONCE")
DRY_RUN = os.environ.get("DRY_RUN")
CONFIG = os.environ.get("CONFIG", "/config/config.toml")
WORKSPACE_IDS = os.environ.get("WORKSPACE_IDS")
PROVIDER_TYPE = os.environ.get("PROVIDER_TYPE")
PROMETHEUS_PORT = int(os.environ.get("PROMETHEUS_PORT", "9090"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
SLEEP_DURATION_SECS = int(os.environ.get("SLEEP_DURATION_SECS", "600"))
SLEEP_ON_ERROR = int(os.environ.get("SLEEP_ON_ERROR", "10"))

LOG = logging.getLogger(__name__)


def parse_dry_run_flag(dry_run: str | None) -> bool:
    if not dry_run:
        return False
    if dry_run not in DRY_RUN_MAP:
        raise ValueError(
            f'Invalid DRY_RUN option given: "{dry_run}". '
            f"Only the following options are allowed: {list(DRY_RUN_MAP)}"
        )
    return DRY_RUN_MAP[dry_run]


def build_integration(
    workspace_ids: str | None, provider_type: str | None
) -> GithubWebhooksIntegration:
    return GithubWebhooksIntegration(
        GithubWebhooksIntegrationParams(
            workspace_ids=workspace_ids.split() if workspace_ids else [],
            provider_type=provider_type or None,
        )
    )


def run_once(integration: ConvergeIntegration, dry_run: bool) -> int:
    """Run the integration one time and record its run metrics."""
    start_time = time.monotonic()
    execution_counter.labels(integration=integration.name).inc()
    try:
        integration.run(dry_run)
        return_code = ExitCodes.SUCCESS
    except ConfigNotFound:
        LOG.exception(f"Error running {integration.name}")
        return_code = ExitCodes.CONFIG_NOT_FOUND
    except Exception:
        LOG.exception(f"Error running {integration.name}")
        return_code = ExitCodes.ERROR
    finally:
        GqlApiSingleton.close()

    run_time.labels(integration=integration.name).set(time.monotonic() - start_time)
    run_status.labels(integration=integration.name).set(return_code)
    return return_code


def main() -> None:
    """
    This entry point script converges the GitHub webhooks of all configured
    workspaces in a loop. It expects certain env variables
    * CONFIG
      path to the config toml file
    * LOG_LEVEL
      Log level (defaults to INFO)
    * DRY_RUN (optional)
      this is not a boolean but must contain the actual dry-run flag value,
      so --dry-run or --no-dry-run
    * WORKSPACE_IDS (optional)
      space separated list of workspaces to converge, defaults to
      [converge.github] workspace_ids
    * PROVIDER_TYPE (optional)
      github_com or ghe, defaults to [converge.github] provider_type
    * RUN_ONCE (optional)
      if 'true', execute the integration once and exit
      otherwise run the integration in a loop controlled by SLEEP_DURATION_SECS
      and SLEEP_ON_ERROR
    * SLEEP_DURATION_SECS (default 600)
      amount of seconds to sleep between successful integration runs
    * SLEEP_ON_ERROR (default 10)
      amount of seconds to sleep before another integration run is started
    """
    if len(sys.argv) > 1 and sys.argv[1] == "--help":
        print(main.__doc__)
        sys.exit(0)

    dry_run = parse_dry_run_flag(DRY_RUN)
    init_env(log_level=LOG_LEVEL, config_file=CONFIG, dry_run=dry_run)
    integration = build_integration(WORKSPACE_IDS, PROVIDER_TYPE)

    start_http_server(PROMETHEUS_PORT)

    while True:
        return_code = run_once(integration, dry_run)
        if RUN_ONCE:
            sys.exit(return_code)

        time.sleep(
            SLEEP_DURATION_SECS if return_code == ExitCodes.SUCCESS else SLEEP_ON_ERROR
        )


if __name__ == "__main__":
    main()
