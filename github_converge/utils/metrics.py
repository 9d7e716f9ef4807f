from prometheus_client.core import (
    Counter,
    Gauge,
)

from github_converge.webhooks.models import ProviderStateName

run_time = Gauge(
    name="github_converge_last_run_seconds",
    documentation="Last run duration in seconds",
    labelnames=["integration"],
)

run_status = Gauge(
    name="github_converge_last_run_status",
    documentation="Last run status",
    labelnames=["integration"],
)

execution_counter = Counter(
    name="github_converge_execution_counter",
    documentation="Counts started integration executions",
    labelnames=["integration"],
)

github_request = Counter(
    name="github_converge_github_request_total",
    documentation="Number of calls made to the GitHub API",
    labelnames=["verb"],
)

provider_state = Gauge(
    name="github_converge_provider_state",
    documentation="1 for the current convergence state of a provider, 0 otherwise",
    labelnames=["provider_id", "state"],
)


def set_provider_state(provider_id: str, state: ProviderStateName) -> None:
    for name in ProviderStateName:
        provider_state.labels(provider_id=provider_id, state=name.value).set(
            1 if name == state else 0
        )
