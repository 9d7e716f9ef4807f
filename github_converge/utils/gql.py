import logging
import threading
from typing import Any

import requests
from gql import (
    Client,
    gql,
)
from gql.transport.exceptions import TransportQueryError
from gql.transport.requests import RequestsHTTPTransport
from gql.transport.requests import log as requests_logger
from requests.auth import AuthBase
from requests.cookies import RequestsCookieJar
from sentry_sdk import capture_exception
from sretoolbox.utils import retry

from github_converge.utils.config import get_graphql_server

requests_logger.setLevel(logging.WARNING)


def capture_and_forget(error):
    """fire-and-forget an exception to sentry

    :param error: exception to be captured and sent to sentry
    :type error: Exception
    """

    try:
        capture_exception(error)
    except Exception:
        pass


class GqlApiError(Exception):
    pass


class GqlApi:
    """GraphQL client for one workspace of the graph store.

    Every request hits the server, there is no response caching.
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        workspace_id: str | None = None,
    ) -> None:
        self.url = url
        self.token = token
        self.workspace_id = workspace_id
        self.client = self._init_gql_client()

    def _init_gql_client(self) -> Client:
        req_headers = None
        if self.token:
            req_headers = {"Authorization": self.token}
        transport = PersistentRequestsHTTPTransport(
            requests.Session(), self.url, headers=req_headers, timeout=30
        )
        return Client(transport=transport)

    def close(self):
        logging.debug("Closing GqlApi client")
        if self.client.transport.session:
            self.client.transport.session.close()

    @retry(exceptions=GqlApiError, max_attempts=5, hook=capture_and_forget)
    def query(self, query: str, variables=None) -> dict[str, Any]:
        try:
            result = self.client.execute(
                gql(query), variable_values=variables, get_execution_result=True
            ).formatted
        except requests.exceptions.ConnectionError as e:
            raise GqlApiError(f"Could not connect to GraphQL server ({e})")
        except TransportQueryError as e:
            raise GqlApiError(f"`error` returned with GraphQL response {e}")
        except AssertionError:
            raise GqlApiError("`data` field missing from GraphQL response payload")
        except Exception as e:
            raise GqlApiError("Unexpected error occurred") from e

        if result.get("data") is None:
            raise GqlApiError("`data` not received in GraphQL payload")

        return result["data"]

    def mutate(self, mutation: str, variables=None) -> dict[str, Any]:
        return self.query(mutation, variables)


class GqlApiSingleton:
    gql_api: GqlApi | None = None
    gqlapi_lock = threading.Lock()

    @classmethod
    def create(cls, *args, **kwargs) -> GqlApi:
        with cls.gqlapi_lock:
            if cls.gql_api:
                logging.debug("Resetting GqlApi instance")
                cls.close_gqlapi()
            cls.gql_api = GqlApi(*args, **kwargs)
        return cls.gql_api

    @classmethod
    def close_gqlapi(cls):
        cls.gql_api.close()

    @classmethod
    def instance(cls) -> GqlApi:
        if not cls.gql_api:
            raise GqlApiError("gql module has not been initialized.")
        return cls.gql_api

    @classmethod
    def close(cls) -> None:
        with cls.gqlapi_lock:
            if cls.gql_api:
                cls.close_gqlapi()
                cls.gql_api = None


def init(url: str, token: str | None = None, workspace_id: str | None = None):
    return GqlApiSingleton.create(url, token, workspace_id)


class PersistentRequestsHTTPTransport(RequestsHTTPTransport):
    """A transport for the GQL Client that uses an existing.
    Is a reduced version of the RequestsHTTPTransport class from gql library
    with the connect and close methods removed, cause they are implemented
    to disconnect after each query.
    """

    def __init__(
        self,
        session: requests.Session,
        url: str,
        headers: dict[str, Any] | None = None,
        cookies: dict[str, Any] | RequestsCookieJar | None = None,
        auth: AuthBase | None = None,
        use_json: bool = True,
        timeout: int | None = None,
        verify: bool | str = True,
        retries: int = 0,
        method: str = "POST",
        **kwargs: Any,
    ):
        super().__init__(
            url,
            headers,
            cookies,
            auth,
            use_json,
            timeout,
            verify,
            retries,
            method,
            **kwargs,
        )
        # can't directly assign, due to mypy type checking
        self.session = session  # type: ignore

    def connect(self):
        pass

    def close(self) -> None:
        pass


def init_from_config(workspace_id: str, print_url: bool = True) -> GqlApi:
    server, token = get_graphql_server(workspace_id)
    if print_url:
        logging.info(f"using gql endpoint {server}")
    return init(server, token, workspace_id)


def get_api() -> GqlApi:
    return GqlApiSingleton.instance()
