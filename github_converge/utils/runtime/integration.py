from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Generic,
    TypeVar,
)

from pydantic import BaseModel

PydanticRunParamsSelfTypeVar = TypeVar(
    "PydanticRunParamsSelfTypeVar", bound="PydanticRunParams"
)


class PydanticRunParams(BaseModel):
    """
    Container for the parameters an integration needs to run, validated
    based on type hints.
    """

    def copy_and_update(
        self: PydanticRunParamsSelfTypeVar, update: dict[str, Any]
    ) -> PydanticRunParamsSelfTypeVar:
        return self.model_copy(update=update)

    def get(self, field: str) -> Any:
        return getattr(self, field)


RunParamsTypeVar = TypeVar("RunParamsTypeVar", bound=PydanticRunParams)


class ConvergeIntegration(ABC, Generic[RunParamsTypeVar]):
    """
    The base class for all integrations. It defines the basic interface to
    interact with an integration.
    """

    def __init__(self, params: RunParamsTypeVar) -> None:
        self.params: RunParamsTypeVar = params

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def run(self, dry_run: bool) -> None:
        """
        The entry point to the integration's functionality. It must not change
        anything when `dry_run` is set, but should progress as far as possible
        to highlight any issues that would prevent a real run.
        """
