"""Tool Registry.

A flat, explicit map from tool name to ``ToolSpec``. Each spec pairs a
pydantic input model (the parameter schema the model sees) with an async
handler ``(ToolContext, validated_input) -> ToolResult``.

Tools register themselves with the ``tool`` decorator at import time:

    class AddClientInput(MutatingInput):
        name: str

    @tool("addClient", AddClientInput, "Create a client. Preview first.")
    async def add_client(ctx: ToolContext, params: AddClientInput) -> ToolResult:
        ...

``get_registry()`` imports every tool family and returns the populated
default registry.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tools.contract import ToolContext, ToolResult


# =============================================================================
# Input base models
# =============================================================================

class ToolInput(BaseModel):
    """Base for every tool's parameters (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    user_id: str = Field(..., description="User ID from session")


class MutatingInput(ToolInput):
    """Parameters shared by every state-changing tool."""
    confirmed: bool = Field(default=False, description="false=preview only, true=apply")
    version_token: Optional[str] = Field(
        default=None,
        description="versionToken from the preview; guards against applying a stale preview",
    )


Handler = Callable[[ToolContext, Any], Awaitable[ToolResult]]


@dataclass
class ToolSpec:
    """One named tool."""
    name: str
    description: str
    input_model: Type[ToolInput]
    handler: Handler

    @property
    def mutating(self) -> bool:
        return issubclass(self.input_model, MutatingInput)

    def parameters_schema(self) -> Dict[str, Any]:
        return self.input_model.model_json_schema(by_alias=True)

    def openai_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema(),
            },
        }

    def agent_function(self) -> Dict[str, Any]:
        """Function definition for the voice agent's Settings handshake."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema(),
        }


class ToolRegistry:
    """Name -> ToolSpec map."""

    def __init__(self):
        self._tools: Dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> ToolSpec:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec
        return spec

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> List[str]:
        return sorted(self._tools)

    def specs(self, names: Optional[Iterable[str]] = None) -> List[ToolSpec]:
        if names is None:
            return [self._tools[n] for n in self.names()]
        return [self._tools[n] for n in names if n in self._tools]

    def openai_tools(self, names: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        return [spec.openai_schema() for spec in self.specs(names)]

    def agent_functions(self, names: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        return [spec.agent_function() for spec in self.specs(names)]


_default_registry = ToolRegistry()


def tool(name: str, input_model: Type[ToolInput], description: str):
    """Register an async handler in the default registry."""
    def decorator(handler: Handler) -> Handler:
        _default_registry.register(ToolSpec(
            name=name,
            description=description.strip(),
            input_model=input_model,
            handler=handler,
        ))
        return handler
    return decorator


def get_registry() -> ToolRegistry:
    """Default registry with every tool family loaded."""
    import tools.income  # noqa: F401
    import tools.expenses  # noqa: F401
    import tools.clients  # noqa: F401
    import tools.vendors  # noqa: F401
    import tools.categories  # noqa: F401
    import tools.invoices  # noqa: F401
    import tools.projects  # noqa: F401

    return _default_registry
