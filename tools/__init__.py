"""Tools - the named operations the model can call.

Every tool is an async handler over a pydantic input model, registered by
name. Mutating tools follow the preview/confirm contract: ``confirmed=false``
returns a preview and never writes; ``confirmed=true`` applies.

Usage:
    from tools import ToolContext, get_registry

    registry = get_registry()
    spec = registry.get("addIncome")
    params = spec.input_model.model_validate(raw_parameters)
    result = await spec.handler(ctx, params)
"""

from tools.contract import (
    CLEAR,
    ToolContext,
    ToolResult,
    ToolStatus,
    compute_diff,
    compute_version_token,
    run_create,
    run_delete,
    run_update,
)
from tools.registry import (
    MutatingInput,
    ToolInput,
    ToolRegistry,
    ToolSpec,
    get_registry,
    tool,
)

__all__ = [
    # Contract
    "CLEAR",
    "ToolContext",
    "ToolResult",
    "ToolStatus",
    "compute_diff",
    "compute_version_token",
    "run_create",
    "run_delete",
    "run_update",
    # Registry
    "MutatingInput",
    "ToolInput",
    "ToolRegistry",
    "ToolSpec",
    "get_registry",
    "tool",
]
