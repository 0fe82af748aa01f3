"""Orchestration Dispatcher - the single entry point for tool calls.

Both the text-chat loop and the voice agent's function-call handler go
through ``Dispatcher.dispatch``. The dispatcher is a trust and failure
boundary:

- the caller-supplied ``userId`` is always replaced by the session user
- the effective owner (team or user) is resolved once, here
- parameters are validated against the tool's input model before execution
- no exception escapes; every outcome is a JSON-shaped dict
"""

import time
import uuid
from typing import Any, Dict, Optional

from pydantic import ValidationError

from core.config import AppSettings, get_settings
from core.errors import DatastoreError, ErrorKind
from core.observability.logging import get_logger, log_tool_complete, log_tool_start, with_correlation
from core.observability.metrics import get_metrics
from storage.db import Datastore
from storage.owners import resolve_effective_owner
from tools.contract import ToolContext, ToolResult, ToolStatus
from tools.registry import ToolRegistry, get_registry


logger = get_logger(__name__)

TOOL_FAILED_MESSAGE = "Tool execution failed"


def _validation_errors(exc: ValidationError) -> list:
    return [
        {
            "field": ".".join(str(part) for part in err["loc"]),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]


class Dispatcher:
    """Routes ``(tool_name, raw_parameters)`` to a registered tool."""

    def __init__(
        self,
        store: Datastore,
        registry: Optional[ToolRegistry] = None,
        settings: Optional[AppSettings] = None,
        email_client: Any = None,
    ):
        self.store = store
        self.registry = registry or get_registry()
        self.settings = settings or get_settings()
        self.email_client = email_client
        self.metrics = get_metrics()

    async def dispatch(
        self,
        tool_name: str,
        raw_parameters: Optional[Dict[str, Any]],
        user_id: str,
        channel: str = "api",
        call_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Execute one tool call and return its result payload.

        Args:
            tool_name: registered tool name, as chosen by the model
            raw_parameters: model-generated arguments (untrusted)
            user_id: authenticated session user; the only identity used
            channel: ``chat``, ``voice`` or ``api`` (for logs)
        """
        call_id = call_id or uuid.uuid4().hex[:12]
        start = time.perf_counter()

        with with_correlation(tool_name=tool_name, call_id=call_id, user_id=user_id, channel=channel):
            result = await self._execute(tool_name, raw_parameters, user_id)

            duration_ms = (time.perf_counter() - start) * 1000
            status = result.get("status", ToolStatus.ERROR.value)
            self.metrics.record_tool_call(tool_name, status, duration_ms)
            log_tool_complete(tool_name, status, duration_ms)
            return result

    async def _execute(self, tool_name: str, raw_parameters: Optional[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
        spec = self.registry.get(tool_name)
        if spec is None:
            logger.warning("Unknown tool requested")
            return ToolResult.not_found("Tool", message=f'Tool "{tool_name}" not found').to_payload()

        if not isinstance(raw_parameters, dict):
            raw_parameters = {}
        # Model output never asserts identity
        parameters = {k: v for k, v in raw_parameters.items() if k not in ("userId", "user_id")}
        parameters["userId"] = user_id

        try:
            params = spec.input_model.model_validate(parameters)
        except ValidationError as e:
            errors = _validation_errors(e)
            logger.info("Tool parameters rejected", extra_fields={"errors": errors})
            return ToolResult.error(
                "Invalid parameters",
                ErrorKind.VALIDATION_FAILURE,
                errors=errors,
            ).to_payload()

        try:
            owner_id = resolve_effective_owner(self.store, user_id)
        except DatastoreError:
            logger.exception("Could not resolve effective owner")
            return ToolResult.persistence_failure().to_payload()

        ctx = ToolContext(
            store=self.store,
            user_id=user_id,
            owner_id=owner_id,
            settings=self.settings,
            email_client=self.email_client,
        )

        with with_correlation(owner_id=owner_id):
            log_tool_start(tool_name, confirmed=getattr(params, "confirmed", None))
            try:
                result = await spec.handler(ctx, params)
            except Exception:
                logger.exception("Tool raised")
                return ToolResult.error(TOOL_FAILED_MESSAGE, ErrorKind.INTERNAL).to_payload()

        return result.to_payload()
