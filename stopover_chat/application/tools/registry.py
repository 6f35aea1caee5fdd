from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from stopover_chat.application.exceptions import ValidationError
from stopover_chat.application.tools.context import ToolContext
from stopover_chat.application.tools.definitions import TOOL_DEFINITIONS, ToolArgs, ToolDefinition
from stopover_chat.domain.entities.tool_result import ToolResult
from stopover_chat.domain.pricing import MAX_STOPOVER_NIGHTS


def _format_errors(exc: PydanticValidationError) -> list[str]:
    details = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "arguments"
        details.append(f"{location}: {err.get('msg', 'invalid value')}")
    return details


class ToolRegistry:
    """Closed set of booking tools the model may call.

    Guarantees:
    - validate() raises ValidationError for unknown tools and bad arguments
    - run() never raises; every failure comes back as ToolResult(success=False)
    - execute functions see a read-only ToolContext and never persist anything
    """

    def __init__(
        self,
        definitions: tuple[ToolDefinition, ...] = TOOL_DEFINITIONS,
        max_nights: int = MAX_STOPOVER_NIGHTS,
    ) -> None:
        self._tools = {d.name.value: d for d in definitions}
        self._max_nights = max_nights
        self._logger = logging.getLogger(__name__)

    @property
    def max_nights(self) -> int:
        return self._max_nights

    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def schemas(self) -> list[dict[str, Any]]:
        """OpenAI-style function tool schemas, one per tool."""
        schemas = []
        for definition in self._tools.values():
            parameters = definition.args_model.model_json_schema()
            parameters.pop("title", None)
            duration = parameters.get("properties", {}).get("duration")
            if duration is not None:
                duration["maximum"] = self._max_nights
            schemas.append(
                {
                    "type": "function",
                    "function": {
                        "name": definition.name.value,
                        "description": definition.description,
                        "parameters": parameters,
                    },
                }
            )
        return schemas

    def validate(self, name: str, raw_args: str | dict[str, Any] | None) -> ToolArgs:
        definition = self.get(name)
        if definition is None:
            raise ValidationError(f"Unknown tool '{name}'", details=[f"known tools: {', '.join(self.names())}"])

        if raw_args is None or raw_args == "":
            payload: Any = {}
        elif isinstance(raw_args, str):
            try:
                payload = json.loads(raw_args)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Arguments for '{name}' are not valid JSON", details=[str(e)]) from e
        else:
            payload = raw_args
        if not isinstance(payload, dict):
            raise ValidationError(f"Arguments for '{name}' must be a JSON object")

        try:
            return definition.args_model.model_validate(payload, context={"max_nights": self._max_nights})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid arguments for '{name}'", details=_format_errors(e)) from e

    def run(self, name: str, raw_args: str | dict[str, Any] | None, context: ToolContext) -> ToolResult:
        try:
            args = self.validate(name, raw_args)
        except ValidationError as e:
            self._logger.warning("Tool arguments rejected", extra={"tool": name, "reason": str(e)})
            detail = "; ".join(e.details)
            return ToolResult.failure(
                message="I couldn't process that request. Could you try again?",
                error=f"{e}: {detail}" if detail else str(e),
            )

        definition = self._tools[name]
        try:
            result = definition.execute(args, context)
        except Exception as e:
            self._logger.exception("Tool execution failed", extra={"tool": name})
            return ToolResult.failure(
                message="Something went wrong while updating your booking. Please try again.",
                error=f"{type(e).__name__}: {e}",
            )

        if result.success and result.ui_component is not None and result.ui_component.type != definition.ui_type:
            self._logger.error(
                "Tool returned unexpected UI type",
                extra={"tool": name, "reason": result.ui_component.type},
            )
            return ToolResult.failure(
                message="Something went wrong while updating your booking. Please try again.",
                error=f"Tool '{name}' produced UI type '{result.ui_component.type}'",
            )
        return result
