from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from pydantic import BaseModel, ValidationError

from toolpipe.core.errors import ArgumentValidationError, ConfigError, ToolError
from toolpipe.core.types import ToolCallRequest, ToolCallResult, ToolDescriptor
from toolpipe.observability.logging import get_logger

M = TypeVar("M", bound=BaseModel)

ToolHandler = Callable[[Any], str]


@dataclass(frozen=True, slots=True)
class RegisteredTool:
    descriptor: ToolDescriptor
    input_model: type[BaseModel]
    handler: ToolHandler


def validate_arguments(input_model: type[M], arguments: Any) -> M:
    """Turn raw call arguments into the tool's typed input model.

    Raises ArgumentValidationError with a compact, model-readable message.
    """

    if not isinstance(arguments, dict):
        raise ArgumentValidationError(f"arguments must be an object, got {type(arguments).__name__}")
    try:
        return input_model.model_validate(arguments)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            loc = ".".join(str(p) for p in err.get("loc", ())) or "(root)"
            problems.append(f"{loc}: {err.get('msg', 'invalid')}")
        raise ArgumentValidationError("; ".join(problems), details={"errors": str(len(problems))}) from e


class ToolRegistry:
    """Explicit name -> tool table, filled by `register()` calls at startup."""

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}
        self._log = get_logger("toolpipe.registry")

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def register(self, descriptor: ToolDescriptor, handler: ToolHandler, *, input_model: type[BaseModel]) -> None:
        if not descriptor.name:
            raise ConfigError("tool name must be a non-empty string")
        if descriptor.name in self._tools:
            raise ConfigError(f"tool {descriptor.name!r} is already registered")
        self._tools[descriptor.name] = RegisteredTool(descriptor=descriptor, input_model=input_model, handler=handler)

    def list(self) -> list[ToolDescriptor]:  # noqa: A003
        """Descriptors in registration order."""
        return [t.descriptor for t in self._tools.values()]

    def dispatch(self, request: ToolCallRequest) -> ToolCallResult:
        """Run one call. Never raises: every failure becomes an `is_error` result."""

        tool = self._tools.get(request.name)
        if tool is None:
            self._log.info("tool_not_found", request_id=request.id, tool=request.name)
            return ToolCallResult.from_text(request.id, f"unknown tool: {request.name}", is_error=True)

        try:
            params = validate_arguments(tool.input_model, request.arguments)
        except ArgumentValidationError as e:
            self._log.info("tool_invalid_arguments", request_id=request.id, tool=request.name, error=e.message)
            return ToolCallResult.from_text(request.id, f"invalid arguments: {e.message}", is_error=True)

        try:
            out = tool.handler(params)
        except ToolError as e:
            self._log.info("tool_rejected", request_id=request.id, tool=request.name, error=e.message)
            return ToolCallResult.from_text(request.id, e.message, is_error=True)
        except Exception as e:  # noqa: BLE001
            self._log.exception("tool_error", request_id=request.id, tool=request.name)
            return ToolCallResult.from_text(request.id, f"tool failed: {type(e).__name__}: {e}", is_error=True)

        self._log.info("tool_ok", request_id=request.id, tool=request.name)
        return ToolCallResult.from_text(request.id, str(out))
