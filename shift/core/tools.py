from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from .middleware import Middleware, ToolContext, chain


class ToolSpec(BaseModel):
    name: str
    description: str
    input_schema: Dict[str, Any]  # {"parameters": <JSON schema>} or empty


Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass
class Tool:
    """A named capability. When input_model is set, args are validated and coerced first."""

    spec: ToolSpec
    handler: Handler
    input_model: Optional[Type[BaseModel]] = None

    @property
    def name(self) -> str:
        return self.spec.name

    def parameters(self) -> Optional[Dict[str, Any]]:
        declared = self.spec.input_schema or {}
        if "parameters" in declared or "properties" in declared:
            return None
        if self.input_model is None:
            return None
        schema = self.input_model.model_json_schema()
        return {
            "type": "object",
            "properties": schema.get("properties") or {},
            "required": schema.get("required") or [],
        }


def _failure(code: str, message: str) -> Dict[str, Any]:
    return {"success": False, "error": message, "error_detail": {"code": code, "message": message}}


def _normalize(result: Any) -> Dict[str, Any]:
    if not isinstance(result, dict):
        return {"success": True, "result": result}
    out = dict(result)
    if "error" in out:
        out["success"] = False
        out.setdefault("error_detail", {"code": "error", "message": str(out["error"])})
    else:
        out["success"] = True
    return out


class ToolRegistry:
    """Capability table for one session; every call result carries a ``success`` flag.

    Calls never raise: unknown names, invalid arguments and handler exceptions all
    come back as ``{"success": False, "error": ..., "error_detail": {...}}`` so the
    model can read what went wrong.
    """

    def __init__(self, middlewares: Optional[List[Middleware]] = None):
        self._tools: Dict[str, Tool] = {}
        self._middlewares: List[Middleware] = list(middlewares or [])

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def add_middleware(self, mw: Middleware) -> None:
        self._middlewares.append(mw)

    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def call(
        self, name: str, args: Dict[str, Any], context: Optional[ToolContext] = None
    ) -> Dict[str, Any]:
        tool = self._tools.get(name)
        if tool is None:
            return _failure("not_found", f"Tool '{name}' not found")

        args = args or {}
        if tool.input_model is not None:
            try:
                args = tool.input_model(**args).model_dump()
            except ValidationError as ve:
                failure = _failure("validation", f"Validation failed: {ve.errors()}")
                failure["error_detail"]["message"] = str(ve)
                return failure

        async def invoke(call_args: Dict[str, Any], _ctx: Optional[ToolContext]) -> Any:
            return await tool.handler(call_args)

        try:
            result = await chain(name, invoke, self._middlewares)(args, context)
        except Exception as e:
            return _failure("execution_error", f"Tool execution failed: {e}")
        return _normalize(result)

    def list_specs(self) -> List[Dict[str, Any]]:
        """Specs as handed to the LLM; parameters come from the input model when not declared."""
        specs = []
        for tool in self._tools.values():
            spec = tool.spec.model_dump()
            derived = tool.parameters()
            if derived is not None:
                spec["input_schema"] = {"parameters": derived}
            specs.append(spec)
        return specs
