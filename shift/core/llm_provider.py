import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Union

import aiohttp

from ..config.settings import Settings
from ..utils.http_client import get_session
from .errors import ModelInvocationError

logger = logging.getLogger(__name__)

Messages = List[Dict[str, Any]]
ToolSpecs = Optional[List[Dict[str, Any]]]


class ChatResponse:
    """One assistant turn: text plus any OpenAI-shaped tool calls."""

    def __init__(
        self,
        content: str,
        tool_calls: Optional[List[Dict[str, Any]]] = None,
        usage: Optional[Dict[str, Any]] = None,
    ):
        self.content = content
        self.tool_calls = tool_calls or []
        self.usage = usage or {}


StreamEvent = Union[str, ChatResponse]


def _tool_parameters(tool: Dict[str, Any]) -> Dict[str, Any]:
    """JSON schema of a registry tool spec, whether nested under "parameters" or not."""
    schema = tool.get("input_schema")
    if not isinstance(schema, dict):
        return {"type": "object", "properties": {}}
    schema = schema.get("parameters", schema)
    return schema if "type" in schema else {"type": "object", **schema}


class LLMProvider:
    label = "LLM"

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url

    async def close(self):
        # The shared HTTP client owns the connections
        pass

    async def chat_completion(
        self, messages: Messages, tools: ToolSpecs = None, temperature: Optional[float] = None
    ) -> ChatResponse:
        raise NotImplementedError

    async def stream_completion(
        self, messages: Messages, tools: ToolSpecs = None, temperature: Optional[float] = None
    ) -> AsyncIterator[StreamEvent]:
        """Yield text fragments, then exactly one final ChatResponse.

        Without native streaming the buffered text arrives as a single fragment.
        """
        resp = await self.chat_completion(messages, tools=tools, temperature=temperature)
        if resp.content:
            yield resp.content
        yield resp

    @asynccontextmanager
    async def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]):
        """POST and yield a 200 response; every transport failure becomes ModelInvocationError."""
        logger.debug(f"{self.label} request to {url}")
        try:
            session = await get_session()
            async with session.post(url, headers=headers, json=payload) as response:
                if response.status != 200:
                    body = await response.text()
                    logger.error(f"{self.label} API error {response.status}: {body}")
                    raise ModelInvocationError(f"{self.label} API error {response.status}: {body}")
                yield response
        except aiohttp.ClientError as e:
            logger.error(f"{self.label} request failed: {e}")
            raise ModelInvocationError(f"Network error: {e}")
        except json.JSONDecodeError as e:
            logger.error(f"{self.label} returned invalid JSON: {e}")
            raise ModelInvocationError(f"Invalid JSON response: {e}")


class _ToolCallAccumulator:
    """Rebuilds complete tool calls from streamed deltas, which arrive keyed by index."""

    def __init__(self):
        self._slots: Dict[int, Dict[str, Any]] = {}

    def feed(self, delta: Dict[str, Any]) -> None:
        index = delta.get("index", len(self._slots))
        slot = self._slots.get(index)
        if slot is None:
            slot = {"id": "", "type": "function", "function": {"name": "", "arguments": ""}}
            self._slots[index] = slot
        if delta.get("id"):
            slot["id"] = delta["id"]
        fn = delta.get("function") or {}
        slot["function"]["name"] += fn.get("name") or ""
        slot["function"]["arguments"] += fn.get("arguments") or ""

    def calls(self) -> List[Dict[str, Any]]:
        return [self._slots[i] for i in sorted(self._slots)]


async def _sse_data(response: aiohttp.ClientResponse) -> AsyncIterator[Dict[str, Any]]:
    async for raw in response.content:
        line = raw.decode("utf-8").strip()
        if not line.startswith("data:"):
            continue
        data = line[5:].strip()
        if data == "[DONE]":
            return
        yield json.loads(data)


class OpenAICompatibleProvider(LLMProvider):
    """OpenAI chat completions, or any server speaking the same protocol."""

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None):
        super().__init__(api_key, model, base_url or "https://api.openai.com/v1")

    @property
    def _url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _payload(
        self, messages: Messages, tools: ToolSpecs, temperature: Optional[float]
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": self.model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature
        if tools:
            payload["tool_choice"] = "auto"
            payload["tools"] = []
            for tool in tools:
                function = {
                    "name": tool["name"],
                    "description": tool["description"],
                    "parameters": _tool_parameters(tool),
                }
                payload["tools"].append({"type": "function", "function": function})
        return payload

    async def chat_completion(
        self, messages: Messages, tools: ToolSpecs = None, temperature: Optional[float] = None
    ) -> ChatResponse:
        payload = self._payload(messages, tools, temperature)
        async with self._post(self._url, self._headers(), payload) as response:
            data = await response.json()

        choices = data.get("choices") or []
        if not choices:
            raise ModelInvocationError("No choices in LLM response")

        message = choices[0].get("message") or {}
        content = message.get("content")
        result = ChatResponse(
            content=content if isinstance(content, str) else "",
            tool_calls=message.get("tool_calls") or [],
            usage=data.get("usage") or {},
        )
        logger.debug(f"LLM answered: {len(result.content)} chars, {len(result.tool_calls)} tool calls")
        return result

    async def stream_completion(
        self, messages: Messages, tools: ToolSpecs = None, temperature: Optional[float] = None
    ) -> AsyncIterator[StreamEvent]:
        payload = self._payload(messages, tools, temperature)
        payload["stream"] = True
        payload["stream_options"] = {"include_usage": True}

        text: List[str] = []
        pending = _ToolCallAccumulator()
        usage: Dict[str, Any] = {}

        async with self._post(self._url, self._headers(), payload) as response:
            async for chunk in _sse_data(response):
                usage = chunk.get("usage") or usage
                for choice in chunk.get("choices") or []:
                    delta = choice.get("delta") or {}
                    fragment = delta.get("content")
                    if fragment:
                        text.append(fragment)
                        yield fragment
                    for call_delta in delta.get("tool_calls") or []:
                        pending.feed(call_delta)

        yield ChatResponse(content="".join(text), tool_calls=pending.calls(), usage=usage)


def _tool_use_block(call: Dict[str, Any]) -> Dict[str, Any]:
    fn = call.get("function") or {}
    arguments = fn.get("arguments")
    if isinstance(arguments, str):
        arguments = json.loads(arguments or "{}")
    return {
        "type": "tool_use",
        "id": call.get("id") or fn.get("name"),
        "name": fn.get("name"),
        "input": arguments or {},
    }


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API. The chat loop speaks OpenAI shapes; this class translates."""

    label = "Anthropic"
    API_VERSION = "2023-06-01"
    MAX_TOKENS = 4000

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None):
        super().__init__(api_key, model, base_url or "https://api.anthropic.com")

    @property
    def _url(self) -> str:
        base = self.base_url.rstrip("/")
        return f"{base}/messages" if base.endswith("/v1") else f"{base}/v1/messages"

    def _format_tools(self, tools: ToolSpecs) -> Optional[List[Dict[str, Any]]]:
        if not tools:
            return None
        return [
            {
                "name": t.get("name"),
                "description": t.get("description"),
                "input_schema": _tool_parameters(t),
            }
            for t in tools
        ]

    def _convert_messages(self, messages: Messages) -> Tuple[Optional[str], Messages]:
        """Pull system text out, and fold each run of tool results into one user turn."""
        system: List[str] = []
        converted: Messages = []
        results: List[Dict[str, Any]] = []

        def flush_results():
            if results:
                converted.append({"role": "user", "content": list(results)})
                results.clear()

        for msg in messages:
            role = msg.get("role")
            if role == "tool":
                results.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": msg.get("tool_call_id"),
                        "content": msg.get("content", ""),
                    }
                )
                continue

            flush_results()
            if role == "system":
                system.append(str(msg.get("content") or ""))
            elif role == "user":
                converted.append(
                    {"role": "user", "content": [{"type": "text", "text": str(msg.get("content") or "")}]}
                )
            elif role == "assistant":
                blocks = [{"type": "text", "text": str(msg["content"])}] if msg.get("content") else []
                blocks.extend(_tool_use_block(c) for c in msg.get("tool_calls") or [])
                if blocks:
                    converted.append({"role": "assistant", "content": blocks})
        flush_results()

        return "\n".join(p for p in system if p) or None, converted

    async def chat_completion(
        self, messages: Messages, tools: ToolSpecs = None, temperature: Optional[float] = None
    ) -> ChatResponse:
        system, converted = self._convert_messages(messages)
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": converted,
            "max_tokens": self.MAX_TOKENS,
        }
        if system:
            payload["system"] = system
        if temperature is not None:
            payload["temperature"] = temperature
        formatted = self._format_tools(tools)
        if formatted:
            payload["tools"] = formatted

        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.API_VERSION,
            "content-type": "application/json",
        }
        async with self._post(self._url, headers, payload) as response:
            data = await response.json()

        text: List[str] = []
        tool_calls: List[Dict[str, Any]] = []
        for block in data.get("content") or []:
            kind = block.get("type")
            if kind == "text" and block.get("text"):
                text.append(block["text"])
            elif kind == "tool_use":
                tool_calls.append(
                    {
                        "id": block.get("id"),
                        "type": "function",
                        "function": {
                            "name": block.get("name"),
                            "arguments": json.dumps(block.get("input") or {}),
                        },
                    }
                )
        usage = data.get("usage") or {}
        return ChatResponse(content="\n".join(text), tool_calls=tool_calls, usage=usage)


def create_llm_provider(settings: type = Settings) -> LLMProvider:
    provider = settings.LLM_PROVIDER
    if provider == "anthropic":
        return AnthropicProvider(
            settings.ANTHROPIC_API_KEY or "", settings.ANTHROPIC_MODEL, settings.ANTHROPIC_BASE_URL
        )

    if provider not in ("openai", "openai_compat"):
        logger.warning(f"Unknown LLM_PROVIDER '{provider}', using the OpenAI-compatible provider")
    return OpenAICompatibleProvider(
        settings.OPENAI_API_KEY, settings.OPENAI_MODEL, settings.OPENAI_BASE_URL
    )
