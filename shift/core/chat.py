"""Session-scoped tool-invoking chat pipeline."""

import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from ..config.prompts import MAX_STEPS_MESSAGE, SOLANA_AGENT_PROMPT, TOOL_ERROR_GUIDANCE
from .errors import MissingParameter, ModelInvocationError, ShiftError
from .llm_provider import ChatResponse, LLMProvider
from .middleware import ToolContext
from .session import Session, SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 10
DEFAULT_TEMPERATURE = 0.7


def _serialize_result(result: Any) -> str:
    return json.dumps(result, default=str) if isinstance(result, dict) else str(result)


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw or "{}")
    except (TypeError, json.JSONDecodeError) as e:
        logger.error(f"Failed to parse tool arguments as JSON: {e}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class ChatPipeline:
    """Runs one bounded model/tool loop per chat message against a wallet's session."""

    def __init__(
        self,
        registry: SessionRegistry,
        llm: LLMProvider,
        system_prompt: str = SOLANA_AGENT_PROMPT,
        max_steps: int = DEFAULT_MAX_STEPS,
        temperature: float = DEFAULT_TEMPERATURE,
    ):
        self.registry = registry
        self.llm = llm
        self.system_prompt = system_prompt
        self.max_steps = max_steps
        self.temperature = temperature
        self.tool_callback: Optional[Callable[[str, Dict[str, Any]], None]] = None

    def _prepare(
        self, wallet_key: Optional[str], message: Optional[str]
    ) -> Tuple[Session, List[Dict[str, Any]]]:
        missing = []
        if not (isinstance(message, str) and message.strip()):
            missing.append("message")
        if not (isinstance(wallet_key, str) and wallet_key.strip()):
            missing.append("publicKey")
        if missing:
            raise MissingParameter(*missing)

        # Resolved once: a re-init during this exchange does not rebind its tools
        session = self.registry.require(wallet_key)
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": message},
        ]
        return session, messages

    async def _invoke(self, session: Session, messages: List[Dict[str, Any]]) -> ChatResponse:
        try:
            # Pass a copy; the transcript keeps growing after the call
            return await self.llm.chat_completion(
                list(messages), tools=session.tools.list_specs(), temperature=self.temperature
            )
        except ShiftError:
            raise
        except Exception as e:
            logger.error(f"Model invocation failed: {e}")
            raise ModelInvocationError(f"Model invocation failed: {e}")

    async def _dispatch_tools(
        self,
        session: Session,
        resp: ChatResponse,
        messages: List[Dict[str, Any]],
        step: int,
    ) -> None:
        """Run the step's tool calls one after another and append their results."""
        messages.append(
            {"role": "assistant", "content": resp.content or "", "tool_calls": resp.tool_calls}
        )

        guidance: List[str] = []
        for call in resp.tool_calls:
            function = call.get("function", {})
            tool_name = function.get("name", "")
            tool_args = _parse_arguments(function.get("arguments"))
            tool_call_id = call.get("id", "")

            logger.info(f"Calling tool: {tool_name} (wallet {session.wallet_key}, step {step})")
            if self.tool_callback:
                self.tool_callback(tool_name, tool_args)

            result = await session.tools.call(
                tool_name, tool_args, context=ToolContext(wallet_key=session.wallet_key, step=step)
            )

            if not result.get("success", True):
                error_msg = str(result.get("error", "Unknown error"))
                logger.warning(f"Tool {tool_name} returned error: {error_msg}")
                guidance.append(TOOL_ERROR_GUIDANCE.format(message=error_msg))

            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": tool_call_id,
                    "name": tool_name,
                    "content": _serialize_result(result),
                }
            )

        # Tool messages must directly follow the assistant turn that requested them
        for text in guidance:
            messages.append({"role": "system", "content": text})

    async def chat(self, wallet_key: Optional[str], message: Optional[str]) -> str:
        """Buffered chat: run the loop and return the model's final answer."""
        session, messages = self._prepare(wallet_key, message)
        logger.info(f"Processing message for {session.wallet_key}")
        with self.registry.hold(session):
            return await self._run_steps(session, messages)

    async def _run_steps(self, session: Session, messages: List[Dict[str, Any]]) -> str:
        last_text = ""
        for step in range(1, self.max_steps + 1):
            logger.debug(f"Chat step {step} for {session.wallet_key}")
            resp = await self._invoke(session, messages)
            if resp.usage:
                logger.debug(f"LLM usage: {resp.usage}")
            if resp.content:
                last_text = resp.content

            if not resp.tool_calls:
                logger.info(f"AI response generated for {session.wallet_key}")
                return resp.content or "No response generated"

            await self._dispatch_tools(session, resp, messages, step)

        logger.warning(f"Chat hit max steps ({self.max_steps}) for {session.wallet_key}")
        return last_text or MAX_STEPS_MESSAGE

    def stream(self, wallet_key: Optional[str], message: Optional[str]) -> AsyncIterator[str]:
        """Streaming chat: validate now, then yield text fragments as the model produces them."""
        session, messages = self._prepare(wallet_key, message)
        logger.info(f"Streaming message for {session.wallet_key}")
        return self._stream_steps(session, messages)

    async def _stream_steps(
        self, session: Session, messages: List[Dict[str, Any]]
    ) -> AsyncIterator[str]:
        with self.registry.hold(session):
            async for fragment in self._stream_held(session, messages):
                yield fragment

    async def _stream_held(
        self, session: Session, messages: List[Dict[str, Any]]
    ) -> AsyncIterator[str]:
        emitted = False
        for step in range(1, self.max_steps + 1):
            final: Optional[ChatResponse] = None
            try:
                async for event in self.llm.stream_completion(
                    list(messages), tools=session.tools.list_specs(), temperature=self.temperature
                ):
                    if isinstance(event, ChatResponse):
                        final = event
                    elif event:
                        emitted = True
                        yield event
            except ShiftError:
                raise
            except Exception as e:
                logger.error(f"Model invocation failed: {e}")
                raise ModelInvocationError(f"Model invocation failed: {e}")

            if final is None:
                raise ModelInvocationError("Model stream ended without a final response")
            if not final.tool_calls:
                if not emitted:
                    yield "No response generated"
                return

            await self._dispatch_tools(session, final, messages, step)

        logger.warning(f"Chat stream hit max steps ({self.max_steps}) for {session.wallet_key}")
        if not emitted:
            yield MAX_STEPS_MESSAGE
