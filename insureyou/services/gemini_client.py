"""Gemini LLM client abstraction with protocol-based swappable implementations.

Production code uses ``GeminiClient`` which wraps the ``google-genai`` SDK's
native async API (``client.aio.models``).  Tests use ``InMemoryLLMClient``
which captures calls and returns configurable canned output without
requiring the SDK or network access.

Two generation modes are supported:

* ``generate`` -- one call with the fully assembled context, returning text.
* ``stream`` -- an async iterator of ``GenerationChunk`` values.  The model
  may call the supplied tools; each step streams one model turn, then runs
  that turn's function calls one at a time and feeds the results back, until
  the model answers without calling a tool or ``max_steps`` is reached.

The ``google.genai`` import is lazy so this module loads without the SDK
installed -- following the same pattern used by the other provider adapters.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import structlog

from insureyou.errors import GenerationFault
from insureyou.services.serialization import to_jsonable

logger = structlog.get_logger()

ChunkKind = Literal["text", "reasoning", "tool-call", "tool-result"]


@dataclass
class ToolSpec:
    """A tool the model may call with a single ``query`` string argument."""

    name: str
    description: str
    handler: Callable[[str], Awaitable[Any]]
    query_description: str = "The search query."


@dataclass
class GenerationChunk:
    """One increment of streamed generation output."""

    kind: ChunkKind
    delta: str = ""
    tool_call_id: str | None = None
    tool_name: str | None = None
    payload: Any = field(default=None)


class LLMClient(Protocol):
    """Protocol for LLM generation in synchronous and streaming modes."""

    async def generate(self, system_prompt: str, messages: list[dict[str, str]]) -> str:
        """Return the completed assistant text for *messages*."""
        ...

    def stream(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        tools: dict[str, ToolSpec],
        max_steps: int,
    ) -> AsyncIterator[GenerationChunk]:
        """Yield text, reasoning and tool chunks for *messages*."""
        ...


def split_system_messages(
    system_prompt: str, messages: list[dict[str, str]]
) -> tuple[str, list[dict[str, str]]]:
    """Fold system-role messages into the system instruction.

    Gemini has no system role inside ``contents``, so retrieved-source
    summaries appended as system messages travel in the instruction instead.
    Messages with empty content are dropped.
    """
    system_blocks = [system_prompt]
    turns: list[dict[str, str]] = []
    for message in messages:
        if not message["content"]:
            continue
        if message["role"] == "system":
            system_blocks.append(message["content"])
        else:
            turns.append(message)
    return "\n\n".join(system_blocks), turns


async def run_tool(tools: dict[str, ToolSpec], name: str, args: dict[str, Any]) -> Any:
    """Invoke tool *name* with ``args["query"]``; failures become an error record."""
    tool = tools.get(name)
    if tool is None:
        return {"error": f"Unknown tool: {name}"}
    try:
        return to_jsonable(await tool.handler(str(args.get("query", ""))))
    except Exception as exc:
        logger.exception("tool_call_failed", tool=name)
        return {"error": str(exc)}


class GeminiClient:
    """Production Gemini client using google-genai SDK.

    Uses lazy imports so the module loads without the SDK installed.
    Uses ``client.aio`` for native async support (no ``asyncio.to_thread``).
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.2,
        max_output_tokens: int = 800,
        timeout_seconds: float = 30.0,
    ) -> None:
        from google import genai
        from google.genai import types

        self._client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
        )
        self._model = model
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens

    @staticmethod
    def _contents(turns: list[dict[str, str]]) -> list[Any]:
        from google.genai import types

        return [
            types.Content(
                role="model" if turn["role"] == "assistant" else "user",
                parts=[types.Part.from_text(text=turn["content"])],
            )
            for turn in turns
        ]

    async def generate(self, system_prompt: str, messages: list[dict[str, str]]) -> str:
        """Generate a single completed answer, returning the raw text.

        Raises:
            GenerationFault: If the model refused the prompt.
        """
        from google.genai import types

        instruction, turns = split_system_messages(system_prompt, messages)
        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=self._contents(turns),
            config=types.GenerateContentConfig(
                system_instruction=instruction,
                temperature=self._temperature,
                max_output_tokens=self._max_output_tokens,
            ),
        )
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None)
        if block_reason:
            raise GenerationFault(f"prompt blocked ({block_reason})")
        return response.text or ""

    def _tool_config(self, tools: dict[str, ToolSpec]) -> list[Any] | None:
        from google.genai import types

        if not tools:
            return None
        declarations = [
            types.FunctionDeclaration(
                name=tool.name,
                description=tool.description,
                parameters=types.Schema(
                    type=types.Type.OBJECT,
                    properties={
                        "query": types.Schema(
                            type=types.Type.STRING, description=tool.query_description
                        )
                    },
                    required=["query"],
                ),
            )
            for tool in tools.values()
        ]
        return [types.Tool(function_declarations=declarations)]

    async def stream(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        tools: dict[str, ToolSpec],
        max_steps: int,
    ) -> AsyncIterator[GenerationChunk]:
        """Stream a tool-using answer under a step budget."""
        from google.genai import types

        instruction, turns = split_system_messages(system_prompt, messages)
        contents = self._contents(turns)
        config = types.GenerateContentConfig(
            system_instruction=instruction,
            temperature=self._temperature,
            max_output_tokens=self._max_output_tokens,
            tools=self._tool_config(tools),
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
            thinking_config=types.ThinkingConfig(include_thoughts=True),
        )

        for step in range(max_steps):
            model_parts: list[Any] = []
            calls: list[Any] = []
            response_stream = await self._client.aio.models.generate_content_stream(
                model=self._model, contents=contents, config=config
            )
            async for chunk in response_stream:
                for candidate in chunk.candidates or []:
                    if candidate.content is None:
                        continue
                    for part in candidate.content.parts or []:
                        model_parts.append(part)
                        if part.function_call is not None:
                            calls.append(part.function_call)
                        elif part.text:
                            kind: ChunkKind = "reasoning" if part.thought else "text"
                            yield GenerationChunk(kind=kind, delta=part.text)

            if not calls:
                return

            contents.append(types.Content(role="model", parts=model_parts))
            response_parts = []
            # One call at a time, in call order.
            for index, call in enumerate(calls):
                call_id = call.id or f"call_{step}_{index}"
                args = dict(call.args or {})
                yield GenerationChunk(
                    kind="tool-call", tool_call_id=call_id, tool_name=call.name, payload=args
                )
                output = await run_tool(tools, call.name, args)
                yield GenerationChunk(
                    kind="tool-result", tool_call_id=call_id, tool_name=call.name, payload=output
                )
                response_parts.append(
                    types.Part.from_function_response(name=call.name, response={"result": output})
                )
            contents.append(types.Content(role="user", parts=response_parts))

        logger.warning("step_budget_exhausted", max_steps=max_steps)


class InMemoryLLMClient:
    """Test double that records calls and returns canned responses.

    ``tool_calls`` is a list of ``(tool_name, query)`` pairs replayed, one
    step each, before the canned answer is streamed.
    """

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.response: str = "test answer"
        self.stream_deltas: list[str] | None = None
        self.reasoning: list[str] = []
        self.tool_calls: list[tuple[str, str]] = []
        self.error: Exception | None = None

    async def generate(self, system_prompt: str, messages: list[dict[str, str]]) -> str:
        """Append call details and return the canned response."""
        self.calls.append({"mode": "sync", "system_prompt": system_prompt, "messages": messages})
        if self.error is not None:
            raise self.error
        return self.response

    async def stream(
        self,
        system_prompt: str,
        messages: list[dict[str, str]],
        tools: dict[str, ToolSpec],
        max_steps: int,
    ) -> AsyncIterator[GenerationChunk]:
        """Replay tool calls within the step budget, then stream the answer."""
        self.calls.append(
            {
                "mode": "stream",
                "system_prompt": system_prompt,
                "messages": messages,
                "tools": sorted(tools),
                "max_steps": max_steps,
            }
        )
        if self.error is not None:
            raise self.error

        # The final answer needs a step of its own.
        for step, (name, query) in enumerate(self.tool_calls[: max(0, max_steps - 1)]):
            call_id = f"call_{step}"
            yield GenerationChunk(
                kind="tool-call", tool_call_id=call_id, tool_name=name, payload={"query": query}
            )
            output = await run_tool(tools, name, {"query": query})
            yield GenerationChunk(
                kind="tool-result", tool_call_id=call_id, tool_name=name, payload=output
            )

        for delta in self.reasoning:
            yield GenerationChunk(kind="reasoning", delta=delta)
        for delta in self.stream_deltas if self.stream_deltas is not None else [self.response]:
            yield GenerationChunk(kind="text", delta=delta)
