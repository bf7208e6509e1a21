"""Retrieval-and-response orchestration for one chat request.

Orchestrates: validate -> moderate -> retrieve -> (web fallback) -> assemble
context -> generate.  Every collaborator failure is contained at the stage
where it happens:

* moderation failure  -> treated as not flagged;
* retrieval failure   -> no matches, which activates the web fallback;
* web search failure  -> no web results;
* generation failure  -> explanatory assistant text.

Only an empty conversation (rejected by the router before we get here), a
message without text, and a moderation denial end the pipeline early.
Anything unexpected lands in ``INTERNAL_ERROR`` and still produces a
well-formed payload or stream.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

import structlog

from insureyou.prompts import MODERATION_DENIAL_MESSAGE_DEFAULT, SYSTEM_PROMPT
from insureyou.schemas.chat import (
    ChatMessage,
    ModerationVerdict,
    ResponsePayload,
    RetrievalMatch,
    WebSearchResult,
)
from insureyou.services.context import (
    augment_messages,
    build_summary,
    build_web_summary,
    latest_user_text,
)
from insureyou.services.gemini_client import LLMClient, ToolSpec
from insureyou.services.moderation import Moderator
from insureyou.services.retrieval import retrieve
from insureyou.services.serialization import (
    preview,
    safe_serialize,
    to_generation_messages,
    to_jsonable,
)
from insureyou.services.streaming import StreamEvent, StreamWriter
from insureyou.services.web_search import search_web

logger = structlog.get_logger()

MAX_STEP_BUDGET = 10

NO_USER_TEXT_MESSAGE = (
    "I couldn't find any text in your latest message. "
    "Please type your question and try again."
)
EMPTY_ANSWER_MESSAGE = (
    "I wasn't able to put together an answer this time. "
    "Could you try rephrasing your question?"
)
INTERNAL_ERROR_MESSAGE = "Internal server error"
STREAM_ERROR_PREFIX = "Sorry, something went wrong on the server: "
GENERATION_ERROR_PREFIX = "Assistant error: "

VECTOR_TOOL_NAME = "vectorDatabaseSearch"
WEB_TOOL_NAME = "webSearch"


class PipelineState(StrEnum):
    """Pipeline stages plus the short-circuit terminal states."""

    START = "start"
    VALIDATING = "validating"
    MODERATING = "moderating"
    RETRIEVING = "retrieving"
    FALLBACK_SEARCHING = "fallback_searching"
    ASSEMBLING = "assembling"
    GENERATING = "generating"
    DONE = "done"
    DENIED_BY_MODERATION = "denied_by_moderation"
    NO_USER_TEXT = "no_user_text"
    INTERNAL_ERROR = "internal_error"


@dataclass
class PipelineRun:
    """Per-request pipeline state; never shared between requests."""

    messages: list[ChatMessage]
    state: PipelineState = PipelineState.START
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.START])
    user_text: str = ""
    verdict: ModerationVerdict | None = None
    matches: list[RetrievalMatch] = field(default_factory=list)
    web_results: list[WebSearchResult] = field(default_factory=list)
    used_web_search: bool = False
    summary: str = ""
    augmented: list[ChatMessage] = field(default_factory=list)

    def advance(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug("pipeline_state", state=state.value)


@dataclass
class PipelineResult:
    """Synchronous outcome: the payload plus the state it ended in."""

    payload: ResponsePayload
    state: PipelineState


class ChatOrchestrator:
    """Sequences the collaborators for one deployment's generation mode.

    Collaborators may be ``None`` when not configured: no moderator skips the
    gate, no retriever behaves like an empty index, no web searcher leaves the
    fallback with nothing, and no LLM client switches to deterministic
    answers built from what retrieval found.
    """

    def __init__(
        self,
        *,
        moderator: Moderator | None,
        retriever: Any,
        web_searcher: Any,
        llm_client: LLMClient | None,
        mode: Literal["sync", "stream"] = "sync",
        system_prompt: str = SYSTEM_PROMPT,
        top_k: int = 5,
        namespace: str | None = None,
        web_results: int = 3,
        max_steps: int = MAX_STEP_BUDGET,
        max_chars_per_part: int = 15_000,
        preview_chars: int = 4_000,
    ) -> None:
        self.moderator = moderator
        self.retriever = retriever
        self.web_searcher = web_searcher
        self.llm_client = llm_client
        self.mode = mode
        self.system_prompt = system_prompt
        self.top_k = top_k
        self.namespace = namespace or None
        self.web_results = web_results
        self.max_steps = min(max(1, max_steps), MAX_STEP_BUDGET)
        self.max_chars_per_part = max_chars_per_part
        self.preview_chars = preview_chars

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _moderate(self, text: str) -> ModerationVerdict:
        if self.moderator is None:
            logger.info("moderation_unconfigured")
            return ModerationVerdict(flagged=False)
        try:
            return await self.moderator.classify(text)
        except Exception:
            logger.exception("moderation_failed")
            return ModerationVerdict(flagged=False)

    async def _retrieve(self, query: str) -> list[RetrievalMatch]:
        if self.retriever is None:
            logger.info("retrieval_unconfigured")
            return []
        matches = await retrieve(self.retriever, query, k=self.top_k, namespace=self.namespace)
        logger.info("retrieval_completed", matches=len(matches))
        return matches

    async def _web_search(self, query: str) -> list[WebSearchResult]:
        if self.web_searcher is None:
            logger.info("web_search_unconfigured")
            return []
        results = await search_web(self.web_searcher, query, num_results=self.web_results)
        logger.info("web_search_fallback", results=len(results))
        return results

    async def _prepare(self, run: PipelineRun) -> bool:
        """Run validation through context assembly.

        Returns ``False`` when the run ended in a short-circuit state.
        """
        run.advance(PipelineState.VALIDATING)
        run.user_text = latest_user_text(run.messages)
        if not run.user_text.strip():
            run.advance(PipelineState.NO_USER_TEXT)
            return False

        run.advance(PipelineState.MODERATING)
        run.verdict = await self._moderate(run.user_text)
        if run.verdict.flagged:
            logger.info("moderation_denied", categories=run.verdict.categories)
            run.advance(PipelineState.DENIED_BY_MODERATION)
            return False

        run.advance(PipelineState.RETRIEVING)
        run.matches = await self._retrieve(run.user_text)

        # Empty-result policy: any match at all, whatever its score, suppresses the fallback.
        if not run.matches:
            run.advance(PipelineState.FALLBACK_SEARCHING)
            run.used_web_search = True
            run.web_results = await self._web_search(run.user_text)

        run.advance(PipelineState.ASSEMBLING)
        run.summary = build_summary(run.matches) or build_web_summary(run.web_results)
        run.augmented = augment_messages(run.messages, run.summary)
        return True

    def _generation_messages(self, run: PipelineRun) -> list[dict[str, str]]:
        messages = to_generation_messages(run.augmented, self.max_chars_per_part)
        serialized = safe_serialize(
            {"system": self.system_prompt, "messages": messages}, self.max_chars_per_part
        )
        logger.info(
            "generation_payload_prepared",
            length=len(serialized),
            preview=preview(serialized, self.preview_chars),
        )
        return messages

    def _degraded_answer(self, run: PipelineRun) -> str:
        if run.matches:
            return (
                f"I found {len(run.matches)} document(s) that may help. "
                'See the "Sources" panel for direct download links and excerpts.'
            )
        if run.used_web_search:
            if run.web_results:
                return (
                    "I couldn't find relevant documents in the knowledge base, but web "
                    f"search returned {len(run.web_results)} result(s) that may help. "
                    "No assistant model is configured to summarise them."
                )
            return (
                "I couldn't find relevant documents in the knowledge base or on the web, "
                "and no assistant model is configured."
            )
        return (
            "No documents found and no assistant model is configured. "
            "Please set GEMINI_API_KEY on the server to get full assistant responses."
        )

    @staticmethod
    def _denial_text(run: PipelineRun) -> str:
        verdict = run.verdict or ModerationVerdict(flagged=True)
        return verdict.denial_message or MODERATION_DENIAL_MESSAGE_DEFAULT

    # ------------------------------------------------------------------
    # Synchronous mode
    # ------------------------------------------------------------------

    async def respond(self, messages: list[ChatMessage]) -> PipelineResult:
        """Run the full pipeline and return a single payload."""
        run = PipelineRun(messages=messages)
        try:
            if not await self._prepare(run):
                return self._short_circuit(run)

            run.advance(PipelineState.GENERATING)
            assistant_text = await self._generate(run)
            run.advance(PipelineState.DONE)
            return PipelineResult(
                payload=ResponsePayload(
                    matches=run.matches,
                    assistant_text=assistant_text,
                    used_web_search=run.used_web_search,
                    web_results=run.web_results,
                ),
                state=run.state,
            )
        except Exception as exc:
            logger.exception("pipeline_failed", state=run.state.value)
            run.advance(PipelineState.INTERNAL_ERROR)
            return PipelineResult(
                payload=ResponsePayload(
                    assistant_text=INTERNAL_ERROR_MESSAGE,
                    used_web_search=False,
                    error=str(exc) or type(exc).__name__,
                ),
                state=run.state,
            )

    def _short_circuit(self, run: PipelineRun) -> PipelineResult:
        if run.state is PipelineState.NO_USER_TEXT:
            payload = ResponsePayload(assistant_text=NO_USER_TEXT_MESSAGE, error="no user text")
        else:
            payload = ResponsePayload(assistant_text=self._denial_text(run), error="message flagged")
        return PipelineResult(payload=payload, state=run.state)

    async def _generate(self, run: PipelineRun) -> str:
        if self.llm_client is None:
            logger.info("generation_unconfigured", matches=len(run.matches))
            return self._degraded_answer(run)

        messages = self._generation_messages(run)
        try:
            text = await self.llm_client.generate(self.system_prompt, messages)
        except Exception as exc:
            logger.exception("generation_failed")
            return f"{GENERATION_ERROR_PREFIX}{exc}"
        return text.strip() or EMPTY_ANSWER_MESSAGE

    # ------------------------------------------------------------------
    # Streaming mode
    # ------------------------------------------------------------------

    def tool_registry(self) -> dict[str, ToolSpec]:
        """Tools the model may call to re-query during streaming generation."""

        async def search_documents(query: str) -> Any:
            matches = await self._retrieve(query)
            return [match.model_dump(mode="json") for match in matches]

        async def search_the_web(query: str) -> Any:
            results = await self._web_search(query)
            return [result.model_dump(mode="json", by_alias=True) for result in results]

        return {
            VECTOR_TOOL_NAME: ToolSpec(
                name=VECTOR_TOOL_NAME,
                description=(
                    "Search the vector database of life insurance documents and FAQs "
                    "for passages relevant to the query."
                ),
                handler=search_documents,
            ),
            WEB_TOOL_NAME: ToolSpec(
                name=WEB_TOOL_NAME,
                description=(
                    "Search the web for up-to-date, market-level or regulatory information "
                    "not found in the document database."
                ),
                handler=search_the_web,
            ),
        }

    async def stream(
        self, messages: list[ChatMessage], writer: StreamWriter | None = None
    ) -> AsyncIterator[StreamEvent]:
        """Run the pipeline and yield UI stream events ending in ``finish``.

        Failures never escape: generation errors and internal faults are
        reported as assistant text inside the stream.
        """
        writer = writer or StreamWriter()
        run = PipelineRun(messages=messages)
        try:
            if not await self._prepare(run):
                text = (
                    NO_USER_TEXT_MESSAGE
                    if run.state is PipelineState.NO_USER_TEXT
                    else self._denial_text(run)
                )
                for event in writer.text(text):
                    yield event
            else:
                for item in [*run.matches, *run.web_results]:
                    for event in writer.source(item):
                        yield event

                run.advance(PipelineState.GENERATING)
                async for event in self._stream_generation(run, writer):
                    yield event
                run.advance(PipelineState.DONE)
        except Exception as exc:
            logger.exception("pipeline_failed", state=run.state.value)
            run.advance(PipelineState.INTERNAL_ERROR)
            for event in writer.text(f"{STREAM_ERROR_PREFIX}{exc}"):
                yield event

        for event in writer.finish():
            yield event

    async def _stream_generation(
        self, run: PipelineRun, writer: StreamWriter
    ) -> AsyncIterator[StreamEvent]:
        if self.llm_client is None:
            logger.info("generation_unconfigured", matches=len(run.matches))
            for event in writer.text(self._degraded_answer(run)):
                yield event
            return

        messages = self._generation_messages(run)
        produced_text = False
        try:
            async for chunk in self.llm_client.stream(
                self.system_prompt, messages, self.tool_registry(), self.max_steps
            ):
                if chunk.kind == "tool-result":
                    chunk.payload = to_jsonable(chunk.payload, self.max_chars_per_part)
                produced_text = produced_text or (chunk.kind == "text" and bool(chunk.delta))
                for event in writer.handle(chunk):
                    yield event
        except Exception as exc:
            logger.exception("generation_failed")
            for event in writer.text(f"{GENERATION_ERROR_PREFIX}{exc}"):
                yield event
            return

        if not produced_text:
            for event in writer.text(EMPTY_ANSWER_MESSAGE):
                yield event
