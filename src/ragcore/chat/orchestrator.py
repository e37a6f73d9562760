"""Generation orchestrator — runs one chat turn end to end.

A turn moves through BUILD_PROMPT → GENERATE → (DETECT_TOOLS → INVOKE_TOOLS →
CONTINUE)* → PERSIST. ``stream_turn()`` and ``chat_turn()`` drive the same
``_run_turn()`` generator; they differ only in whether model output arrives
as token deltas or as one completion.

Tool calls are resolved with an explicit stack rather than recursion: calls
found in a continuation are handled before the remaining calls of the text
that produced it, and at most ``max_tool_calls`` tools run per turn. When the
budget is spent the latest text is final, even if it still contains markers.
"""

from __future__ import annotations

import contextlib
import logging
import uuid
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field

from ragcore.chat.events import (
    DELTA,
    DONE,
    EMBEDDING_FAILED,
    ERROR,
    PROVIDER_FAILED,
    TOOL_CALL,
    TOOL_RESULT,
    ChatEvent,
)
from ragcore.db.models import ChatMessage, ChatSession
from ragcore.db.repository import Repository
from ragcore.errors import EmbeddingError, NotFoundError, ProviderError
from ragcore.rag.llm_client import ChatProvider, count_tokens
from ragcore.rag.prompt import ChatPrompt, PromptAssembler
from ragcore.rag.retriever import ContextSnippet, Retriever
from ragcore.rag.tool_calls import ToolCall, parse_tool_calls
from ragcore.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"
TITLE_MAX_CHARS = 50
SEGMENT_SEPARATOR = "\n\n"


@dataclass
class ChatRequest:
    """Input for one chat turn.

    Attributes:
        session_id: Existing session to continue; None starts a new one.
        use_rag: Retrieve context snippets for the message.
        top_k: Override the retriever's default k.
        tool_names: Tools offered to the model for this turn.
    """

    message: str
    user_id: str
    session_id: str | None = None
    use_rag: bool = True
    top_k: int | None = None
    tool_names: Sequence[str] = ()


@dataclass
class ChatResult:
    session_id: str
    content: str
    user_message_id: str
    assistant_message_id: str
    tool_calls: int = 0
    tokens_in: int = 0
    tokens_out: int = 0
    snippets: list[ContextSnippet] = field(default_factory=list)


def derive_title(message: str) -> str:
    """Session title from the first message of a conversation."""
    title = " ".join(message.split())
    if not title:
        return DEFAULT_TITLE
    if len(title) > TITLE_MAX_CHARS:
        return title[:TITLE_MAX_CHARS] + "..."
    return title


class ChatOrchestrator:
    """Drives retrieval, generation, tool calls and persistence for a chat turn.

    Args:
        repo: Chat store (sessions and messages).
        retriever: Context retriever, used when the request asks for RAG.
        provider: Chat completion backend.
        assembler: Builds the initial ChatPrompt.
        registry: Tools available to the model.
        max_tool_calls: Upper bound on tool invocations per turn.
        history_window: Number of prior messages replayed to the model.
        tools_enabled: When False, markers in model output are ignored.
    """

    def __init__(
        self,
        repo: Repository,
        retriever: Retriever | None,
        provider: ChatProvider,
        assembler: PromptAssembler,
        registry: ToolRegistry,
        max_tool_calls: int = 3,
        history_window: int = 10,
        tools_enabled: bool = True,
    ) -> None:
        self._repo = repo
        self._retriever = retriever
        self._provider = provider
        self._assembler = assembler
        self._registry = registry
        self.max_tool_calls = max_tool_calls
        self.history_window = history_window
        self.tools_enabled = tools_enabled

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def stream_turn(self, request: ChatRequest) -> AsyncIterator[ChatEvent]:
        """Yield events for one turn; the last event is ``done`` or ``error``.

        Embedding and provider failures end the stream with an ``error`` event
        that carries the turn's session id. An unknown session raises
        NotFoundError before anything is persisted. Closing the stream early
        closes the provider stream as well.
        """
        session = self._resolve_session(request)
        async with contextlib.aclosing(self._run_turn(request, session, stream=True)) as events:
            try:
                async for event in events:
                    yield event
            except EmbeddingError as exc:
                logger.error("Chat turn in session %s failed: %s", session.id, exc)
                yield ChatEvent(
                    type=ERROR, session_id=session.id, error=str(exc), code=EMBEDDING_FAILED
                )
            except ProviderError as exc:
                logger.error("Chat turn in session %s failed: %s", session.id, exc)
                yield ChatEvent(
                    type=ERROR, session_id=session.id, error=str(exc), code=PROVIDER_FAILED
                )

    async def chat_turn(self, request: ChatRequest) -> ChatResult:
        """Run one turn without streaming and return the final answer.

        Raises:
            NotFoundError: Unknown session, or a session owned by another user.
            EmbeddingError: The query could not be embedded.
            ProviderError: The chat model failed.
        """
        session = self._resolve_session(request)
        async with contextlib.aclosing(self._run_turn(request, session, stream=False)) as events:
            async for event in events:
                if event.type == DONE and event.result is not None:
                    return event.result
        raise RuntimeError("chat turn ended without a result")

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    async def _run_turn(
        self, request: ChatRequest, session: ChatSession, stream: bool
    ) -> AsyncIterator[ChatEvent]:
        sid = session.id

        # history is read before the new user message lands
        history = self._repo.list_messages(sid, limit=self.history_window)

        user_message = ChatMessage(
            id=str(uuid.uuid4()),
            session_id=sid,
            role="user",
            content=request.message,
            tokens_in=count_tokens(self._provider.model, request.message),
        )
        self._repo.add_message(user_message)

        snippets: list[ContextSnippet] = []
        if request.use_rag and self._retriever is not None:
            snippets = await self._retriever.retrieve(request.message, top_k=request.top_k)

        tools = self._registry.definitions(request.tool_names) if request.tool_names else []
        prompt = self._assembler.build(request.message, snippets, history, tools)

        buffer: list[str] = []
        async with contextlib.aclosing(self._generate(prompt, sid, stream, buffer)) as events:
            async for event in events:
                yield event
        text = "".join(buffer)
        segments = [text]

        pending: list[tuple[ToolCall, str]] = []
        self._push_calls(pending, text)
        invocations = 0

        while pending and invocations < self.max_tool_calls:
            call, source_text = pending.pop()
            invocations += 1

            yield ChatEvent(type=TOOL_CALL, session_id=sid, tool_name=call.name, tool_args=call.args_json)
            self._add_tool_message(sid, f"{call.name}: {call.args_json}")
            result = await self._registry.invoke(call.name, call.args_json)
            self._add_tool_message(sid, result)
            yield ChatEvent(
                type=TOOL_RESULT,
                session_id=sid,
                content=result,
                tool_name=call.name,
                tool_args=call.args_json,
            )

            buffer = []
            continuation = prompt.continuation(source_text, result)
            async with contextlib.aclosing(self._generate(continuation, sid, stream, buffer)) as events:
                async for event in events:
                    yield event
            text = "".join(buffer)
            segments.append(text)
            self._push_calls(pending, text)

        if pending:
            logger.warning(
                "Tool call budget of %d reached in session %s; %d call(s) left unresolved",
                self.max_tool_calls,
                sid,
                len(pending),
            )

        content = SEGMENT_SEPARATOR.join(s for s in segments if s)
        prompt_text = "\n".join(m["content"] for m in prompt.to_messages())
        assistant_message = ChatMessage(
            id=str(uuid.uuid4()),
            session_id=sid,
            role="assistant",
            content=content,
            tokens_in=count_tokens(self._provider.model, prompt_text),
            tokens_out=count_tokens(self._provider.model, content),
        )
        self._repo.add_message(assistant_message)
        logger.debug("Turn finished in session %s with %d tool call(s)", sid, invocations)

        result = ChatResult(
            session_id=sid,
            content=content,
            user_message_id=user_message.id,
            assistant_message_id=assistant_message.id,
            tool_calls=invocations,
            tokens_in=assistant_message.tokens_in or 0,
            tokens_out=assistant_message.tokens_out or 0,
            snippets=snippets,
        )
        yield ChatEvent(type=DONE, session_id=sid, content=content, result=result)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_session(self, request: ChatRequest) -> ChatSession:
        if request.session_id:
            session = self._repo.get_session(request.session_id)
            if session is None or session.user_id != request.user_id:
                raise NotFoundError(f"Chat session not found: {request.session_id}")
            return session

        session = ChatSession(
            id=str(uuid.uuid4()),
            user_id=request.user_id,
            title=derive_title(request.message),
        )
        self._repo.create_session(session)
        logger.info("Created chat session %s for user %s", session.id, session.user_id)
        return session

    async def _generate(
        self,
        prompt: ChatPrompt,
        session_id: str,
        stream: bool,
        buffer: list[str],
    ) -> AsyncIterator[ChatEvent]:
        """Run one model call, appending its text to *buffer*."""
        if not stream:
            buffer.append(await self._provider.complete(prompt))
            return
        async with contextlib.aclosing(self._provider.stream(prompt)) as deltas:
            async for delta in deltas:
                buffer.append(delta)
                yield ChatEvent(type=DELTA, session_id=session_id, content=delta)

    def _push_calls(self, pending: list[tuple[ToolCall, str]], text: str) -> None:
        if not self.tools_enabled:
            return
        calls = parse_tool_calls(text)
        if calls:
            logger.debug("Detected %d tool call(s): %s", len(calls), [c.name for c in calls])
        # reversed so the first call found is popped first
        pending.extend((call, text) for call in reversed(calls))

    def _add_tool_message(self, session_id: str, content: str) -> None:
        self._repo.add_message(
            ChatMessage(id=str(uuid.uuid4()), session_id=session_id, role="tool", content=content)
        )
