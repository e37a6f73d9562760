"""Prompt assembly — system prompt, cited context, history and tools.

PromptAssembler is pure: the same snippets, history and tools always produce
the same ChatPrompt. Rendering into provider messages happens on ChatPrompt
(``to_messages()`` for role-based models, ``to_transcript()`` for plain
completion models).
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from ragcore.tools.registry import ToolDefinition

if TYPE_CHECKING:
    from ragcore.db.models import ChatMessage
    from ragcore.rag.retriever import ContextSnippet

CONTEXT_HEADER = "Relevant information from the knowledge base:\n\n"

_TOOL_INSTRUCTIONS = (
    "You can call tools. To call one, write exactly:\n"
    '<tool_call>{"name": "<tool name>", "args": {<arguments as JSON>}}</tool_call>\n'
    "The tool result will be returned to you, then continue your answer.\n"
    "Available tools:"
)


@dataclass(frozen=True)
class ChatPrompt:
    """Provider-agnostic prompt for one generation step.

    Attributes:
        history: ``(role, content)`` pairs, oldest first.
    """

    system_prompt: str
    context: str
    user_message: str
    history: tuple[tuple[str, str], ...] = ()
    tools: tuple[ToolDefinition, ...] = ()
    temperature: float = 0.7
    max_tokens: int = 2000

    def continuation(self, previous_text: str, tool_result: str) -> ChatPrompt:
        """Prompt asking the model to continue *previous_text* after a tool ran.

        System prompt, context, history and tools are carried over unchanged.
        """
        return replace(
            self,
            user_message=(
                f"{previous_text}\n\nTool result: {tool_result}\n\n"
                "Please continue your response:"
            ),
        )

    def system_text(self) -> str:
        if not self.tools:
            return self.system_prompt
        lines = [self.system_prompt, "", _TOOL_INSTRUCTIONS]
        for tool in self.tools:
            lines.append(
                f"- {tool.name}: {tool.description} "
                f"Parameters: {json.dumps(tool.parameters, sort_keys=True)}"
            )
        return "\n".join(lines)

    def to_messages(self) -> list[dict[str, str]]:
        """Render as an OpenAI-style role/content message list.

        Stored ``tool`` messages carry no call ids, so they are replayed as
        system notes rather than protocol-level tool messages.
        """
        messages = [{"role": "system", "content": self.system_text()}]
        if self.context:
            messages.append({"role": "system", "content": f"Context:\n{self.context}"})
        for role, content in self.history:
            if role == "tool":
                messages.append({"role": "system", "content": f"Tool output: {content}"})
            else:
                messages.append({"role": role, "content": content})
        messages.append({"role": "user", "content": self.user_message})
        return messages

    def to_transcript(self) -> str:
        """Render as one plain-text transcript ending with an open assistant turn."""
        parts: list[str] = []
        system = self.system_text()
        if system:
            parts.append(f"System: {system}\n\n")
        if self.context:
            parts.append(f"Context:\n{self.context}\n\n")
        for role, content in self.history:
            parts.append(f"{role}: {content}\n")
        parts.append(f"Human: {self.user_message}\n\nAssistant:")
        return "".join(parts)


@dataclass
class PromptAssembler:
    """Builds ChatPrompts from retrieval results and session history."""

    system_prompt: str
    temperature: float = 0.7
    max_tokens: int = 2000

    def build(
        self,
        user_message: str,
        snippets: Sequence[ContextSnippet] = (),
        history: Sequence[ChatMessage] = (),
        tools: Sequence[ToolDefinition] = (),
    ) -> ChatPrompt:
        return ChatPrompt(
            system_prompt=self.system_prompt,
            context=build_context(snippets),
            user_message=user_message,
            history=tuple((m.role, m.content) for m in history),
            tools=tuple(tools),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )


def source_label(snippet: ContextSnippet) -> str:
    return f"[Source: {snippet.document_name}#{snippet.chunk_index}]"


def build_context(snippets: Sequence[ContextSnippet]) -> str:
    """Header line plus one citation-prefixed block per snippet ('' if none)."""
    if not snippets:
        return ""
    blocks = [f"{source_label(s)} {s.text}\n\n" for s in snippets]
    return CONTEXT_HEADER + "".join(blocks)
