"""
Perplexity tool catalogue.

Each tool validates its arguments, turns them into a prompt and sends that
prompt through PerplexitySearch. Tools:

    chat_perplexity        - multi-turn chat with persisted history
    search                 - one-off question, brief/normal/detailed
    get_documentation      - documentation digest for a technology
    find_apis              - API discovery for a requirement
    check_deprecated_code  - deprecation review of a code snippet
"""

import json
import logging
import time
import uuid
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, Field, ValidationError

from apps.services.tool_server.conversation_store import ChatMessage, ConversationStore
from apps.services.tool_server.perplexity_search import PerplexitySearch
from libs.core.exceptions import ToolError
from libs.core.logging_config import log_request_end, log_request_start

logger = logging.getLogger(__name__)


# =============================================================================
# Argument models
# =============================================================================


class ChatArgs(BaseModel):
    message: str = Field(..., min_length=1, description="The message to send to Perplexity AI")
    chat_id: Optional[str] = Field(
        default=None,
        description="Optional: ID of an existing chat to continue. A new chat is created if omitted.",
    )


class SearchArgs(BaseModel):
    query: str = Field(..., min_length=1, description="The search query or question")
    detail_level: Literal["brief", "normal", "detailed"] = Field(
        default="normal",
        description="Optional: desired level of detail",
    )


class DocumentationArgs(BaseModel):
    query: str = Field(..., min_length=1, description="The technology, library, or API to get documentation for")
    context: Optional[str] = Field(default=None, description="Additional context or specific aspects to focus on")


class FindApisArgs(BaseModel):
    requirement: str = Field(..., min_length=1, description="The functionality or requirement you are looking to fulfill")
    context: Optional[str] = Field(default=None, description="Additional context about the project or constraints")


class DeprecatedCodeArgs(BaseModel):
    code: str = Field(..., min_length=1, description="The code snippet or dependency to check")
    technology: Optional[str] = Field(default=None, description="The technology or framework context (e.g. 'React', 'Node.js')")


# =============================================================================
# Prompt construction
# =============================================================================

SEARCH_TEMPLATES = {
    "brief": "Provide a brief, concise answer to: {query}",
    "normal": "Provide a clear, balanced answer to: {query}. Include key points and relevant context.",
    "detailed": (
        "Provide a comprehensive, detailed analysis of: {query}. "
        "Include relevant examples, context, and supporting information where applicable."
    ),
}


def format_history(history: List[ChatMessage]) -> str:
    return "\n\n".join(f"{msg.role}: {msg.content}" for msg in history)


def build_chat_prompt(history: List[ChatMessage], message: str) -> str:
    """Prior turns followed by the new user turn, blank-line separated."""
    turns = list(history) + [ChatMessage(role="user", content=message)]
    return format_history(turns)


def build_search_prompt(args: SearchArgs) -> str:
    return SEARCH_TEMPLATES[args.detail_level].format(query=args.query)


def build_documentation_prompt(args: DocumentationArgs) -> str:
    focus = f" Focus on: {args.context}." if args.context else ""
    return (
        f"Provide comprehensive documentation and usage examples for {args.query}.{focus}\n"
        "Include:\n"
        "1. Basic overview and purpose\n"
        "2. Key features and capabilities\n"
        "3. Installation/setup if applicable\n"
        "4. Common usage examples\n"
        "5. Best practices\n"
        "6. Common pitfalls to avoid\n"
        "7. Links to official documentation if available"
    )


def build_find_apis_prompt(args: FindApisArgs) -> str:
    context = f" Context: {args.context}." if args.context else ""
    return (
        f"Find and evaluate APIs that could be used for: {args.requirement}.{context}\n"
        "For each API, provide:\n"
        "1. Name and brief description\n"
        "2. Key features and capabilities\n"
        "3. Pricing model (if available)\n"
        "4. Integration complexity\n"
        "5. Documentation quality\n"
        "6. Community support and popularity\n"
        "7. Any potential limitations or concerns\n"
        "8. Code example of basic usage"
    )


def build_deprecated_code_prompt(args: DeprecatedCodeArgs) -> str:
    scope = f" in {args.technology}" if args.technology else ""
    return (
        f"Analyze this code for deprecated features or patterns{scope}:\n\n"
        f"{args.code}\n\n"
        "Please provide:\n"
        "1. Identification of deprecated features/methods\n"
        "2. Current recommended alternatives\n"
        "3. Migration guide\n"
        "4. Impact assessment\n"
        "5. Security implications\n"
        "6. Timeline of deprecation if known"
    )


TOOL_DESCRIPTIONS = {
    "chat_perplexity": (
        "Maintains ongoing conversations with Perplexity AI. Creates new chats or continues "
        "existing ones with full history context. Returns JSON with chat_id and response."
    ),
    "search": (
        "Perform a search query on Perplexity AI with a brief, normal or detailed answer."
    ),
    "get_documentation": (
        "Get documentation and usage examples for a technology, library or API."
    ),
    "find_apis": (
        "Find and evaluate third-party APIs that fit a requirement."
    ),
    "check_deprecated_code": (
        "Check a code snippet or dependency for deprecated features and suggest replacements."
    ),
}

TOOL_ARGS: Dict[str, Type[BaseModel]] = {
    "chat_perplexity": ChatArgs,
    "search": SearchArgs,
    "get_documentation": DocumentationArgs,
    "find_apis": FindApisArgs,
    "check_deprecated_code": DeprecatedCodeArgs,
}


# =============================================================================
# Tool dispatcher
# =============================================================================


class PerplexityTools:
    """Dispatches tool calls onto the search pipeline and conversation store."""

    def __init__(self, search_service: PerplexitySearch, store: ConversationStore):
        self.search_service = search_service
        self.store = store

    def list_tools(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": name,
                "description": TOOL_DESCRIPTIONS[name],
                "input_schema": model.model_json_schema(),
            }
            for name, model in TOOL_ARGS.items()
        ]

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> str:
        """
        Run a tool and return its text result.

        Raises:
            ToolError: unknown tool or invalid arguments
            PerplexityError: the search itself failed
        """
        model = TOOL_ARGS.get(name)
        if model is None:
            raise ToolError(f"Unknown tool: {name}", tool=name)

        try:
            args = model.model_validate(arguments or {})
        except ValidationError as e:
            raise ToolError(
                f"Invalid arguments for {name}: {e.errors()[0]['msg']}",
                tool=name,
                context={"errors": e.errors()},
            ) from e

        trace_id = uuid.uuid4().hex[:8]
        start = time.time()
        log_request_start(logger, trace_id, json.dumps(arguments or {}), tool=name)
        success = False
        try:
            if name == "chat_perplexity":
                result = await self._chat(args)
            else:
                result = await self.search_service.search(self._build_prompt(name, args))
            success = True
            return result
        finally:
            log_request_end(logger, trace_id, success, (time.time() - start) * 1000)

    async def _chat(self, args: ChatArgs) -> str:
        chat_id = args.chat_id or str(uuid.uuid4())
        history = self.store.get_history(chat_id)
        prompt = build_chat_prompt(history, args.message)

        response = await self.search_service.search(prompt)

        self.store.save_message(chat_id, ChatMessage(role="user", content=args.message))
        self.store.save_message(chat_id, ChatMessage(role="assistant", content=response))
        logger.info(f"[PerplexityTools] Chat {chat_id} now has {len(history) + 2} messages")

        return json.dumps({"chat_id": chat_id, "response": response}, indent=2)

    @staticmethod
    def _build_prompt(name: str, args: BaseModel) -> str:
        if name == "search":
            return build_search_prompt(args)
        if name == "get_documentation":
            return build_documentation_prompt(args)
        if name == "find_apis":
            return build_find_apis_prompt(args)
        return build_deprecated_code_prompt(args)
