"""
Perplexity Tool Server

FastAPI surface over the Perplexity tool catalogue:

    GET  /health      - liveness + whether a browser session is ready
    GET  /tools       - tool definitions (name, description, input schema)
    POST /tools/call  - run a tool: {"name": ..., "arguments": {...}}

The browser is launched lazily on the first search and torn down after the
idle timeout or at shutdown.

Run:
    uvicorn apps.tool_server.app:app --host 127.0.0.1 --port 8090
"""

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

# Load .env file before any other imports that might use env vars
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from apps.services.tool_server.browser_session_manager import BrowserSessionManager
from apps.services.tool_server.conversation_store import ConversationStore
from apps.services.tool_server.perplexity_mcp import PerplexityTools
from apps.services.tool_server.perplexity_search import PerplexitySearch
from apps.services.tool_server.recovery_manager import RecoveryManager
from libs.core.config import Settings, get_settings
from libs.core.exceptions import PerplexityError, ToolError
from libs.core.logging_config import get_logger, setup_logging

# uvicorn.error until setup_logging runs in the lifespan
logger = logging.getLogger("uvicorn.error")


@dataclass
class ToolServerComponents:
    """Everything the endpoints need, built once per process."""
    session_manager: BrowserSessionManager
    store: ConversationStore
    tools: PerplexityTools


def build_components(settings: Settings) -> ToolServerComponents:
    session_manager = BrowserSessionManager(settings)
    recovery = RecoveryManager(session_manager, recovery_wait=settings.timeouts.recovery)
    search_service = PerplexitySearch(session_manager, recovery, settings)
    store = ConversationStore(settings.store.db_path)
    tools = PerplexityTools(search_service, store)
    return ToolServerComponents(session_manager=session_manager, store=store, tools=tools)


class ToolCallRequest(BaseModel):
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class TextContent(BaseModel):
    type: str = "text"
    text: str


class ToolCallResponse(BaseModel):
    content: List[TextContent]
    is_error: bool = False


def create_app(
    settings: Optional[Settings] = None,
    component_factory: Callable[[Settings], ToolServerComponents] = build_components,
    configure_logging: bool = True,
) -> FastAPI:
    """Build the FastAPI app; components are created in the lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # ======================================================================
        # STARTUP
        # ======================================================================
        cfg = settings or get_settings()
        if configure_logging:
            setup_logging(level=cfg.log_level, service_name=cfg.service_name)
        server_logger = get_logger("tool_server")
        server_logger.info("Perplexity tool server starting...")

        components = component_factory(cfg)
        app.state.settings = cfg
        app.state.components = components
        app.state.start_time = time.time()
        server_logger.info(f"Tool server ready ({len(components.tools.list_tools())} tools)")

        yield

        # ======================================================================
        # SHUTDOWN
        # ======================================================================
        server_logger.info("Tool server shutting down...")
        try:
            await components.session_manager.shutdown()
        except Exception as e:
            server_logger.error(f"Browser shutdown failed: {e}")
        components.store.close()
        server_logger.info("Tool server stopped")

    app = FastAPI(
        title="Perplexity Tool Server",
        description="Perplexity web search tools over a resilient browser session",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check(request: Request) -> Dict[str, Any]:
        """Simple health check endpoint."""
        components: ToolServerComponents = request.app.state.components
        return {
            "status": "healthy",
            "service": request.app.state.settings.service_name,
            "uptime_seconds": int(time.time() - request.app.state.start_time),
            "browser_ready": components.session_manager.session.is_usable,
        }

    @app.get("/tools")
    async def list_tools(request: Request) -> Dict[str, Any]:
        components: ToolServerComponents = request.app.state.components
        components.session_manager.touch()
        return {"tools": components.tools.list_tools()}

    @app.post("/tools/call", response_model=ToolCallResponse)
    async def call_tool(body: ToolCallRequest, request: Request) -> ToolCallResponse:
        """
        Run a tool.

        ToolError (unknown tool, bad arguments) is a client error (400).
        Any other failure is reported in-band with is_error=true.
        """
        components: ToolServerComponents = request.app.state.components
        components.session_manager.touch()

        try:
            text = await components.tools.call_tool(body.name, body.arguments)
        except ToolError as e:
            logger.warning(f"[ToolServer] Rejected call to {body.name}: {e.message}")
            raise HTTPException(status_code=400, detail=e.describe())
        except PerplexityError as e:
            logger.error(f"[ToolServer] Tool {body.name} failed: {e.describe()}")
            return ToolCallResponse(content=[TextContent(text=e.describe())], is_error=True)

        return ToolCallResponse(content=[TextContent(text=text)])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("apps.tool_server.app:app", host="127.0.0.1", port=8090)
