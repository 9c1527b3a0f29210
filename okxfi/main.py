import logging
import os
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from okxfi.core.config import Settings, get_settings, require_settings
from okxfi.core.errors import AgentInvocationError, CommandError, TransportError, UnknownCommandError
from okxfi.models.chat import CHAT_MODES, ChatRequest, ChatResponse
from okxfi.services.chat_service import ChatService
from okxfi.services.command_registry import CommandRegistry
from okxfi.services.history_service import SessionHistoryStore, history_payload
from okxfi.services.llm_service import LLMService
from okxfi.services.market_commands import build_market_registry
from okxfi.services.okx_api_agent import build_okx_api_agent
from okxfi.services.okx_client import OkxDexClient
from okxfi.services.swap_agent import build_swap_agent
from okxfi.services.swap_service import SolanaSwapService, derive_wallet_address
from okxfi.services.trade_commands import build_trade_registry

logger = logging.getLogger(__name__)


class BackendEventHandler(logging.Handler):
    """Mirror application logs into an in-memory buffer served by /debug/logs."""

    def __init__(self, sink):
        super().__init__()
        self._sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:  # pragma: no cover - formatting errors
            message = record.getMessage()
        now_utc = datetime.now(timezone.utc).replace(microsecond=0)
        entry = {
            "timestamp": now_utc.isoformat().replace("+00:00", "Z"),
            "message": message,
            "level": (record.levelname or "INFO").lower(),
            "logger": record.name,
        }
        self._sink(entry)


def _attach_log_handler(app: FastAPI) -> None:
    handler = BackendEventHandler(app.state.backend_events.append)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter("%(message)s"))
    attached: list[logging.Logger] = []
    for name in ("okxfi", "uvicorn", "uvicorn.error"):
        logger_ref = logging.getLogger(name)
        if logger_ref.level == logging.NOTSET or logger_ref.level > logging.INFO:
            logger_ref.setLevel(logging.INFO)
        if handler not in logger_ref.handlers:
            logger_ref.addHandler(handler)
            attached.append(logger_ref)
    app.state.backend_log_handler = handler
    app.state.backend_log_targets = attached


def _detach_log_handler(app: FastAPI) -> None:
    handler = getattr(app.state, "backend_log_handler", None)
    if not handler:
        return
    for logger_ref in getattr(app.state, "backend_log_targets", []):
        logger_ref.removeHandler(handler)
    handler.close()


def _create_lifespan(
    enable_background_services: bool,
    settings: Settings,
    *,
    chat_service: ChatService | None,
    okx_transport: httpx.AsyncBaseTransport | None,
):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if enable_background_services:
            require_settings(settings)
        else:
            logger.info("Background services disabled; skipping required configuration check")
        app.state.backend_events = deque(maxlen=2000)
        _attach_log_handler(app)

        wallet_address = derive_wallet_address(settings)
        okx_client = OkxDexClient(settings, transport=okx_transport)
        trade_registry = build_trade_registry(okx_client, wallet_address)
        market_registry = build_market_registry(okx_client, wallet_address)
        swap_service = SolanaSwapService(trade_registry, settings)
        app.state.okx_client = okx_client
        app.state.trade_registry = trade_registry
        app.state.market_registry = market_registry
        app.state.swap_service = swap_service

        service = chat_service
        if service is None:
            store = SessionHistoryStore(
                max_sessions=settings.session_max_sessions,
                ttl_seconds=settings.session_ttl_seconds,
                max_messages=settings.session_max_messages,
            )
            agents = {
                "SAK_AGENT_NLP": build_swap_agent(
                    LLMService(settings.llm_model_id, temperature=0.2),
                    trade_registry,
                    swap_service,
                    max_iterations=settings.agent_max_iterations,
                ),
                "OKX_API_AGENT_NLP": build_okx_api_agent(
                    LLMService(settings.llm_model_id, temperature=0.0),
                    trade_registry,
                    market_registry,
                    wallet_address=wallet_address,
                    max_iterations=settings.agent_max_iterations,
                ),
            }
            service = ChatService(store, agents)
        app.state.chat_service = service
        logger.info("OKXFi backend ready (modes: %s)", ", ".join(service.modes))

        try:
            yield
        finally:
            _detach_log_handler(app)
            await okx_client.aclose()
            await swap_service.aclose()

    return lifespan


def _registries(app: FastAPI) -> list[CommandRegistry]:
    return [app.state.trade_registry, app.state.market_registry]


def create_app(
    enable_background_services: bool | None = None,
    *,
    settings: Settings | None = None,
    chat_service: ChatService | None = None,
    okx_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    if enable_background_services is None:
        enable_background_services = os.environ.get("PYTEST_CURRENT_TEST") is None
    app = FastAPI(
        title="okxfi",
        version="0.1.0",
        lifespan=_create_lifespan(
            enable_background_services,
            settings,
            chat_service=chat_service,
            okx_transport=okx_transport,
        ),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "okx_credentials": str(settings.okx_credentials_complete).lower()}

    @app.get("/debug/logs")
    async def debug_logs(limit: int = 200) -> JSONResponse:
        events = list(getattr(app.state, "backend_events", []))
        return JSONResponse({"items": events[-limit:] if limit > 0 else []}, status_code=200)

    @app.post("/api/chat")
    async def chat(request: Request) -> JSONResponse:
        try:
            body: Any = await request.json()
        except ValueError:
            return JSONResponse({"error": "Request body must be JSON"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)

        session_id = body.get("sessionId")
        message = body.get("message")
        mode = body.get("mode") or settings.default_chat_mode
        if not session_id or not isinstance(session_id, str):
            return JSONResponse({"error": "SessionId is required"}, status_code=400)
        if not message or not isinstance(message, str):
            return JSONResponse({"error": "Message is required for NLP modes"}, status_code=400)
        if mode not in CHAT_MODES:
            return JSONResponse(
                {"error": "Valid mode (SAK_AGENT_NLP or OKX_API_AGENT_NLP) is required"},
                status_code=400,
            )
        chat_request = ChatRequest.model_validate({"message": message, "sessionId": session_id, "mode": mode})

        logger.info(
            "Received chat request: mode=%s session=%s message=%r",
            chat_request.mode,
            chat_request.session_id,
            chat_request.message,
        )
        service: ChatService = app.state.chat_service
        try:
            responses = await service.handle_turn(
                chat_request.session_id, chat_request.message, chat_request.mode
            )
        except AgentInvocationError as exc:
            return JSONResponse({"error": str(exc), "details": exc.details}, status_code=500)
        except Exception as exc:
            logger.exception("Error processing %s request for session %s", chat_request.mode, chat_request.session_id)
            return JSONResponse(
                {"error": str(exc) or "Failed to process message", "details": repr(exc)},
                status_code=500,
            )
        return JSONResponse(ChatResponse(responses=responses).model_dump(exclude_none=True), status_code=200)

    @app.get("/api/sessions/{session_id}/history")
    async def session_history(session_id: str) -> JSONResponse:
        service: ChatService = app.state.chat_service
        if session_id not in service.store:
            return JSONResponse({"error": f"Unknown session: {session_id}"}, status_code=404)
        return JSONResponse({"messages": history_payload(service.store.get(session_id))}, status_code=200)

    @app.get("/api/commands")
    async def list_commands() -> JSONResponse:
        trade_registry, market_registry = _registries(app)
        return JSONResponse(
            {
                "trade": [info.model_dump(by_alias=True) for info in trade_registry.list_commands()],
                "market": [info.model_dump(by_alias=True) for info in market_registry.list_commands()],
            },
            status_code=200,
        )

    @app.post("/api/commands/{name}")
    async def run_command(name: str, request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            body = {}
        args_string = body.get("args", "") if isinstance(body, dict) else ""
        if not isinstance(args_string, str):
            return JSONResponse({"error": "args must be a key=value string"}, status_code=400)
        registry = next((item for item in _registries(app) if name in item), None)
        if registry is None:
            known = [command for item in _registries(app) for command in item.names()]
            error = UnknownCommandError(name, known)
            return JSONResponse({"error": str(error)}, status_code=404)
        try:
            result = await registry.execute(name, args_string)
        except CommandError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        except TransportError as exc:
            logger.error("Command %s failed: %s", name, exc)
            return JSONResponse(
                {"error": str(exc), "details": exc.body if exc.body is not None else None},
                status_code=502,
            )
        return JSONResponse({"command": name, "result": result}, status_code=200)

    return app


app = create_app()
