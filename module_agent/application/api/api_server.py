from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from module_agent.application.api.route.chat import router as chat_router
from module_agent.domain.errors import ChatError, InvalidArgumentError
from module_agent.domain.orchestration.core.approval_handler import ApprovalHandler
from module_agent.domain.orchestration.core.main_agent import ConversationOrchestrator
from module_agent.domain.tool.tool_executor import ToolDispatcher
from module_agent.infrastructure.config.settings import Settings, get_settings
from module_agent.infrastructure.llm.anthropic_provider import AnthropicProvider
from module_agent.infrastructure.observability.logging import setup_logging
from module_agent.infrastructure.persistence.firestore_client import create_firestore_client
from module_agent.infrastructure.security.token_validator import FirebaseTokenValidator

logger = structlog.get_logger(__name__)

HTTP_STATUS = {
    "invalid-argument": 400,
    "unauthenticated": 401,
    "internal": 500,
    "unavailable": 503,
}


def error_response(error: ChatError) -> JSONResponse:
    return JSONResponse(
        status_code=HTTP_STATUS.get(error.code, 500),
        content={"error": {"status": error.code, "message": error.message}},
    )


def build_orchestrator(settings: Settings) -> ConversationOrchestrator:
    """Wire Firestore, the Anthropic provider and the tool dispatcher from settings"""

    db = create_firestore_client(settings.google_cloud_project, settings.firestore_database)
    return ConversationOrchestrator(
        db=db,
        provider=AnthropicProvider(settings.anthropic_api_key),
        config=settings.orchestrator_config(),
        dispatcher=ToolDispatcher(db, limits=settings.tool_limits()),
    )


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[ConversationOrchestrator] = None,
    token_validator: Optional[FirebaseTokenValidator] = None,
) -> FastAPI:
    """Create the chat API; collaborators default to the ones built from settings"""

    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.service_name)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "orchestrator", None) is None:
            app.state.orchestrator = build_orchestrator(settings)
            app.state.approval_handler = ApprovalHandler(app.state.orchestrator)
        logger.info("Chat API started", model=settings.anthropic_model)
        yield
        logger.info("Chat API stopped")

    app = FastAPI(title="Module Agent API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.orchestrator = orchestrator
    app.state.approval_handler = ApprovalHandler(orchestrator) if orchestrator else None
    app.state.token_validator = token_validator or FirebaseTokenValidator(settings.token_audience())

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info("Rejected malformed request", path=request.url.path, errors=exc.errors())
        return error_response(InvalidArgumentError("Malformed request body."))

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": settings.service_name}

    app.include_router(chat_router)
    return app
