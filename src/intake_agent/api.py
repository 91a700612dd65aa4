"""FastAPI entrypoint exposing the chat assistant and the intake interview."""

from __future__ import annotations

import argparse
import hmac
import logging
from typing import Any, Dict, List, Optional, Sequence

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from .config import AppSettings
from .errors import IntakeError, InvalidInput, NotificationError
from .intake_agent import validate_conversation
from .sessions import Runtime

logger = logging.getLogger(__name__)

LIVENESS_TEXT = "Sakis Athan AI Chatbot Server is running!"


class ChatRequest(BaseModel):
    message: Optional[str] = None


class IntakeRequest(BaseModel):
    conversation: Optional[List[Dict[str, Any]]] = None
    idempotency_key: Optional[str] = Field(default=None, alias="idempotencyKey")


class VerifyDeveloperRequest(BaseModel):
    password: Optional[str] = None


def _error_response(exc: IntakeError) -> JSONResponse:
    content: Dict[str, Any] = {"error": exc.public_message}
    if isinstance(exc, NotificationError) and exc.case_number:
        content["caseNumber"] = exc.case_number
    return JSONResponse(status_code=exc.status_code, content=content)


def create_app(
    settings: AppSettings | None = None,
    *,
    runtime: Runtime | None = None,
    allow_origins: Sequence[str] | None = None,
) -> FastAPI:
    """Create the FastAPI app; collaborators come from ``runtime``."""

    if runtime is None:
        if settings is None:
            settings = AppSettings.load()
        runtime = Runtime.from_settings(settings)

    app = FastAPI(title="Intake Analyst Agent")
    app.state.runtime = runtime

    origins = list(allow_origins) if allow_origins else ["*"]
    allow_credentials = origins != ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(IntakeError)
    async def handle_intake_error(request: Request, exc: IntakeError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed (%s): %s",
                request.method,
                request.url.path,
                type(exc).__name__,
                exc.detail,
            )
        else:
            logger.info("%s %s rejected: %s", request.method, request.url.path, exc.detail)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"error": "Invalid request body."})

    @app.get("/", response_class=PlainTextResponse)
    async def liveness() -> str:
        return LIVENESS_TEXT

    @app.get("/health")
    async def health() -> dict[str, str]:  # pragma: no cover - simple health probe
        return {"status": "ok"}

    @app.post("/chat")
    async def chat(payload: ChatRequest) -> Dict[str, str]:
        if not payload.message or not payload.message.strip():
            raise InvalidInput('Request body must contain a "message" field.')
        assistant = runtime.chat_assistant()
        try:
            reply = await assistant.reply(payload.message)
        except IntakeError:
            raise
        except Exception as exc:
            logger.exception("Chat request failed")
            raise IntakeError(
                f"Chat request failed: {exc}",
                public_message="Failed to fetch response from AI.",
            ) from exc
        return {"reply": reply}

    @app.post("/intake")
    async def intake(payload: IntakeRequest) -> Dict[str, Any]:
        transcript = validate_conversation(payload.conversation or [])
        service = runtime.intake_service()
        try:
            result = await service.handle_turn(
                transcript,
                idempotency_key=payload.idempotency_key,
            )
        except IntakeError:
            raise
        except Exception as exc:
            logger.exception("Intake turn failed")
            raise IntakeError(f"Intake turn failed: {exc}") from exc
        return result.to_payload()

    @app.post("/verify-developer")
    async def verify_developer(payload: VerifyDeveloperRequest) -> JSONResponse:
        if not payload.password:
            return JSONResponse(
                status_code=400,
                content={"success": False, "message": "Password is required."},
            )
        secret = runtime.developer_password
        if not secret:
            logger.error("Developer password requested but not configured.")
            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "message": "Developer password is not configured on the server.",
                },
            )
        if hmac.compare_digest(payload.password.encode("utf-8"), secret.encode("utf-8")):
            return JSONResponse(status_code=200, content={"success": True})
        logger.info("Rejected developer password attempt.")
        return JSONResponse(
            status_code=401,
            content={"success": False, "message": "Incorrect password."},
        )

    return app


def run_server(
    settings: AppSettings,
    *,
    host: str = "0.0.0.0",
    port: Optional[int] = None,
    allow_origins: Sequence[str] | None = None,
    log_level: str = "info",
) -> None:
    """Start the FastAPI server."""

    app = create_app(settings=settings, allow_origins=allow_origins)
    uvicorn.run(
        app,
        host=host,
        port=port or settings.port,
        log_level=log_level,
    )


def build_arg_parser(prog: str = "python -m intake_agent.api") -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Launch the chat and intake interview HTTP service.",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host interface for the server (default: 0.0.0.0).",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Port for the server (default: $PORT or 3000).",
    )
    parser.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origin",
        help=(
            "Optional CORS origin(s) to allow. Defaults to '*' if not provided."
        ),
    )
    parser.add_argument(
        "--log-level",
        default="info",
        help="Logging level for uvicorn (default: info).",
    )
    parser.add_argument(
        "--tracing",
        action="store_true",
        help="Enable OpenTelemetry tracing (uses INTAKE_OTLP_ENDPOINT).",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO)
    args = build_arg_parser().parse_args(argv)
    serve(args)


def serve(args: argparse.Namespace) -> None:
    try:
        settings = AppSettings.load()
    except RuntimeError as exc:
        logging.error("Failed to load AppSettings: %s", exc)
        raise SystemExit(1) from exc

    if args.tracing:
        from .observability import initialize_tracing

        initialize_tracing(endpoint=settings.otlp_endpoint)

    run_server(
        settings=settings,
        host=args.host,
        port=args.port,
        allow_origins=args.allow_origin,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
