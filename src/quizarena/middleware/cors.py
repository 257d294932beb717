"""CORS for the quiz web app and the bot webview."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quizarena.config import Settings
from quizarena.middleware.rate_limit import LIMIT_HEADER, REMAINING_HEADER
from quizarena.middleware.request_id import REQUEST_ID_HEADER

# Any local dev server port, development only.
_LOCALHOST_ORIGINS = r"^http://(localhost|127\.0\.0\.1)(:\d+)?$"


def setup_cors(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=_LOCALHOST_ORIGINS if settings.environment == "development" else None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER, REMAINING_HEADER, LIMIT_HEADER, "Retry-After"],
    )
