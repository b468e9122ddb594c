from __future__ import annotations

import logging

from fastapi import FastAPI

from app.api.routes import router
from app.cache import RetryLedger, build_quote_cache
from app.quotes.service import QuoteService


def create_app() -> FastAPI:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="tickerdesk")
    app.state.quote_service = QuoteService(build_quote_cache())
    app.state.retry_ledger = RetryLedger()
    app.include_router(router)
    return app


app = create_app()
