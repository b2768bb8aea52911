from __future__ import annotations

import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI

from quotefeed.api.routes import router
from quotefeed.config.settings import Settings, get_settings
from quotefeed.services.quote_cache import QuoteIngestWorker, quote_ingest_worker
from quotefeed.services.session import SessionOrchestrator
from quotefeed.services.supervisor import SessionSupervisor


def build_supervisor(settings: Settings, instrument_id: str, worker: QuoteIngestWorker) -> SessionSupervisor:
    return SessionSupervisor(
        SessionOrchestrator.from_settings(settings),
        instrument_id,
        worker.on_snapshot,
        max_retries=settings.RECONNECT_MAX_RETRIES,
        backoff_base_sec=settings.RECONNECT_BACKOFF_BASE_SEC,
        backoff_cap_sec=settings.RECONNECT_BACKOFF_CAP_SEC,
        on_state_change=worker.sync_session_state,
        on_reconnect=worker.sync_reconnect,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.get_settings()
    worker = app.state.quote_ingest_worker
    worker.stale_after_sec = settings.STALE_AFTER_SEC

    supervisors = []
    threads = []
    for instrument_id in settings.INSTRUMENTS:
        supervisor = app.state.supervisor_factory(settings, instrument_id, worker)
        thread = threading.Thread(
            target=supervisor.run,
            daemon=True,
            name=f'quotefeed-supervisor-{instrument_id}',
        )
        supervisors.append(supervisor)
        threads.append(thread)
    app.state.supervisors = supervisors

    for thread in threads:
        print(f"[APP][supervisor_start] thread={thread.name}", flush=True)
        thread.start()

    try:
        yield
    finally:
        for supervisor in supervisors:
            supervisor.stop()
        for thread in threads:
            thread.join(timeout=1.0)
            print(f"[APP][supervisor_stop] thread={thread.name} alive={thread.is_alive()}", flush=True)


app = FastAPI(title="Quote Feed", version="0.1.0", lifespan=lifespan)
app.include_router(router, prefix="/v1")

# NOTE: lazy-loaded so app import does not read env during tests.
app.state.get_settings = get_settings
app.state.quote_ingest_worker = quote_ingest_worker
app.state.supervisor_factory = build_supervisor
