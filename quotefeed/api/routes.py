from fastapi import APIRouter, HTTPException, Request

router = APIRouter()


@router.get('/quotes/{instrument_id}')
def get_quote(instrument_id: str, request: Request):
    worker = request.app.state.quote_ingest_worker
    row = worker.cache.get(instrument_id)
    if row is None:
        raise HTTPException(status_code=404, detail='QUOTE_NOT_AVAILABLE')
    return worker.quote_view(row)


@router.get('/quotes')
def get_quotes(ids: str, request: Request):
    worker = request.app.state.quote_ingest_worker
    req: list[str] = []
    for s in ids.split(','):
        value = s.strip()
        if value and value not in req:
            req.append(value)
    return [worker.quote_view(row) for row in worker.cache.list_many(req)]


@router.get('/sessions')
def get_sessions(request: Request):
    worker = request.app.state.quote_ingest_worker
    return [status.model_dump() for status in worker.session_statuses()]


@router.get('/metrics/quote')
def quote_metrics(request: Request):
    return request.app.state.quote_ingest_worker.metrics()
