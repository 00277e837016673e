"""Rendering of service outcomes into HTTP responses."""

from fastapi.responses import JSONResponse

from gestao_obras.services.outcomes import Outcome


def render_outcome(outcome: Outcome) -> JSONResponse:
    return JSONResponse(status_code=outcome.status_code, content=outcome.body())
