"""FastAPI dependencies shared by the routers."""

from fastapi import Request

from opinion_market.services.exchange import Exchange


def get_exchange(request: Request) -> Exchange:
    """The service graph built once in create_app()."""
    return request.app.state.exchange
