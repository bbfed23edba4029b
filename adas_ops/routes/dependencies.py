"""FastAPI dependencies shared by the routers"""

from fastapi import HTTPException, Request

from ..container import Container
from ..shared.validators import validate_ro_number


def get_container(request: Request) -> Container:
    """Dependency returning the services built in the app lifespan"""
    return request.app.state.container


def valid_ro_number(ro_number: str) -> str:
    try:
        return validate_ro_number(ro_number)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
