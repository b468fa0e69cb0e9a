"""HTTP errors raised below the router layer (services and stores)."""

from fastapi import HTTPException
from starlette.status import HTTP_409_CONFLICT


class EmailAlreadyRegistered(HTTPException):
    def __init__(self, detail: str = "Email is already registered") -> None:
        super().__init__(status_code=HTTP_409_CONFLICT, detail=detail)
