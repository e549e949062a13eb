from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging

from .exceptions import RosterException

logger = logging.getLogger(__name__)

async def roster_exception_handler(request: Request, exc: RosterException):
    """Handle custom roster exceptions"""
    if exc.status_code >= 500:
        logger.error(f"Roster error: {exc.message} - Path: {request.url.path}")
    else:
        logger.info(f"Roster request rejected ({exc.code}): {exc.message} - Path: {request.url.path}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()}
    )

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render request validation failures with the roster error shape"""
    errors = [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": {
                "code": "invalid_input",
                "message": "Request validation failed",
                "details": {"errors": errors},
            },
        }
    )

async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.exception(f"Unexpected error: {str(exc)} - Path: {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {"code": "internal", "message": "Internal server error", "details": {}},
        }
    )

def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RosterException, roster_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
