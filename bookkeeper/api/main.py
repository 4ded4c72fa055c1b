"""FastAPI application setup."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from bookkeeper.api.exceptions import ScopeNotFoundError
from bookkeeper.api.response import database_unavailable_response, error_response, llm_error_response
from bookkeeper.api.routes import ai, health
from bookkeeper.db.mongo import close_database
from bookkeeper.llm import LLMError


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    yield
    # Shutdown
    await close_database()


app = FastAPI(
    title="Bookkeeper API",
    description="Backend API for AI-assisted answers over reading notes",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware for frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:4321",
        "http://127.0.0.1:4321",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(ScopeNotFoundError)
async def scope_not_found_handler(request: Request, exc: ScopeNotFoundError) -> JSONResponse:
    """Handle missing book or series in an AI query scope."""
    return JSONResponse(
        status_code=404,
        content=error_response("NOT_FOUND", str(exc)),
    )


@app.exception_handler(LLMError)
async def llm_error_handler(request: Request, exc: LLMError) -> JSONResponse:
    """Handle LLM/AI service errors without exposing diagnostics."""
    return llm_error_response(exc)


@app.exception_handler(ServerSelectionTimeoutError)
async def mongo_timeout_handler(request: Request, exc: ServerSelectionTimeoutError) -> JSONResponse:
    """Handle MongoDB connection timeout."""
    return database_unavailable_response("Database is not available. Please try again later.")


@app.exception_handler(ConnectionFailure)
async def mongo_connection_handler(request: Request, exc: ConnectionFailure) -> JSONResponse:
    """Handle MongoDB connection failure."""
    return database_unavailable_response("Database connection failed. Please try again later.")


# Register routes
app.include_router(health.router)
app.include_router(ai.router, prefix="/api/v1")
