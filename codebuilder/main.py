"""
Code Builder Backend

FastAPI application serving the file store and code generation endpoints.
"""

import logging
from typing import Optional

from dotenv import load_dotenv

# Load environment variables before config is read
load_dotenv()

from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .code_generator import CodeGenerator, GenerationError
from .file_store import (
    FileStore,
    FileValidationError,
    IdExhaustedError,
    IndexConflictError,
    UnknownFileError,
    ID_FACTORIES,
)
from .kv_store import StoreUnavailableError, create_store
from .models import (
    DeleteFileRequest,
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
    ListFilesResponse,
    SuccessResponse,
    UpsertFileRequest,
    UpsertFileResponse,
)
from .config import (
    HOST,
    PORT,
    STORE_BACKEND,
    STORE_PATH,
    REDIS_URL,
    CONSISTENCY_MODE,
    STRICT_UPDATES,
    ID_SCHEME,
    SEED_DEFAULT_FILE,
    GLM_API_KEY,
    GLM_API_BASE,
    GLM_TIMEOUT,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Code Builder",
    description="File store and code generation backend for the code builder",
    version="1.0.0",
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# File store and generator (singletons)
file_store: Optional[FileStore] = None
code_generator: Optional[CodeGenerator] = None


def build_file_store() -> FileStore:
    """Create the file store from environment configuration."""
    if ID_SCHEME not in ID_FACTORIES:
        raise ValueError(f"Unknown id scheme '{ID_SCHEME}'. Use 'uuid' or 'time'.")
    backend = create_store(STORE_BACKEND, path=STORE_PATH, url=REDIS_URL)
    return FileStore(
        backend,
        id_factory=ID_FACTORIES[ID_SCHEME],
        consistency=CONSISTENCY_MODE,
        strict_updates=STRICT_UPDATES,
        seed_default_file=SEED_DEFAULT_FILE,
    )


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global file_store, code_generator
    file_store = build_file_store()
    code_generator = CodeGenerator(
        api_key=GLM_API_KEY,
        base_url=GLM_API_BASE,
        timeout=GLM_TIMEOUT,
    )
    logger.info(f"Code Builder starting on {HOST}:{PORT}")
    logger.info(f"Store: {STORE_BACKEND} ({CONSISTENCY_MODE})")


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up services on shutdown."""
    if code_generator:
        await code_generator.close()
    if file_store:
        await file_store.backend.close()
    logger.info("Code Builder shut down")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "Code Builder",
        "store": STORE_BACKEND,
        "consistency": file_store.consistency if file_store else CONSISTENCY_MODE,
    }


router = APIRouter()


# ============================================================================
# File Store Endpoints
# ============================================================================

@router.get("/files", response_model=ListFilesResponse)
async def list_files():
    """
    List every file with its content.
    """
    try:
        files = await file_store.list_files()
        return ListFilesResponse(files=files)

    except StoreUnavailableError as e:
        logger.error(f"Store error listing files: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/files", response_model=UpsertFileResponse)
async def upsert_file(request: UpsertFileRequest):
    """
    Create a file, or replace an existing one when an id is given.
    """
    try:
        file_id = await file_store.upsert(
            name=request.name,
            language=request.language,
            content=request.content,
            file_id=request.id,
        )
        return UpsertFileResponse(success=True, id=file_id)

    except FileValidationError as e:
        logger.warning(f"Rejected file upsert: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except UnknownFileError as e:
        logger.warning(str(e))
        raise HTTPException(status_code=404, detail="File not found")
    except IndexConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except IdExhaustedError as e:
        logger.error(str(e))
        raise HTTPException(status_code=500, detail=str(e))
    except StoreUnavailableError as e:
        logger.error(f"Store error saving file: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/files", response_model=SuccessResponse)
async def delete_file(request: DeleteFileRequest):
    """
    Delete a file by id. Unknown ids succeed without changes.
    """
    try:
        await file_store.delete(request.id)
        return SuccessResponse(success=True)

    except FileValidationError as e:
        logger.warning(f"Rejected file delete: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except IndexConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StoreUnavailableError as e:
        logger.error(f"Store error deleting file: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# Generation Endpoint
# ============================================================================

@router.post("/generate", response_model=GenerateResponse)
async def generate_code(request: GenerateRequest):
    """
    Generate code for a prompt, or stub code when no provider is configured.
    """
    if not request.prompt or not request.language:
        raise HTTPException(
            status_code=400,
            detail="Missing required parameters: prompt and language",
        )

    try:
        code = await code_generator.generate(
            prompt=request.prompt,
            language=request.language,
            context=request.context,
        )
        logger.info(f"Generated {request.language} code ({len(code)} chars)")
        return GenerateResponse(success=True, code=code)

    except GenerationError as e:
        raise HTTPException(status_code=500, detail=str(e))


app.include_router(router, prefix="/api")
# Path used by the original serverless deployment
app.include_router(router, prefix="/.netlify/functions/api")


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    """Custom handler for HTTP exceptions, including 404/405 from routing."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=str(exc.detail),
            detail=None,
        ).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    """Malformed request bodies are client errors."""
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error="Invalid request body",
            detail=str(exc.errors()),
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Catch-all handler for unexpected errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc),
        ).model_dump(),
    )


# ============================================================================
# Development Server
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "codebuilder.main:app",
        host=HOST,
        port=PORT,
        reload=True,
        log_level="info",
    )
