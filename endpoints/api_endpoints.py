# api_endpoints.py
from __future__ import annotations

import logging
import secrets
import time
from json import JSONDecodeError
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from docstore import (
    AsyncDocumentDatabase,
    BackupNotFoundError,
    ConflictError,
    StoreError,
    ValidationError,
)
from docstore.validation import validate_file_path, validate_pagination

logger = logging.getLogger(__name__)


def get_database(request: Request) -> AsyncDocumentDatabase:
    return request.app.state.database


def _provided_api_key(headers: Any, query_params: Any) -> str | None:
    header_key = headers.get("x-api-key")
    if header_key:
        return header_key
    auth = headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return query_params.get("apiKey")


def api_key_matches(expected: str | None, headers: Any, query_params: Any) -> bool:
    if not expected:
        return True
    provided = _provided_api_key(headers, query_params) or ""
    return secrets.compare_digest(provided.encode(), expected.encode())


async def require_api_key(request: Request) -> None:
    if not api_key_matches(request.app.state.settings.api_key, request.headers, request.query_params):
        raise HTTPException(status_code=401, detail="Unauthorized - Invalid or missing API key")


router = APIRouter(prefix="/api", tags=["documents"], dependencies=[Depends(require_api_key)])


def _ok(data: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"success": True, "data": data}, status_code=status_code)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


async def _json_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON in request body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be a valid JSON object")
    return body


def _path_from_body(body: dict[str, Any], action: str) -> str:
    path = body.get("path")
    if not path:
        raise HTTPException(status_code=400, detail=f"{action} path is required")
    return validate_file_path(path)


# -------------------------------------------------------------------
# ERROR ENVELOPES
# -------------------------------------------------------------------
def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        return _error(400, "Invalid request parameters")

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(ConflictError)
    async def _conflict_error(request: Request, exc: ConflictError):
        return _error(409, "Document with this ID already exists")

    @app.exception_handler(BackupNotFoundError)
    async def _backup_not_found(request: Request, exc: BackupNotFoundError):
        return _error(400, "Backup file not found")

    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError):
        logger.error("API Error %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return _error(500, "Internal server error")


# -------------------------------------------------------------------
# DATABASE OPERATIONS (must come before collection routes)
# -------------------------------------------------------------------
@router.get("/health")
async def health(request: Request):
    db = get_database(request)
    stats = await db.get_stats()
    settings = request.app.state.settings
    return _ok(
        {
            "status": "healthy",
            "uptime": round(time.time() - request.app.state.started_at, 3),
            "realtime": settings.enable_realtime,
            "collections": stats.collection_count,
            "totalDocuments": stats.total_documents,
            "folderPath": stats.folder_path,
        }
    )


@router.get("/stats")
async def stats(request: Request):
    db = get_database(request)
    return _ok((await db.get_stats()).model_dump(mode="json"))


@router.get("/collections")
async def list_collections(request: Request):
    db = get_database(request)
    return _ok(await db.list_collection_names())


@router.post("/backup")
async def backup(request: Request):
    body = await _json_object(request)
    path = _path_from_body(body, "Backup")
    await get_database(request).backup(path)
    return JSONResponse({"success": True, "message": f"Backup created successfully at {path}"})


@router.post("/restore")
async def restore(request: Request):
    body = await _json_object(request)
    path = _path_from_body(body, "Restore")
    await get_database(request).restore(path)
    return JSONResponse({"success": True, "message": f"Database restored successfully from {path}"})


# -------------------------------------------------------------------
# COLLECTION ROUTES (most specific first)
# -------------------------------------------------------------------
@router.get("/{collection}/count")
async def count_documents(collection: str, request: Request):
    count = await get_database(request).collection(collection).count()
    return _ok({"count": count})


@router.get("/{collection}/{doc_id}")
async def get_document(collection: str, doc_id: str, request: Request):
    document = await get_database(request).collection(collection).find_by_id(doc_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return _ok({"id": doc_id, **document})


@router.put("/{collection}/{doc_id}")
async def update_document(collection: str, doc_id: str, request: Request):
    body = await _json_object(request)
    result = await get_database(request).collection(collection).update(doc_id, body)
    return _ok(result)


@router.delete("/{collection}/{doc_id}")
async def delete_document(collection: str, doc_id: str, request: Request):
    deleted = await get_database(request).collection(collection).delete(doc_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Document not found")
    return _ok({"deleted": True})


@router.get("/{collection}")
async def list_documents(collection: str, request: Request, limit: int | None = None, skip: int = 0):
    validate_pagination(limit, skip)
    documents = await get_database(request).collection(collection).find(limit=limit, skip=skip)
    return _ok(documents)


@router.post("/{collection}")
async def create_document(collection: str, request: Request):
    body = await _json_object(request)
    doc_id = body.get("id")
    result = await get_database(request).collection(collection).insert(body, doc_id)
    return _ok(result, status_code=201)


@router.delete("/{collection}")
async def drop_collection(collection: str, request: Request):
    dropped = await get_database(request).drop_collection(collection)
    if not dropped:
        raise HTTPException(status_code=404, detail="Collection not found")
    return _ok({"dropped": True})
