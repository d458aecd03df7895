"""Resource endpoints exposing the managed root over HTTP."""

import json

import structlog
from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import FileResponse, StreamingResponse

from boxclone.storage.archive import (
    ARCHIVE_FILENAME,
    ARCHIVE_MEDIA_TYPE,
    ARCHIVE_REQUEST_TYPE,
    iter_chunks,
)
from boxclone.storage.errors import (
    AlreadyExistsError,
    InvalidPathError,
    IOFailureError,
    IsDirectoryError,
    NotFoundError,
    StorageError,
)
from boxclone.storage.executor import DirectoryListing, FilesystemExecutor
from boxclone.storage.paths import ManagedPath

logger = structlog.get_logger()

router = APIRouter(tags=["resources"])

COMMON_STATUS: dict[type[StorageError], int] = {
    InvalidPathError: 403,
    IOFailureError: 500,
}

OPERATION_STATUS: dict[str, dict[type[StorageError], int]] = {
    "read": {NotFoundError: 500},
    "create": {AlreadyExistsError: 405},
    "replace": {NotFoundError: 405, IsDirectoryError: 405},
    "remove": {NotFoundError: 400},
}

OPERATION_DETAIL: dict[str, str] = {
    "read": "Something broke!",
    "create": "The file or directory exists",
    "replace": "File does not exist or it is a folder",
    "remove": "Invalid path",
}


def storage_http_error(operation: str, error: StorageError) -> HTTPException:
    """Translate a storage failure into the HTTP error for an operation.

    Args:
        operation: One of read, create, replace or remove.
        error: Failure raised by the resolver or executor.

    Returns:
        HTTP exception to raise from the route.
    """
    status_code = OPERATION_STATUS[operation].get(type(error))
    if status_code is not None:
        detail = OPERATION_DETAIL[operation]
    else:
        status_code = COMMON_STATUS.get(type(error), 500)
        detail = "Path not allowed" if status_code == 403 else "Something broke!"

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "resource_request_failed",
        operation=operation,
        path=error.path,
        status=status_code,
        error=str(error),
    )
    return HTTPException(status_code=status_code, detail=detail)


def _executor(request: Request) -> FilesystemExecutor:
    return request.app.state.executor


def _resolve(executor: FilesystemExecutor, path: str, operation: str) -> ManagedPath:
    try:
        return executor.resolve(path)
    except InvalidPathError as e:
        raise storage_http_error(operation, e) from e


def wants_archive(request: Request) -> bool:
    """Whether the client asked for a directory as a zip archive."""
    return request.headers.get("accept") == ARCHIVE_REQUEST_TYPE


def _header_only(media_type: str, length: int) -> Response:
    return Response(media_type=media_type, headers={"content-length": str(length)})


async def _read(request: Request, path: str, head: bool) -> Response:
    executor = _executor(request)
    managed = _resolve(executor, path, "read")

    try:
        result = await executor.read(managed)
    except StorageError as e:
        raise storage_http_error("read", e) from e

    if isinstance(result, DirectoryListing):
        if wants_archive(request):
            disposition = f'attachment; filename="{ARCHIVE_FILENAME}"'
            if head:
                return StreamingResponse(
                    iter(()),
                    media_type=ARCHIVE_MEDIA_TYPE,
                    headers={"Content-Disposition": disposition},
                )
            try:
                stream = await executor.archive(managed)
            except StorageError as e:
                raise storage_http_error("read", e) from e
            return StreamingResponse(
                iter_chunks(stream),
                media_type=ARCHIVE_MEDIA_TYPE,
                headers={"Content-Disposition": disposition},
            )

        body = json.dumps(result.entries)
        if head:
            return _header_only("application/json", len(body.encode("utf-8")))
        return Response(content=body, media_type="application/json")

    if head:
        return _header_only(result.media_type, result.size)
    return FileResponse(result.path.absolute, media_type=result.media_type)


@router.get(
    "/{path:path}",
    summary="Read a file or list a directory",
    description=(
        "Streams file bytes, returns a JSON array of entry names for a "
        "directory, or a zip of the subtree when Accept is application/x-gtar."
    ),
)
async def read_resource(request: Request, path: str) -> Response:
    """Read a resource.

    Args:
        request: Incoming request; its Accept header selects archives.
        path: Root-relative resource path.

    Returns:
        File, listing or archive response.

    Raises:
        HTTPException: 500 if missing or unreadable, 403 if outside the root.
    """
    return await _read(request, path, head=False)


@router.head("/{path:path}", summary="Read resource headers")
async def head_resource(request: Request, path: str) -> Response:
    """Return the headers a GET of the same resource would carry."""
    return await _read(request, path, head=True)


@router.put(
    "/{path:path}",
    summary="Create a file or directory",
    description="Fails with 405 if anything already exists at the path.",
)
async def create_resource(request: Request, path: str) -> Response:
    """Create a resource that must not exist yet.

    Paths ending in a slash or without an extension create directories;
    anything else creates a file holding the request body.

    Args:
        request: Incoming request carrying the file body.
        path: Root-relative resource path.

    Returns:
        Empty 200 response.

    Raises:
        HTTPException: 405 if the path exists.
    """
    executor = _executor(request)
    managed = _resolve(executor, path, "create")
    body = await request.body()

    try:
        await executor.create(managed, body)
    except StorageError as e:
        raise storage_http_error("create", e) from e

    return Response(status_code=200)


@router.post(
    "/{path:path}",
    summary="Replace a file's content",
    description="Fails with 405 if the path is missing or is a directory.",
)
async def replace_resource(request: Request, path: str) -> Response:
    """Overwrite an existing file with the request body.

    Args:
        request: Incoming request carrying the new content.
        path: Root-relative resource path.

    Returns:
        Empty 200 response.

    Raises:
        HTTPException: 405 if missing or a directory.
    """
    executor = _executor(request)
    managed = _resolve(executor, path, "replace")
    body = await request.body()

    try:
        await executor.replace(managed, body)
    except StorageError as e:
        raise storage_http_error("replace", e) from e

    return Response(status_code=200)


@router.delete(
    "/{path:path}",
    summary="Delete a file or directory tree",
    description="Fails with 400 if nothing exists at the path.",
)
async def remove_resource(request: Request, path: str) -> Response:
    """Delete a file, or a directory and everything in it.

    Args:
        request: Incoming request.
        path: Root-relative resource path.

    Returns:
        Empty 200 response.

    Raises:
        HTTPException: 400 if the path does not exist.
    """
    executor = _executor(request)
    managed = _resolve(executor, path, "remove")

    try:
        await executor.remove(managed)
    except StorageError as e:
        raise storage_http_error("remove", e) from e

    return Response(status_code=200)
