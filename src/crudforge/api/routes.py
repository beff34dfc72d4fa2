"""REST endpoints generated for one registered entity.

Mounted under ``/{descriptor.name}``:

    POST   /               create                 201
    POST   /batch          chunked batch create   201 (207 on partial success)
    GET    /               paged read             page, size, sortBy, sortDirection
    GET    /all            full list              sortBy, sortDirection
    GET    /count          count
    GET    /{id}           read
    GET    /{id}/exists    existence check
    PATCH  /{id}           partial update
    DELETE /{id}           delete

Every response uses the ApiResponse envelope; errors are rendered by the
handlers in crudforge.api.errors.
"""

# No `from __future__ import annotations` here: FastAPI must see the entity
# model objects bound in build_router, not their names as strings.

from typing import Annotated, Any

from fastapi import APIRouter, Body, Query
from fastapi.responses import JSONResponse

from crudforge.domain.models.page import Sort
from crudforge.infrastructure.database import Settings
from crudforge.infrastructure.registry import RegisteredEntity

from .responses import ApiResponse

SortBy = Annotated[str | None, Query(alias="sortBy")]
SortDirectionParam = Annotated[str | None, Query(alias="sortDirection")]


def build_router(entry: RegisteredEntity, settings: Settings) -> APIRouter:
    descriptor = entry.descriptor
    service = entry.service
    model = descriptor.model
    label = descriptor.entity_name
    router = APIRouter(prefix=f"/{descriptor.name}", tags=[label])

    @router.post("", status_code=201)
    async def create(payload: model) -> JSONResponse:  # type: ignore[valid-type]
        created = await service.create(payload)
        return ApiResponse.ok(created, f"{label} created successfully", 201).to_response()

    @router.post("/batch", status_code=201)
    async def create_batch(
        payload: list[model],  # type: ignore[valid-type]
        chunk_size: Annotated[int | None, Query(alias="chunkSize")] = None,
    ) -> JSONResponse:
        result = await service.create_batch(payload, chunk_size)
        if result.fully_succeeded:
            message, status_code = f"{result.succeeded} {label} entities created", 201
        else:
            message = f"{result.succeeded} of {result.total} {label} entities created"
            status_code = 207
        return ApiResponse.ok(result, message, status_code).to_response()

    @router.get("")
    async def find_page(
        page: int = 0,
        size: int | None = None,
        sort_by: SortBy = None,
        sort_direction: SortDirectionParam = None,
    ) -> JSONResponse:
        result = await service.find_page(
            page,
            settings.default_page_size if size is None else size,
            Sort.of(sort_by, sort_direction),
        )
        return ApiResponse.ok(result, f"{label} page retrieved successfully").to_response()

    @router.get("/all")
    async def find_all(sort_by: SortBy = None, sort_direction: SortDirectionParam = None) -> JSONResponse:
        entities = await service.find_all(Sort.of(sort_by, sort_direction))
        return ApiResponse.ok(entities, f"{len(entities)} {label} entities retrieved").to_response()

    @router.get("/count")
    async def count() -> JSONResponse:
        total = await service.count()
        return ApiResponse.ok(total, f"{label} count retrieved").to_response()

    @router.get("/{entity_id}")
    async def find_by_id(entity_id: str) -> JSONResponse:
        entity = await service.find_by_id(entity_id)
        return ApiResponse.ok(entity, f"{label} retrieved successfully").to_response()

    @router.get("/{entity_id}/exists")
    async def exists(entity_id: str) -> JSONResponse:
        found = await service.exists(entity_id)
        return ApiResponse.ok(found, f"{label} existence checked").to_response()

    @router.patch("/{entity_id}")
    async def update(entity_id: str, changes: Annotated[dict[str, Any], Body()]) -> JSONResponse:
        updated = await service.update(entity_id, changes)
        return ApiResponse.ok(updated, f"{label} updated successfully").to_response()

    @router.delete("/{entity_id}")
    async def delete(entity_id: str) -> JSONResponse:
        await service.delete(entity_id)
        return ApiResponse.ok(None, f"{label} deleted successfully").to_response()

    return router
