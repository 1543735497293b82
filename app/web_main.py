from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Literal, cast

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.config import AppSettings, load_settings
from app.wiring import build_block_repository, build_session_registry
from domain.errors import MalformedImportError, PersistenceError
from domain.models import BlockId
from domain.ports.repositories import BlockRepository
from domain.services.block_exchange import build_export_envelope, export_blocks
from domain.services.editor_session import (
    EditorSession,
    EditorSessionRegistry,
    SaveResult,
    run_autosave_loop,
)
from domain.services.grid_operations import (
    add_grid_column,
    convert_to_grid,
    fill_grid_cell,
    remove_grid_column,
)
from domain.services.render_projection import project_for_render

logger = logging.getLogger(__name__)


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AddBlockRequest(ApiModel):
    type: str
    at_index: int | None = Field(default=None, alias="atIndex")


class MoveBlockRequest(ApiModel):
    direction: Literal["up", "down"] | None = None
    index: int | None = None


class ConvertGridRequest(ApiModel):
    columns: int
    gap: int | None = None


class FillCellRequest(ApiModel):
    type: str = "paragraph"


class DragBeginRequest(ApiModel):
    block_id: BlockId = Field(alias="blockId")


class DragTargetRequest(ApiModel):
    row_key: str | None = Field(default=None, alias="rowKey")
    position: int | None = None


@dataclass(frozen=True)
class EditorContext:
    settings: AppSettings
    repository: BlockRepository
    sessions: EditorSessionRegistry


def create_app(settings: AppSettings, repository: BlockRepository | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        autosave_task: asyncio.Task[None] | None = None
        autosave_stop = asyncio.Event()
        interval = settings.editor.autosave_interval_seconds
        if interval > 0:
            autosave_task = asyncio.create_task(
                run_autosave_loop(context.sessions.save_all, interval, autosave_stop)
            )
        yield
        if autosave_task is not None:
            autosave_stop.set()
            await autosave_task
        await context.sessions.save_all("autosave")

    app = FastAPI(title=settings.editor.title, lifespan=lifespan)

    repository = repository or build_block_repository(settings)
    context = EditorContext(
        settings=settings,
        repository=repository,
        sessions=build_session_registry(settings, repository),
    )
    app.state.context = context

    @app.get("/api/documents/{document_id}/blocks")
    async def api_blocks(
        document_id: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        return ORJSONResponse(session_state(session))

    @app.get("/api/documents/{document_id}/layout")
    async def api_layout(
        document_id: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        rows = [row.to_dict() for row in session.store.layout_rows()]
        return ORJSONResponse({"revision": session.store.revision, "rows": rows})

    @app.get("/api/documents/{document_id}/preview")
    async def api_preview(
        document_id: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        rows = [row.to_dict() for row in project_for_render(session.store.blocks)]
        return ORJSONResponse({"rows": rows})

    @app.post("/api/documents/{document_id}/blocks")
    async def api_add_block(
        document_id: str,
        request: AddBlockRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        try:
            block_id = session.store.add(request.type, at_index=request.at_index)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return ORJSONResponse({"id": block_id, **session_state(session)}, status_code=201)

    @app.patch("/api/documents/{document_id}/blocks/{block_id}")
    async def api_update_block(
        document_id: str,
        block_id: str,
        changes: dict[str, Any] = Body(...),
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        target = resolve_block_id(session, block_id)
        try:
            session.store.update(target, **changes)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return ORJSONResponse(session_state(session))

    @app.post("/api/documents/{document_id}/blocks/{block_id}/duplicate")
    async def api_duplicate_block(
        document_id: str,
        block_id: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        copy_id = session.store.duplicate(resolve_block_id(session, block_id))
        return ORJSONResponse({"id": copy_id, **session_state(session)}, status_code=201)

    @app.delete("/api/documents/{document_id}/blocks/{block_id}")
    async def api_delete_block(
        document_id: str,
        block_id: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        session.store.delete(resolve_block_id(session, block_id))
        return ORJSONResponse(session_state(session))

    @app.post("/api/documents/{document_id}/blocks/{block_id}/move")
    async def api_move_block(
        document_id: str,
        block_id: str,
        request: MoveBlockRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        target = resolve_block_id(session, block_id)
        if request.index is not None:
            moved = session.store.move_to(target, request.index)
        elif request.direction is not None:
            moved = session.store.move(target, request.direction)
        else:
            raise HTTPException(status_code=400, detail="direction or index is required")
        return ORJSONResponse({"moved": moved, **session_state(session)})

    @app.post("/api/documents/{document_id}/blocks/{block_id}/convert-grid")
    async def api_convert_grid(
        document_id: str,
        block_id: str,
        request: ConvertGridRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        target = resolve_block_id(session, block_id)
        editor = context.settings.editor
        try:
            conversion = convert_to_grid(
                session.store,
                target,
                request.columns,
                editor.default_gap if request.gap is None else request.gap,
                max_columns=editor.max_grid_columns,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if conversion is None:
            raise HTTPException(status_code=409, detail="Block already belongs to a grid row")
        return ORJSONResponse(
            {
                "rowId": conversion.row_id,
                "blockIds": list(conversion.block_ids),
                **session_state(session),
            }
        )

    @app.post("/api/documents/{document_id}/grid/{row_id}/cells/{position}")
    async def api_fill_cell(
        document_id: str,
        row_id: str,
        position: int,
        request: FillCellRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        try:
            block_id = fill_grid_cell(session.store, row_id, position, request.type)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if block_id is None:
            raise HTTPException(status_code=409, detail="Grid row missing or cell already filled")
        return ORJSONResponse({"id": block_id, **session_state(session)}, status_code=201)

    @app.post("/api/documents/{document_id}/grid/{row_id}/columns")
    async def api_add_column(
        document_id: str,
        row_id: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        try:
            columns = add_grid_column(
                session.store, row_id, max_columns=context.settings.editor.max_grid_columns
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if columns is None:
            raise HTTPException(status_code=404, detail="Grid row not found")
        return ORJSONResponse({"columns": columns, **session_state(session)})

    @app.delete("/api/documents/{document_id}/grid/{row_id}/columns/{position}")
    async def api_remove_column(
        document_id: str,
        row_id: str,
        position: int,
        keep_block: bool = Query(default=True, alias="keepBlock"),
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        try:
            removed = remove_grid_column(session.store, row_id, position, keep_block=keep_block)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if not removed:
            raise HTTPException(status_code=404, detail="Grid row not found")
        return ORJSONResponse(session_state(session))

    @app.post("/api/documents/{document_id}/drag/begin")
    async def api_drag_begin(
        document_id: str,
        request: DragBeginRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        if not session.drag.begin(request.block_id):
            raise HTTPException(status_code=409, detail="Drag could not start")
        return ORJSONResponse(drag_state(session))

    @app.post("/api/documents/{document_id}/drag/hover")
    async def api_drag_hover(
        document_id: str,
        request: DragTargetRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        if request.row_key is None:
            raise HTTPException(status_code=400, detail="rowKey is required")
        session.drag.hover(request.row_key, request.position)
        return ORJSONResponse(drag_state(session))

    @app.post("/api/documents/{document_id}/drag/leave")
    async def api_drag_leave(
        document_id: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        session.drag.leave()
        return ORJSONResponse(drag_state(session))

    @app.post("/api/documents/{document_id}/drag/drop")
    async def api_drag_drop(
        document_id: str,
        request: DragTargetRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        outcome = session.drag.drop(request.row_key, request.position)
        return ORJSONResponse(
            {
                "committed": outcome.committed,
                "reason": outcome.reason,
                "displacedBlockId": outcome.displaced_block_id,
                **drag_state(session),
                **session_state(session),
            }
        )

    @app.post("/api/documents/{document_id}/drag/end")
    async def api_drag_end(
        document_id: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        session.drag.end()
        return ORJSONResponse(drag_state(session))

    @app.post("/api/documents/{document_id}/undo")
    async def api_undo(
        document_id: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        return ORJSONResponse({"changed": session.store.undo(), **session_state(session)})

    @app.post("/api/documents/{document_id}/redo")
    async def api_redo(
        document_id: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        return ORJSONResponse({"changed": session.store.redo(), **session_state(session)})

    @app.post("/api/documents/{document_id}/save")
    async def api_save(
        document_id: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        result = await session.save("manual")
        if not result.ok:
            raise HTTPException(status_code=503, detail=f"Save failed: {result.error}")
        return ORJSONResponse({**save_payload(result), **session_state(session)})

    @app.post("/api/documents/{document_id}/import")
    async def api_import(
        document_id: str,
        data: Any = Body(...),
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        try:
            imported = session.import_data(data)
        except MalformedImportError as exc:
            raise HTTPException(status_code=400, detail=exc.problems) from exc
        return ORJSONResponse({"imported": imported, **session_state(session)})

    @app.get("/api/documents/{document_id}/export")
    async def api_export(
        document_id: str,
        envelope: bool = Query(default=False),
        download: bool = Query(default=False),
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = open_session(context, document_id)
        blocks = session.store.blocks
        payload: Any = build_export_envelope(blocks) if envelope else export_blocks(blocks)
        headers = {}
        if download:
            headers["Content-Disposition"] = f'attachment; filename="{document_id}.json"'
        return ORJSONResponse(payload, headers=headers)

    return app


def get_context(request: Request) -> EditorContext:
    return cast(EditorContext, request.app.state.context)


def open_session(context: EditorContext, document_id: str) -> EditorSession:
    try:
        return context.sessions.open(document_id)
    except MalformedImportError as exc:
        logger.error("Stored document %s is unreadable: %s", document_id, exc)
        raise HTTPException(status_code=500, detail=exc.problems) from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail="Document not found") from exc
    except PersistenceError as exc:
        logger.exception("Loading document %s failed.", document_id)
        raise HTTPException(status_code=503, detail=str(exc)) from exc


def resolve_block_id(session: EditorSession, raw: str) -> BlockId:
    candidates: list[BlockId] = [raw]
    if raw.lstrip("-").isdigit():
        candidates.insert(0, int(raw))
    for candidate in candidates:
        if session.store.get(candidate) is not None:
            return candidate
    raise HTTPException(status_code=404, detail="Block not found")


def session_state(session: EditorSession) -> dict[str, Any]:
    store = session.store
    return {
        "documentId": session.document_id,
        "revision": store.revision,
        "unsaved": session.has_unsaved_changes,
        "saving": session.is_saving,
        "canUndo": store.can_undo,
        "canRedo": store.can_redo,
        "blocks": export_blocks(store.blocks),
    }


def drag_state(session: EditorSession) -> dict[str, Any]:
    hover = session.drag.hover_target
    return {
        "phase": session.drag.phase.value,
        "sourceId": session.drag.source_id,
        "sourceRowKey": session.drag.source_row_key,
        "hover": {"rowKey": hover.row_key, "position": hover.position} if hover else None,
    }


def save_payload(result: SaveResult) -> dict[str, Any]:
    return {
        "status": result.status,
        "savedRevision": result.revision,
        "savedAt": result.saved_at.isoformat() if result.saved_at else None,
    }


app = create_app(load_settings())
