"""FastAPI web application for the daygrid persistence service."""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Response, status
from sqlalchemy.orm import Session

from daygrid.api.schemas import (
    BulkUpsertRequest,
    BulkUpsertResponse,
    DeleteResponse,
    TimetableEntryCreateRequest,
    TimetableEntryUpdateRequest,
)
from daygrid.auth.dependencies import get_current_identity
from daygrid.database.database import get_db, init_db
from daygrid.database.repository import TimetableRepository
from daygrid.models.identity import Identity
from daygrid.models.task import TaskRecord

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


# Initialize FastAPI app
app = FastAPI(
    title="daygrid API",
    description="Stores the tasks placed on a day/slot timetable",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/timetable", response_model=List[TaskRecord])
def list_entries(
    start: Optional[date] = None,
    end: Optional[date] = None,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """List the owner's active entries, optionally within [start, end]."""
    if start is not None and end is not None and start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    return TimetableRepository(db).list(identity.owner_id, start, end)


@app.post("/timetable", response_model=TaskRecord, status_code=status.HTTP_201_CREATED)
def create_entry(
    request: TimetableEntryCreateRequest,
    response: Response,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Create an entry; an active entry at the same (day, slot) is returned instead."""
    try:
        record, created = TimetableRepository(db).create(
            identity.owner_id, request.day, request.slot, request.description
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create entry: {str(e)}")
    if not created:
        response.status_code = status.HTTP_200_OK
    return record


@app.patch("/timetable/{entry_id}", response_model=TaskRecord)
def update_entry(
    entry_id: str,
    request: TimetableEntryUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Apply a partial update."""
    repo = TimetableRepository(db)
    changes = request.model_dump(exclude_none=True)
    if "slot" in changes:
        current = repo.get(identity.owner_id, entry_id)
        occupant = repo.find_active_at(identity.owner_id, current.day, changes["slot"]) if current else None
        if occupant is not None and occupant.id != entry_id:
            raise HTTPException(status_code=409, detail="Slot already has a task")
    try:
        return repo.update(identity.owner_id, entry_id, changes)
    except ValueError:
        raise HTTPException(status_code=404, detail="Entry not found")


@app.delete("/timetable/{entry_id}", response_model=DeleteResponse)
def delete_entry(
    entry_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Soft-delete an entry. Deleting twice succeeds with count 0."""
    count = TimetableRepository(db).soft_delete(identity.owner_id, entry_id)
    return DeleteResponse(success=True, count=count)


@app.put("/timetable", response_model=BulkUpsertResponse)
def bulk_upsert(
    request: BulkUpsertRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Save a whole range at once, pruning entries the payload no longer has."""
    if request.start is not None and request.end is not None and request.start > request.end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    try:
        counts = TimetableRepository(db).bulk_upsert(
            identity.owner_id,
            [entry.model_dump() for entry in request.entries],
            request.start,
            request.end,
            request.exclude_ids,
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to save timetable: {str(e)}")
    logger.info(f"Bulk save for {identity.owner_id}: {counts}")
    return BulkUpsertResponse(success=True, **counts)
