from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..checkin import recount_checkins
from ..deps import Caller, get_db, require_admin, require_token
from ..registrations import event_checkin_stats
from ..schemas import EventCheckinStats


router = APIRouter(prefix="/api", tags=["events"], dependencies=[Depends(require_token)])


@router.get("/events/{event_id}/checkins", response_model=EventCheckinStats)
def events_checkins(event_id: str, db: Session = Depends(get_db)):
    return event_checkin_stats(db, event_id)


@router.post("/events/{event_id}/checkins.recount", response_model=EventCheckinStats)
def events_checkins_recount(event_id: str, db: Session = Depends(get_db), caller: Caller = Depends(require_admin)):
    recount_checkins(db, event_id, caller)
    return event_checkin_stats(db, event_id)
