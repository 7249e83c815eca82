import logging

from fastapi import APIRouter, Query, Request

from evote.schemas import AbuseRecordOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/election", tags=["Election"])


@router.post("/active-changed")
async def active_election_changed(request: Request):
    """
    Called by the admin side after it activates, deactivates or closes an
    election, so live tallies resynchronise instead of serving a stale view.
    """
    election_id = await request.app.state.broadcaster.on_active_election_changed()
    return {"status": "ok", "activeElectionId": election_id}


@router.get("/abuse-logs", response_model=list[AbuseRecordOut])
async def list_abuse_logs(request: Request, limit: int = Query(100, ge=1, le=1000)):
    records = await request.app.state.recorder.list_records(limit=limit)
    return [AbuseRecordOut(**record.model_dump(mode="json")) for record in records]
