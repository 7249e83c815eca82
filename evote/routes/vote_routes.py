import logging

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from evote.models.vote_model import VoteSubmission, ConnectionInfo
from evote.rate_limiter import enforce_vote_limit
from evote.schemas import (
    VoteResult,
    ElectionOut,
    PositionOut,
    CandidateOut,
    PositionsWithCandidates,
    TallyOut,
)

logger = logging.getLogger(__name__)

vote_router = APIRouter(prefix="/vote", tags=["Vote"])

SUBMIT_VOTE_PATH = "/vote/submit-vote"


# ------------------------------
# CAST VOTE
# ------------------------------
@vote_router.post("/submit-vote", response_model=VoteResult, dependencies=[Depends(enforce_vote_limit)])
async def submit_vote(submission: VoteSubmission, request: Request):
    """
    Runs one submission through the admission pipeline.
    200 when the ballot was recorded, 4xx with a reasonCode otherwise.
    """
    conn = ConnectionInfo(
        origin_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    admission = await request.app.state.pipeline.submit(submission, conn)
    result = VoteResult(
        accepted=admission.accepted,
        message=admission.message,
        reason_code=admission.reason_code,
        ballot_id=admission.ballot.id if admission.ballot else None,
    )
    return JSONResponse(
        status_code=admission.status_code,
        content=result.model_dump(by_alias=True, exclude_none=True),
    )


# ------------------------------
# ACTIVE ELECTION + BALLOT PAPER
# ------------------------------
async def _active_election(request: Request):
    election = await request.app.state.directory.get_active_election()
    if election is None:
        raise HTTPException(status_code=404, detail="No active election found.")
    return election


@vote_router.get("/active-election", response_model=ElectionOut)
async def get_active_election(request: Request):
    election = await _active_election(request)
    return ElectionOut(**election.model_dump(mode="json"))


@vote_router.get("/positions-with-candidates", response_model=PositionsWithCandidates)
async def get_positions_with_candidates(request: Request):
    directory = request.app.state.directory
    election = await _active_election(request)

    positions = await directory.list_positions(election.id)
    candidates = await directory.list_candidates([p.id for p in positions])

    grouped = {p.id: PositionOut(id=p.id, name=p.name) for p in positions}
    for cand in candidates:
        grouped[cand.position_id].candidates.append(
            CandidateOut(id=cand.id, name=cand.name, photo=cand.photo, manifesto=cand.manifesto)
        )

    return PositionsWithCandidates(
        election=ElectionOut(**election.model_dump(mode="json")),
        positions=list(grouped.values()),
    )


@vote_router.get("/results", response_model=TallyOut)
async def get_results(request: Request):
    """Tally of the active election, recomputed from the ledger."""
    election = await _active_election(request)
    tally = await request.app.state.broadcaster.compute_view(election.id)
    return TallyOut(election_id=election.id, tally=tally)


# ------------------------------
# LIVE TALLY
# ------------------------------
@vote_router.websocket("/live")
async def live_tally(websocket: WebSocket):
    broadcaster = websocket.app.state.broadcaster
    await websocket.accept()
    election_id = await broadcaster.subscribe(websocket)
    if election_id is None:
        await websocket.close(code=1000, reason="No active election.")
        return

    logger.info(f"Observer joined live tally for election {election_id}")
    try:
        while True:
            # Client messages are ignored; this only waits for the disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unsubscribe(websocket)
        logger.info(f"Observer left live tally for election {election_id}")
