# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from evote.abuse import AbuseRecorder
from evote.broadcaster import TallyBroadcaster
from evote.config import CORS_ORIGINS, LOG_LEVEL
from evote.database.connection import get_database, close_database, ensure_indexes
from evote.eligibility import ElectionDirectory, EligibilityGate
from evote.errors import (
    VoteRejected,
    MalformedSubmission,
    StorageUnavailable,
    MALFORMED_SUBMISSION,
    STORAGE_UNAVAILABLE,
)
from evote.ledger import BallotLedger
from evote.pipeline import VoteAdmissionPipeline
from evote.rate_limiter import AttemptLimiter
from evote.routes.election_routes import router as election_router
from evote.routes.vote_routes import vote_router, SUBMIT_VOTE_PATH

# ==============================================================================
# SECTION 1: LOGGING
# ==============================================================================
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ==============================================================================
# SECTION 2: WIRING
# ==============================================================================
def build_components(app: FastAPI, db) -> None:
    """Attach the voting core to app.state; routes reach it through request.app.state."""
    directory = ElectionDirectory(db)
    ledger = BallotLedger(db)
    recorder = AbuseRecorder(db)
    broadcaster = TallyBroadcaster(ledger, directory)
    app.state.db = db
    app.state.directory = directory
    app.state.ledger = ledger
    app.state.recorder = recorder
    app.state.broadcaster = broadcaster
    app.state.pipeline = VoteAdmissionPipeline(
        ledger=ledger,
        gate=EligibilityGate(directory),
        recorder=recorder,
        broadcaster=broadcaster,
    )
    if not hasattr(app.state, "limiter"):
        app.state.limiter = AttemptLimiter()


# ==============================================================================
# SECTION 3: FASTAPI APPLICATION
# ==============================================================================
def create_app(db=None, limiter: AttemptLimiter = None) -> FastAPI:
    """
    Build the API. Pass `db` to run against an already-open database
    (tests use an in-memory one); otherwise MONGO_URI is used.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database = db if db is not None else get_database()
        await ensure_indexes(database)
        build_components(app, database)
        logger.info("Voting core ready")
        yield
        await app.state.recorder.drain()
        await app.state.broadcaster.flush()
        if db is None:
            close_database()

    app = FastAPI(title="EVOTE - Ballot Admission API", lifespan=lifespan)
    if limiter is not None:
        app.state.limiter = limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(VoteRejected)
    async def vote_rejected_handler(request: Request, exc: VoteRejected):
        return JSONResponse(
            status_code=exc.status_code,
            content={"accepted": False, "reasonCode": exc.reason_code, "message": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        # Ballot submissions always answer in the admission shape
        if request.url.path != SUBMIT_VOTE_PATH:
            return await request_validation_exception_handler(request, exc)
        logger.info(f"Rejected submission: {MALFORMED_SUBMISSION} (schema: {exc.errors()[:1]})")
        return JSONResponse(
            status_code=MalformedSubmission.status_code,
            content={
                "accepted": False,
                "reasonCode": MALFORMED_SUBMISSION,
                "message": "Malformed submission.",
            },
        )

    @app.exception_handler(StorageUnavailable)
    async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
        logger.error(f"Storage unavailable on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=503,
            content={
                "accepted": False,
                "reasonCode": STORAGE_UNAVAILABLE,
                "message": "Storage temporarily unavailable. Please retry.",
            },
        )

    app.include_router(vote_router)
    app.include_router(election_router)

    @app.get("/", tags=["Root"])
    def read_root():
        return {"message": "Welcome to the EVOTE API"}

    @app.get("/health", tags=["Root"])
    async def health_check():
        return {"status": "healthy", "database": "MongoDB"}

    return app


app = create_app()
