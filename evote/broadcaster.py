# broadcaster.py
import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from typing import Optional, Dict, Set, Any

from evote.eligibility import ElectionDirectory
from evote.ledger import BallotLedger
from evote.models.vote_model import TallyUpdate

logger = logging.getLogger(__name__)

TALLY_INIT = "tally:init"
TALLY_UPDATE = "tally:update"


class TallyBroadcaster:
    """
    Live per-position, per-candidate vote counts for the active election.

    Observers are anything with `async send_json(dict)` and `async close()`,
    in practice FastAPI WebSockets. They are grouped by election id; only the
    active election's group ever receives updates. The ledger stays the source
    of truth and the view is rebuilt from it on every new subscription and
    whenever the active election changes.

    Commits (insert plus publish) run inside `committing()`. A rebuild waits
    for in-flight commits and holds new ones back until the fresh view is in
    place, so every ballot is counted exactly once: either by the recount or
    by its own publish.
    """

    def __init__(self, ledger: BallotLedger, directory: ElectionDirectory):
        self.ledger = ledger
        self.directory = directory
        self.election_id: Optional[str] = None
        self.view: Dict[str, Dict[str, int]] = {}
        self.groups: Dict[str, Set[Any]] = {}
        self._rebuild_lock = asyncio.Lock()
        self._state = asyncio.Condition()
        self._rebuilding = False
        self._in_flight = 0
        self._pending = set()

    @asynccontextmanager
    async def committing(self):
        async with self._state:
            await self._state.wait_for(lambda: not self._rebuilding)
            self._in_flight += 1
        try:
            yield
        finally:
            async with self._state:
                self._in_flight -= 1
                self._state.notify_all()

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        return copy.deepcopy(self.view)

    async def compute_view(self, election_id: str) -> Dict[str, Dict[str, int]]:
        positions = await self.directory.list_positions(election_id)
        candidates = await self.directory.list_candidates([p.id for p in positions])
        view = {p.id: {} for p in positions}
        for candidate in candidates:
            view[candidate.position_id][candidate.id] = 0
        for position in positions:
            view[position.id].update(await self.ledger.count_by_candidate(position.id))
        return view

    async def rebuild(self) -> Optional[str]:
        """Resynchronise with the ledger for whichever election is active now."""
        async with self._rebuild_lock:
            async with self._state:
                self._rebuilding = True
            try:
                async with self._state:
                    await self._state.wait_for(lambda: self._in_flight == 0)
                election = await self.directory.get_active_election()
                if election is None:
                    self.election_id = None
                    self.view = {}
                else:
                    self.view = await self.compute_view(election.id)
                    self.election_id = election.id
            finally:
                async with self._state:
                    self._rebuilding = False
                    self._state.notify_all()
            await self._drop_stale_groups()
            return self.election_id

    async def _drop_stale_groups(self):
        stale = [eid for eid in self.groups if eid != self.election_id]
        for election_id in stale:
            observers = self.groups.pop(election_id)
            logger.info(f"Dropping {len(observers)} observer(s) of inactive election {election_id}")
            for observer in observers:
                try:
                    await observer.close()
                except Exception as e:
                    logger.debug(f"Observer already gone while closing: {e}")

    async def on_active_election_changed(self) -> Optional[str]:
        election_id = await self.rebuild()
        logger.info(f"Active election changed, now tracking {election_id}")
        return election_id

    async def subscribe(self, observer) -> Optional[str]:
        """
        Join the active election's group and send this observer alone a full
        snapshot. Returns None (and subscribes nothing) when no election is active.
        """
        election_id = await self.rebuild()
        if election_id is None:
            return None
        self.groups.setdefault(election_id, set()).add(observer)
        await observer.send_json({
            "event": TALLY_INIT,
            "data": {"electionId": election_id, "snapshot": self.snapshot()},
        })
        return election_id

    def unsubscribe(self, observer) -> None:
        for observers in self.groups.values():
            observers.discard(observer)

    def publish(self, update: TallyUpdate) -> None:
        """
        Apply a committed ballot to the view and fan it out in the background.
        Positions outside the tracked election are ignored.
        """
        if self.election_id is None or update.position_id not in self.view:
            return
        counts = self.view[update.position_id]
        counts[update.candidate_id] = counts.get(update.candidate_id, 0) + update.delta

        observers = list(self.groups.get(self.election_id, ()))
        if not observers:
            return
        message = {
            "event": TALLY_UPDATE,
            "data": {
                "positionId": update.position_id,
                "candidateId": update.candidate_id,
                "delta": update.delta,
                "count": counts[update.candidate_id],
            },
        }
        task = asyncio.create_task(self._fan_out(self.election_id, observers, message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _fan_out(self, election_id: str, observers: list, message: dict):
        for observer in observers:
            try:
                await observer.send_json(message)
            except Exception as e:
                logger.warning(f"Dropping observer after failed send: {e}")
                self.groups.get(election_id, set()).discard(observer)

    async def flush(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
