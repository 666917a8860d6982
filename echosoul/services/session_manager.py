"""
Session & Progress Manager: session registry, ingestion progress and TTL sweeping.
"""

import threading
import time
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional

from ..models.core import IngestionProgress, ProgressStage, Session
from ..models.interfaces import SessionRegistry
from ..utils.config import SessionConfig, config
from ..utils.errors import ValidationError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class ProgressStore:
    """Latest progress record per upload.

    Percent never decreases and a terminal record (complete or error) is final.
    Terminal records nobody reads are dropped by expire().
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._records: Dict[str, IngestionProgress] = {}
        self._finished_at: Dict[str, float] = {}
        self.clock = clock
        self._condition = threading.Condition()

    def publish(self, progress: IngestionProgress) -> IngestionProgress:
        """
        Overwrite the record of an upload.

        Args:
            progress: New progress record

        Returns:
            The stored record (the existing one if the upload already finished)
        """
        with self._condition:
            current = self._records.get(progress.upload_id)
            if current is not None and current.stage.terminal:
                logger.debug(f'Ignoring {progress.stage.value} update for finished upload {progress.upload_id}')
                return current

            percent = max(progress.percent, current.percent if current else 0)
            if progress.stage == ProgressStage.COMPLETE:
                percent = 100
            record = replace(progress, percent=min(percent, 100))
            self._records[progress.upload_id] = record
            if record.stage.terminal:
                self._finished_at[record.upload_id] = self.clock()
            self._condition.notify_all()

        logger.debug(f'Upload {record.upload_id}: {record.stage.value} {record.percent}% {record.message}')
        return record

    def update(self, upload_id: str, stage: ProgressStage, percent: int, message: str, **fields) -> IngestionProgress:
        return self.publish(IngestionProgress(upload_id=upload_id, stage=stage, percent=percent, message=message, **fields))

    def get(self, upload_id: str) -> Optional[IngestionProgress]:
        with self._condition:
            return self._records.get(upload_id)

    def discard(self, upload_id: str) -> None:
        with self._condition:
            self._records.pop(upload_id, None)
            self._finished_at.pop(upload_id, None)
            self._condition.notify_all()

    def expire(self, max_age_seconds: float) -> List[str]:
        """
        Drop terminal records finished more than max_age_seconds ago.

        Returns:
            Upload ids whose records were dropped
        """
        cutoff = self.clock() - max_age_seconds
        with self._condition:
            expired = [upload_id for upload_id, finished in self._finished_at.items() if finished < cutoff]
            for upload_id in expired:
                self._records.pop(upload_id, None)
                del self._finished_at[upload_id]
            if expired:
                self._condition.notify_all()

        if expired:
            logger.info(f'Expired {len(expired)} unread progress records')
        return expired

    def stream(self, upload_id: str, timeout: Optional[float] = None) -> Iterator[IngestionProgress]:
        """
        Yield progress records until the terminal one, then discard the upload.

        Records overwritten before the consumer reads them are skipped.

        Args:
            upload_id: Upload to follow
            timeout: Stop waiting after this many seconds (no limit if None)

        Yields:
            IngestionProgress records in publication order

        Raises:
            ValidationError: If the upload is unknown
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        last = None

        while True:
            with self._condition:
                record = self._records.get(upload_id)
                if record is None and last is None:
                    raise ValidationError(f'Upload {upload_id} not found')

                while record is last:
                    remaining = None if deadline is None else deadline - time.monotonic()
                    if remaining is not None and remaining <= 0:
                        logger.warning(f'Stopped following upload {upload_id} after {timeout}s')
                        return
                    self._condition.wait(remaining)
                    record = self._records.get(upload_id)

                if record is None:
                    return

            yield record
            last = record
            if record.stage.terminal:
                self.discard(upload_id)
                return


class InMemorySessionRegistry(SessionRegistry):
    """Process-local session registry with per-session locks."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._lock = threading.Lock()
        self.clock = clock

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def put(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.id] = session
            self._locks.setdefault(session.id, threading.RLock())
        logger.info(f'Registered session {session.id} for {session.person_name}')

    def delete(self, session_id: str) -> Optional[Session]:
        with self._lock:
            self._locks.pop(session_id, None)
            return self._sessions.pop(session_id, None)

    def lock_for(self, session_id: str) -> threading.RLock:
        """Lock serializing updates to one session."""
        with self._lock:
            return self._locks.setdefault(session_id, threading.RLock())

    def touch(self, session_id: str) -> Session:
        session = self.require(session_id)
        with self.lock_for(session_id):
            session.last_activity = self.clock()
        return session

    def list_sessions(self) -> List[Session]:
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def sweep(self, ttl_seconds: float, on_evict: Optional[Callable[[Session], None]] = None) -> List[str]:
        """
        Evict sessions idle longer than ttl_seconds.

        A session whose on_evict callback fails is put back so the next
        sweep retries it.

        Args:
            ttl_seconds: Maximum idle time
            on_evict: Called with each evicted session (deletes its collection)

        Returns:
            Ids of the evicted sessions
        """
        now = self.clock()
        with self._lock:
            expired = [session for session in self._sessions.values() if (now - session.last_activity).total_seconds() > ttl_seconds]
            for session in expired:
                del self._sessions[session.id]

        evicted = []
        for session in expired:
            try:
                if on_evict:
                    on_evict(session)
                with self._lock:
                    self._locks.pop(session.id, None)
                evicted.append(session.id)
                logger.info(f'Evicted idle session {session.id}')
            except Exception as e:
                logger.error(f'Error evicting session {session.id}, will retry on next sweep: {e}')
                with self._lock:
                    self._sessions.setdefault(session.id, session)

        return evicted


class SessionSweeper:
    """Sweeps idle sessions and expires finished progress records on a daemon thread."""

    def __init__(self,
                 registry: SessionRegistry,
                 on_evict: Optional[Callable[[Session], None]] = None,
                 settings: Optional[SessionConfig] = None,
                 progress: Optional[ProgressStore] = None):
        self.registry = registry
        self.progress = progress
        self.on_evict = on_evict
        self.settings = settings or config.session
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def ttl_seconds(self) -> float:
        return self.settings.ttl_hours * 3600

    @property
    def interval_seconds(self) -> float:
        return self.settings.sweep_interval_minutes * 60

    def run_once(self) -> List[str]:
        evicted = self.registry.sweep(self.ttl_seconds, self.on_evict)
        if evicted:
            logger.info(f'Session sweep evicted {len(evicted)} sessions')
        if self.progress is not None:
            self.progress.expire(self.settings.progress_retention_minutes * 60)
        return evicted

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception as e:
                logger.error(f'Session sweep failed: {e}')

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name='session-sweeper', daemon=True)
        self._thread.start()
        logger.info(f'Session sweeper started (ttl {self.settings.ttl_hours}h, every {self.settings.sweep_interval_minutes}min)')

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
