"""Transfer IDs, byte progress and lifecycle events for uploads and downloads."""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Mapping

from filedeck.errors import UnknownTransfer

logger = logging.getLogger(__name__)


class TransferStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TransferStatus.COMPLETED, TransferStatus.FAILED)


class TransferEvent(str, Enum):
    STARTED = "transferStarted"
    PROGRESS = "progressUpdate"
    COMPLETED = "transferCompleted"
    FAILED = "transferFailed"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Transfer:
    id: str
    source: str | None
    destination: str | None
    total_size: int = 0
    transferred: int = 0
    status: TransferStatus = TransferStatus.PENDING
    start_time: int = field(default_factory=_now_ms)  # epoch ms
    end_time: int | None = None
    duration: int | None = None  # ms
    error: str | None = None
    progress: int = 0
    file_name: str | None = None
    batch_id: str | None = None
    result: dict[str, Any] = field(default_factory=dict)

    def snapshot(self) -> Transfer:
        return replace(self, result=dict(self.result))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "destination": self.destination,
            "fileName": self.file_name,
            "batchId": self.batch_id,
            "totalSize": self.total_size,
            "transferred": self.transferred,
            "progress": self.progress,
            "status": self.status.value,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
            "error": self.error,
        }
        # Completion results are merged into the visible fields
        for key, value in self.result.items():
            data.setdefault(key, value)
        return data

    def _finish(self) -> None:
        self.end_time = _now_ms()
        self.duration = max(0, self.end_time - self.start_time)


Subscriber = Callable[[str, Transfer], None]


class TransferTracker:
    """Process-local transfer table. Safe under concurrent mutation.

    Subscribers are called as ``callback(event_name, snapshot)`` in
    registration order, while the table lock is held, so events for one
    transfer arrive in the order the mutations happened.
    """

    def __init__(self) -> None:
        self._transfers: dict[str, Transfer] = {}
        self._subscribers: list[Subscriber] = []
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a listener. Returns a function that unregisters it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def start(
        self,
        source: str | None = None,
        destination: str | None = None,
        total_size: int = 0,
        file_name: str | None = None,
        batch_id: str | None = None,
    ) -> str:
        with self._lock:
            transfer_id = f"transfer_{next(self._ids)}"
            transfer = Transfer(
                id=transfer_id,
                source=source,
                destination=destination,
                total_size=max(0, int(total_size or 0)),
                file_name=file_name,
                batch_id=batch_id,
            )
            self._transfers[transfer_id] = transfer
            self._emit(TransferEvent.STARTED, transfer)
        logger.debug("Started %s: %s -> %s (%d bytes)", transfer_id, source, destination, transfer.total_size)
        return transfer_id

    def update_progress(
        self, transfer_id: str, transferred: int, total_size: int | None = None
    ) -> Transfer:
        """Record bytes moved so far. Reaching 100 % completes the transfer."""
        with self._lock:
            transfer = self._require(transfer_id)
            if transfer.status.is_terminal:
                return transfer.snapshot()

            if total_size is not None:
                transfer.total_size = max(0, int(total_size))
            transferred = max(0, int(transferred))
            if transfer.total_size > 0:
                transferred = min(transferred, transfer.total_size)
                transfer.progress = (100 * transferred) // transfer.total_size
            else:
                transfer.progress = 0
            transfer.transferred = transferred

            if transfer.progress >= 100:
                transfer.status = TransferStatus.COMPLETED
                transfer._finish()
            elif transferred > 0:
                transfer.status = TransferStatus.IN_PROGRESS
            else:
                transfer.status = TransferStatus.PENDING

            self._emit(TransferEvent.PROGRESS, transfer)
            if transfer.status is TransferStatus.COMPLETED:
                self._emit(TransferEvent.COMPLETED, transfer)
            return transfer.snapshot()

    def complete(self, transfer_id: str, result: Mapping[str, Any] | None = None) -> Transfer:
        with self._lock:
            transfer = self._require(transfer_id)
            if transfer.status.is_terminal:
                return transfer.snapshot()
            transfer.status = TransferStatus.COMPLETED
            transfer.progress = 100
            if transfer.total_size > 0:
                transfer.transferred = transfer.total_size
            transfer._finish()
            transfer.result.update(result or {})
            self._emit(TransferEvent.COMPLETED, transfer)
            return transfer.snapshot()

    def fail(self, transfer_id: str, error: str | BaseException | None) -> Transfer:
        with self._lock:
            transfer = self._require(transfer_id)
            if transfer.status.is_terminal:
                return transfer.snapshot()
            transfer.status = TransferStatus.FAILED
            transfer.error = str(error) if error else "unknown error"
            transfer._finish()
            self._emit(TransferEvent.FAILED, transfer)
            return transfer.snapshot()

    def get(self, transfer_id: str) -> Transfer | None:
        with self._lock:
            transfer = self._transfers.get(transfer_id)
            return transfer.snapshot() if transfer else None

    def list(self) -> list[Transfer]:
        with self._lock:
            return [t.snapshot() for t in self._transfers.values()]

    def remove(self, transfer_id: str) -> bool:
        with self._lock:
            return self._transfers.pop(transfer_id, None) is not None

    def stats(self) -> dict[str, int]:
        with self._lock:
            counts = {status.value: 0 for status in TransferStatus}
            for transfer in self._transfers.values():
                counts[transfer.status.value] += 1
            return {"total": len(self._transfers), **counts}

    def batch_stats(self, batch_id: str) -> dict[str, Any]:
        """Aggregate counts and byte progress for transfers sharing ``batch_id``."""
        with self._lock:
            members = [t for t in self._transfers.values() if t.batch_id == batch_id]
            total_size = sum(t.total_size for t in members)
            transferred = sum(t.transferred for t in members)
            return {
                "batchId": batch_id,
                "totalFiles": len(members),
                "completed": sum(t.status is TransferStatus.COMPLETED for t in members),
                "failed": sum(t.status is TransferStatus.FAILED for t in members),
                "pending": sum(t.status is TransferStatus.PENDING for t in members),
                "inProgress": sum(t.status is TransferStatus.IN_PROGRESS for t in members),
                "totalSize": total_size,
                "transferred": transferred,
                "progress": (100 * transferred) // total_size if total_size > 0 else 0,
            }

    def _require(self, transfer_id: str) -> Transfer:
        transfer = self._transfers.get(transfer_id)
        if transfer is None:
            raise UnknownTransfer(transfer_id)
        return transfer

    def _emit(self, event: TransferEvent, transfer: Transfer) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event.value, transfer.snapshot())
            except Exception as e:
                logger.error("Transfer subscriber failed on %s for %s: %s", event.value, transfer.id, e)
