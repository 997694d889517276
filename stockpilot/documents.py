"""AI document workflow: upload, background extraction and review."""

from __future__ import annotations

import asyncio
import base64
import json
import logging

from .db.documents import DocumentDB
from .errors import ConfigurationError, InvalidTransitionError, PersistenceError
from .extraction.orchestrator import Extractor

logger = logging.getLogger(__name__)

PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"
APPROVED = "approved"
REJECTED = "rejected"

TRANSITIONS: dict[str, frozenset[str]] = {
    PROCESSING: frozenset({COMPLETED, FAILED}),
    COMPLETED: frozenset({APPROVED, REJECTED}),
    FAILED: frozenset(),
    APPROVED: frozenset(),
    REJECTED: frozenset(),
}

# Reviewer-editable columns
_EDITABLE = frozenset({
    "amount", "vendor", "category", "description", "document_date", "document_type",
})


def check_transition(current: str, target: str) -> None:
    if target not in TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current, target)


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode()}"


class DocumentWorkflow:
    """Runs documents through extraction and the review state machine.

    ``upload`` stores the document as ``processing`` and returns at once;
    extraction runs as a background task on the current event loop.
    """

    def __init__(self, extractor: Extractor, store: DocumentDB) -> None:
        self._extractor = extractor
        self._store = store
        self._tasks: set[asyncio.Task] = set()

    async def upload(self, data: bytes, mime_type: str, filename: str) -> dict:
        document = self._store.create_document(
            filename,
            mime_type=mime_type,
            original_data=to_data_url(data, mime_type),
        )
        logger.info("Uploaded %s as document %s", filename, document["id"])
        task = asyncio.create_task(self.process(document["id"]))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return document

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background extraction failed: %s", task.exception())

    async def wait_idle(self) -> None:
        """Wait for every background extraction started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def process(self, document_id: str) -> dict:
        """Extract fields for a ``processing`` document and mark it completed.

        Model failures are absorbed by the extractor, which falls back to
        filename heuristics, so the document still completes. A missing API
        key or any other error escaping the extractor marks it failed.
        """
        document = self._require(document_id)
        if document["status"] != PROCESSING:
            raise InvalidTransitionError(document["status"], COMPLETED)

        try:
            analysis = await self._extractor.analyze(
                document["original_data"] or "",
                document["mime_type"] or "application/octet-stream",
                document["filename"],
            )
        except ConfigurationError as e:
            logger.error("Cannot process document %s: %s", document_id, e)
            return self._store.update_document(
                document_id, expected_status=PROCESSING, status=FAILED
            )
        except Exception:
            logger.exception("Extraction failed for document %s", document_id)
            return self._store.update_document(
                document_id, expected_status=PROCESSING, status=FAILED
            )

        logger.info(
            "Document %s processed: %s %s", document_id, analysis.vendor, analysis.amount
        )
        return self._store.update_document(
            document_id,
            expected_status=PROCESSING,
            status=COMPLETED,
            extracted_data=json.dumps(analysis.to_dict()),
            document_type=analysis.document_type,
            amount=analysis.amount,
            vendor=analysis.vendor,
            category=analysis.category,
            description=analysis.description,
            document_date=analysis.date,
            confidence=analysis.confidence,
        )

    def approve(self, document_id: str) -> dict:
        return self._move(document_id, APPROVED)

    def reject(self, document_id: str) -> dict:
        return self._move(document_id, REJECTED)

    def edit(self, document_id: str, **fields) -> dict:
        """Correct extracted fields of a document awaiting review."""
        unknown = set(fields) - _EDITABLE
        if unknown:
            raise ValueError(f"Fields cannot be edited: {sorted(unknown)}")
        document = self._require(document_id)
        if document["status"] != COMPLETED:
            raise InvalidTransitionError(document["status"], COMPLETED)
        return self._store.update_document(
            document_id, expected_status=COMPLETED, **fields
        )

    def _move(self, document_id: str, target: str) -> dict:
        document = self._require(document_id)
        check_transition(document["status"], target)
        return self._store.update_document(
            document_id, expected_status=document["status"], status=target
        )

    def _require(self, document_id: str) -> dict:
        document = self._store.get_document(document_id)
        if document is None:
            raise PersistenceError(f"Document not found: {document_id}")
        return document
