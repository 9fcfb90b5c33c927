"""Review of extracted candidates and selective commit"""
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Tuple

from .errors import AdminConsoleError, ExtractionInProgress, ValidationError
from .extractor import ExtractionOrchestrator
from .lifecycle import LifecycleController
from .models import CandidateRecord, Classified, Document, ExtractionOutcome, InProgress, ManagedEntity

logger = logging.getLogger(__name__)


@dataclass
class CommitResult:
    """How far a commit got before finishing or failing"""
    created: List[ManagedEntity] = field(default_factory=list)
    total: int = 0
    error: Optional[Exception] = None

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def summary(self) -> str:
        text = f"{self.created_count} of {self.total} item(s) saved"
        if self.error is not None:
            text += f"; stopped on error: {self.error}"
        return text


class ReviewSession:
    """
    Holds the single live extraction outcome and the reviewer's selection.

    A session is owned by one reviewer. A new upload replaces the previous
    outcome; results of a superseded upload are dropped.
    """

    def __init__(self, controller: LifecycleController):
        self._controller = controller
        self._outcome: Optional[ExtractionOutcome] = None
        self._selection: set = set()
        self._token = 0
        self.filename = ""

    @property
    def outcome(self) -> Optional[ExtractionOutcome]:
        return self._outcome

    @property
    def selection(self) -> FrozenSet[int]:
        return frozenset(self._selection)

    @property
    def candidates(self) -> Tuple[CandidateRecord, ...]:
        if isinstance(self._outcome, Classified):
            return self._outcome.candidates
        return ()

    @property
    def in_progress(self) -> bool:
        return isinstance(self._outcome, InProgress)

    @property
    def can_commit(self) -> bool:
        """Only in-domain outcomes with candidates offer a commit action"""
        return (isinstance(self._outcome, Classified)
                and self._outcome.is_in_domain
                and len(self._outcome.candidates) > 0)

    @property
    def all_selected(self) -> bool:
        return len(self._selection) == len(self.candidates)

    # ------------------------------------------------------------------
    # Upload slot
    # ------------------------------------------------------------------

    def begin_upload(self, filename: str = "") -> int:
        """Mark the slot in progress and return the upload token"""
        if self.in_progress:
            raise ExtractionInProgress()
        self._token += 1
        self._outcome = InProgress()
        self._selection = set()
        self.filename = filename
        return self._token

    def finish_upload(self, token: int, outcome: ExtractionOutcome) -> bool:
        """Install an outcome unless a newer upload superseded it"""
        if token != self._token:
            logger.info("Discarding stale extraction result (upload %d, current %d)",
                        token, self._token)
            return False
        self._outcome = outcome
        self._selection = set(range(len(self.candidates)))
        return True

    async def run_extraction(self,
                             orchestrator: ExtractionOrchestrator,
                             document: Document) -> ExtractionOutcome:
        """Run one extraction through the upload slot"""
        token = self.begin_upload(document.filename)
        try:
            outcome = await orchestrator.extract(document)
        except BaseException:
            if token == self._token:
                self._outcome = None
                self.filename = ""
            raise
        self.finish_upload(token, outcome)
        return outcome

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def toggle(self, index: int) -> None:
        if not 0 <= index < len(self.candidates):
            raise IndexError(f"Candidate index {index} out of range")
        if index in self._selection:
            self._selection.discard(index)
        else:
            self._selection.add(index)

    def select_all(self) -> None:
        self._selection = set(range(len(self.candidates)))

    def select_none(self) -> None:
        self._selection = set()

    def toggle_all(self) -> None:
        if self.all_selected:
            self.select_none()
        else:
            self.select_all()

    def selected_candidates(self) -> List[Tuple[int, CandidateRecord]]:
        """Selected candidates in extraction order"""
        return [(i, c) for i, c in enumerate(self.candidates) if i in self._selection]

    # ------------------------------------------------------------------
    # Commit / discard
    # ------------------------------------------------------------------

    async def commit(self) -> CommitResult:
        """
        Create one record per selected candidate, sequentially, in order.

        Stops at the first failure without rolling back earlier creates.
        Committed indices are deselected so a retry continues from the
        failing item. A fully successful commit clears the session.
        """
        if not self.can_commit:
            raise ValidationError("There is no reviewable extraction to commit")
        selected = self.selected_candidates()
        if not selected:
            raise ValidationError("Select at least one item to save")
        await self._controller.require_admin("commit extracted items")

        token = self._token
        result = CommitResult(total=len(selected))
        for index, candidate in selected:
            try:
                entity = await self._controller.create(candidate.to_fields())
            except AdminConsoleError as e:
                logger.warning("Commit stopped at candidate %d (%s): %s",
                               index, candidate.code, e)
                result.error = e
                break
            result.created.append(entity)
            if token == self._token:
                self._selection.discard(index)

        logger.info("Commit finished: %s", result.summary())
        if token != self._token:
            # A newer upload owns the slot now
            logger.info("Review slot replaced during commit; keeping upload %d", self._token)
        elif result.succeeded:
            self.discard()
        return result

    def discard(self) -> None:
        """Drop the outcome; an extraction still running is superseded"""
        self._token += 1
        self._outcome = None
        self._selection = set()
        self.filename = ""
