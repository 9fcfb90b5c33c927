"""Unit tests for review and selective commit."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from curriculum_admin.errors import ExtractionInProgress, Forbidden, UnsupportedFormat, ValidationError
from curriculum_admin.lifecycle import LifecycleController
from curriculum_admin.models import BNCC_ITEM, Classified, Document, Failed, InProgress
from curriculum_admin.review import ReviewSession
from tests.conftest import RecordingStore, make_candidates


PDF = Document(filename="bncc.pdf", content_type="application/pdf", data=b"%PDF-1.4")


def load(session: ReviewSession, count: int = 5) -> None:
    token = session.begin_upload("bncc.pdf")
    session.finish_upload(token, Classified(is_in_domain=True, candidates=tuple(make_candidates(count))))


class TestUploadSlot:
    """Tests for the single live outcome."""

    @pytest.mark.asyncio
    async def test_run_extraction_selects_every_candidate(self, review_session, mock_orchestrator):
        outcome = await review_session.run_extraction(mock_orchestrator, PDF)

        assert isinstance(outcome, Classified)
        assert review_session.selection == frozenset(range(5))
        assert review_session.can_commit
        assert review_session.filename == "bncc.pdf"

    def test_begin_upload_while_in_progress_is_rejected(self, review_session):
        review_session.begin_upload("a.pdf")

        assert isinstance(review_session.outcome, InProgress)
        with pytest.raises(ExtractionInProgress):
            review_session.begin_upload("b.pdf")

    def test_stale_result_is_dropped(self, review_session):
        first = review_session.begin_upload("a.pdf")
        review_session.discard()
        second = review_session.begin_upload("b.pdf")

        assert review_session.finish_upload(first, Failed(reason="late")) is False
        assert isinstance(review_session.outcome, InProgress)
        assert review_session.finish_upload(second, Classified(is_in_domain=False)) is True
        assert review_session.outcome == Classified(is_in_domain=False)

    def test_new_upload_replaces_previous_outcome(self, review_session):
        load(review_session, 3)
        review_session.toggle(0)

        load(review_session, 2)

        assert len(review_session.candidates) == 2
        assert review_session.selection == frozenset({0, 1})

    @pytest.mark.asyncio
    async def test_unsupported_format_frees_the_slot(self, review_session):
        orchestrator = MagicMock()
        orchestrator.extract = AsyncMock(side_effect=UnsupportedFormat("text/plain", "notes.txt"))

        with pytest.raises(UnsupportedFormat):
            await review_session.run_extraction(orchestrator, PDF)

        assert review_session.outcome is None
        review_session.begin_upload("retry.pdf")

    @pytest.mark.asyncio
    async def test_out_of_domain_offers_no_commit(self, review_session):
        orchestrator = MagicMock()
        orchestrator.extract = AsyncMock(
            return_value=Classified(is_in_domain=False, candidates=(), message="Not BNCC")
        )

        await review_session.run_extraction(orchestrator, PDF)

        assert not review_session.can_commit
        assert review_session.selection == frozenset()
        with pytest.raises(ValidationError):
            await review_session.commit()

    def test_failed_outcome_offers_no_commit(self, review_session):
        token = review_session.begin_upload("a.pdf")
        review_session.finish_upload(token, Failed(reason="service down"))

        assert not review_session.can_commit
        assert review_session.candidates == ()


class TestSelection:
    """Tests for toggle and select-all."""

    def test_toggle_twice_restores_selection(self, review_session):
        load(review_session)
        before = review_session.selection

        review_session.toggle(2)
        assert 2 not in review_session.selection
        review_session.toggle(2)

        assert review_session.selection == before

    def test_toggle_out_of_range(self, review_session):
        load(review_session, 2)

        with pytest.raises(IndexError):
            review_session.toggle(2)
        with pytest.raises(IndexError):
            review_session.toggle(-1)

    def test_toggle_all_switches_between_full_and_empty(self, review_session):
        load(review_session, 4)

        review_session.toggle_all()
        assert review_session.selection == frozenset()

        review_session.toggle(1)
        review_session.toggle_all()
        assert review_session.selection == frozenset(range(4))

    def test_select_none_then_select_all(self, review_session):
        load(review_session, 3)

        review_session.select_none()
        assert review_session.selected_candidates() == []
        review_session.select_all()
        assert [i for i, _ in review_session.selected_candidates()] == [0, 1, 2]


class TestCommit:
    """Tests for sequential commit with partial success."""

    @pytest.mark.asyncio
    async def test_select_all_commits_every_candidate_in_order(self, review_session, bncc_store):
        load(review_session, 5)
        codes = [c.code for c in review_session.candidates]

        result = await review_session.commit()

        assert result.succeeded
        assert result.created_count == 5
        assert [f["code"] for f in bncc_store.created_fields] == codes
        assert review_session.outcome is None
        assert review_session.selection == frozenset()

    @pytest.mark.asyncio
    async def test_deselected_indices_are_skipped(self, review_session, bncc_store):
        load(review_session, 5)
        codes = [c.code for c in review_session.candidates]
        review_session.toggle(1)
        review_session.toggle(3)

        result = await review_session.commit()

        assert bncc_store.calls.count("create") == 3
        assert [f["code"] for f in bncc_store.created_fields] == [codes[0], codes[2], codes[4]]
        assert result.total == 3

    @pytest.mark.asyncio
    async def test_failure_keeps_prefix_and_stops(self, admin):
        store = RecordingStore(BNCC_ITEM, fail_on_create=3)
        session = ReviewSession(LifecycleController(store, admin))
        load(session, 5)

        result = await session.commit()

        assert not result.succeeded
        assert result.created_count == 2
        assert result.total == 5
        assert isinstance(result.error, ValidationError)
        assert len(store.created_fields) == 3
        assert len(await store.list()) == 2
        assert "2 of 5" in result.summary()

    @pytest.mark.asyncio
    async def test_retry_after_failure_continues_from_failing_item(self, admin):
        store = RecordingStore(BNCC_ITEM, fail_on_create=2)
        session = ReviewSession(LifecycleController(store, admin))
        load(session, 4)

        await session.commit()
        assert session.selection == frozenset({1, 2, 3})

        result = await session.commit()

        assert result.succeeded
        assert result.created_count == 3
        assert len(await store.list()) == 4

    @pytest.mark.asyncio
    async def test_duplicate_codes_become_distinct_records(self, review_session, bncc_store):
        candidate = make_candidates(1)[0]
        token = review_session.begin_upload("dup.pdf")
        review_session.finish_upload(token, Classified(is_in_domain=True, candidates=(candidate, candidate)))

        result = await review_session.commit()

        records = await bncc_store.list()
        assert result.created_count == 2
        assert len({r.id for r in records}) == 2

    @pytest.mark.asyncio
    async def test_candidate_without_component_fails_validation(self, review_session, bncc_store):
        first, second = make_candidates(2)
        second = second.model_copy(update={"component": None})
        token = review_session.begin_upload("a.pdf")
        review_session.finish_upload(token, Classified(is_in_domain=True, candidates=(first, second)))

        result = await review_session.commit()

        assert result.created_count == 1
        assert isinstance(result.error, ValidationError)
        assert bncc_store.calls.count("create") == 1

    @pytest.mark.asyncio
    async def test_non_admin_commit_is_rejected_before_store(self, non_admin):
        store = RecordingStore(BNCC_ITEM)
        session = ReviewSession(LifecycleController(store, non_admin))
        load(session, 2)

        with pytest.raises(Forbidden):
            await session.commit()

        assert store.calls == []
        assert session.can_commit

    @pytest.mark.asyncio
    async def test_empty_selection_cannot_commit(self, review_session, bncc_store):
        load(review_session, 2)
        review_session.select_none()

        with pytest.raises(ValidationError):
            await review_session.commit()

        assert bncc_store.calls == []

    @pytest.mark.asyncio
    async def test_discard_touches_no_store(self, review_session, bncc_store):
        load(review_session, 3)

        review_session.discard()

        assert review_session.outcome is None
        assert review_session.selection == frozenset()
        assert bncc_store.calls == []

    @pytest.mark.asyncio
    async def test_commits_run_one_at_a_time(self, admin):
        in_flight = []
        peak = []

        class SlowStore(RecordingStore):
            async def create(self, fields):
                in_flight.append(fields["code"])
                peak.append(len(in_flight))
                await asyncio.sleep(0)
                in_flight.pop()
                return await super().create(fields)

        session = ReviewSession(LifecycleController(SlowStore(BNCC_ITEM), admin))
        load(session, 4)

        await session.commit()

        assert max(peak) == 1

    @pytest.mark.asyncio
    async def test_unexpected_store_error_propagates(self, admin):
        store = RecordingStore(BNCC_ITEM, fail_on_create=2, error=TypeError("bad field mapping"))
        session = ReviewSession(LifecycleController(store, admin))
        load(session, 3)

        with pytest.raises(TypeError):
            await session.commit()


class TestUploadDuringCommit:

    class GatedStore(RecordingStore):
        def __init__(self, kind):
            super().__init__(kind)
            self.started = asyncio.Event()
            self.gate = asyncio.Event()

        async def create(self, fields):
            self.started.set()
            await self.gate.wait()
            return await super().create(fields)

    async def start_commit(self, admin):
        store = self.GatedStore(BNCC_ITEM)
        session = ReviewSession(LifecycleController(store, admin))
        load(session, 2)
        task = asyncio.create_task(session.commit())
        await store.started.wait()
        return store, session, task

    @pytest.mark.asyncio
    async def test_upload_begun_during_commit_is_installed(self, admin):
        store, session, task = await self.start_commit(admin)
        token = session.begin_upload("b.pdf")

        store.gate.set()
        result = await task
        installed = session.finish_upload(token, Classified(is_in_domain=True, candidates=tuple(make_candidates(3))))

        assert result.created_count == 2
        assert installed is True
        assert len(session.candidates) == 3
        assert session.selection == frozenset({0, 1, 2})

    @pytest.mark.asyncio
    async def test_upload_finished_during_commit_keeps_its_selection(self, admin):
        store, session, task = await self.start_commit(admin)
        token = session.begin_upload("b.pdf")
        session.finish_upload(token, Classified(is_in_domain=True, candidates=tuple(make_candidates(3))))

        store.gate.set()
        await task

        assert session.filename == "b.pdf"
        assert len(session.candidates) == 3
        assert session.selection == frozenset({0, 1, 2})
        assert len(await store.list()) == 2
