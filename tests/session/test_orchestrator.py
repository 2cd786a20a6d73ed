"""Tests for GridSession lifecycle, scheduled work and owner operations."""

from datetime import timedelta

import pytest

from shieldgrid.contracts import ClaimFailure, InvalidClaim
from shieldgrid.ledger import GridLedger, MemorySnapshotStore
from shieldgrid.render import FrameStats
from shieldgrid.session import GridSession

pytestmark = [pytest.mark.unit, pytest.mark.session]


class RecordingAuthorizer:
    """Confirms every claim with a fixed id and remembers what it saw."""

    def __init__(self, transaction_id="PAY-1"):
        self.transaction_id = transaction_id
        self.calls = []

    def authorize(self, cells, contact_info):
        self.calls.append((list(cells), contact_info))
        return self.transaction_id


@pytest.fixture
def store():
    return MemorySnapshotStore()


@pytest.fixture
def session(small_config, store, clock):
    s = GridSession(small_config, store=store, clock=clock)
    s.open()
    yield s
    s.stop()


def _stored_snapshot(clock, *claims):
    ledger = GridLedger(10, timedelta(seconds=1), clock=clock)
    for kwargs in claims:
        ledger.claim(**kwargs)
    return ledger.snapshot()


class TestLifecycle:

    def test_open_schedules_tasks(self, session):
        names = sorted(t.name for t in session.tasks)

        assert names == ["autosave", "display", "status", "sweep"]
        assert session.running

    def test_open_centers_grid(self, session):
        # 10 cells * 10 px * 0.5 = 50 px grid in an 800 x 600 viewport
        assert session.camera.state() == (375.0, 275.0, 0.5)

    def test_open_twice_fails(self, session):
        with pytest.raises(RuntimeError):
            session.open()

    def test_open_after_stop_fails(self, small_config, clock):
        s = GridSession(small_config, clock=clock)
        s.stop()
        with pytest.raises(RuntimeError):
            s.open()

    def test_open_restores_and_adopts_records(self, small_config, clock):
        snapshot = _stored_snapshot(clock, {"cells": [(1, 1, "#FF0000")], "transaction_id": "T1"})
        s = GridSession(small_config, store=MemorySnapshotStore(snapshot), clock=clock)

        counts = s.open()

        assert counts["cells"] == 1
        assert "T1" in s.scope
        assert s.ledger.owned_count(s.scope) == 1
        s.stop()

    def test_open_with_expired_cells_saves_on_stop(self, small_config, clock):
        snapshot = _stored_snapshot(clock, {"cells": [(1, 1, "#FF0000")]})
        clock.advance(seconds=2)
        store = MemorySnapshotStore(snapshot)
        s = GridSession(small_config, store=store, clock=clock)

        assert s.open()["expired"] == 1
        s.stop()

        assert store.save_count == 1
        assert store.load()["cells"] == {}

    def test_stop_is_idempotent(self, session, store):
        session.claim([(0, 0, "#FF0000")])

        session.stop()
        session.stop()

        assert not session.running
        assert store.save_count == 1
        assert session.bus.subscriber_count == 0
        assert session.scheduler.tasks == []

    def test_stop_without_changes_does_not_save(self, session, store):
        session.stop()
        assert store.save_count == 0

    def test_default_store_is_memory(self, small_config, clock):
        s = GridSession(small_config, clock=clock)
        assert isinstance(s.store, MemorySnapshotStore)


class TestScheduledWork:

    def test_display_refresh_draws_when_dirty(self, session, clock):
        clock.advance(milliseconds=16)
        session.tick()

        assert session.frame_count == 1
        assert isinstance(session.last_frame, FrameStats)

        clock.advance(milliseconds=16)
        session.tick()
        assert session.frame_count == 1

        session.engine.toggle(0, 0)
        clock.advance(milliseconds=16)
        session.tick()
        assert session.frame_count == 2
        assert session.last_frame.selected_count == 1

    def test_autosave_only_when_changed(self, session, store, clock):
        clock.advance(milliseconds=5000)
        session.tick()
        assert store.save_count == 0

        session.claim([(0, 0, "#FF0000")])
        clock.advance(milliseconds=5000)
        session.tick()
        assert store.save_count == 1

        clock.advance(milliseconds=5000)
        session.tick()
        assert store.save_count == 1

    def test_sweep_removes_expired_cells(self, make_config, clock):
        config = make_config(GRID_SIZE=10, LOCK_DURATION=timedelta(seconds=1),
                             SWEEP_INTERVAL_MS=2000, PERSISTENCE_BACKEND="memory")
        s = GridSession(config, clock=clock)
        s.open()
        s.claim([(0, 0, "#FF0000"), (1, 0, "#FF0000")])

        clock.advance(milliseconds=2000)
        s.tick()

        assert len(s.ledger) == 0
        s.stop()

    def test_saved_frames(self, make_config, clock, output_dirs):
        config = make_config(GRID_SIZE=10, PERSISTENCE_BACKEND="memory",
                             render={"save_frames": True})
        s = GridSession(config, clock=clock, output_dirs=output_dirs)
        s.open()

        clock.advance(milliseconds=16)
        s.tick()
        s.stop()

        assert len(list(output_dirs["frames"].rglob("*.png"))) == 1
        assert s.last_frame.output_path is not None


class TestClaims:

    def test_claim_selection_goes_through_authorizer(self, small_config, clock):
        authorizer = RecordingAuthorizer()
        s = GridSession(small_config, clock=clock, authorizer=authorizer)
        s.open()
        s.engine.toggle(1, 0)
        s.engine.toggle(0, 0)

        txn = s.claim_selection("#FF0000", "a@example.org")

        assert txn == "PAY-1"
        assert [(c.x, c.y) for c in authorizer.calls[0][0]] == [(0, 0), (1, 0)]
        assert authorizer.calls[0][1] == "a@example.org"
        assert "PAY-1" in s.scope
        assert s.ledger.owner_of(0, 0) == "PAY-1"
        s.stop()

    def test_empty_selection_is_not_authorized(self, small_config, clock):
        authorizer = RecordingAuthorizer()
        s = GridSession(small_config, clock=clock, authorizer=authorizer)
        s.open()

        with pytest.raises(InvalidClaim) as exc:
            s.claim_selection("#FF0000")

        assert exc.value.reason is ClaimFailure.INVALID_INPUT
        assert authorizer.calls == []
        s.stop()

    @pytest.mark.parametrize("cells", [[{"x": 1, "y": 1}], [(1, "a", "#FF0000")], [(1, 1, "nope")]])
    def test_malformed_cells_are_rejected_before_authorizing(self, small_config, clock, cells):
        authorizer = RecordingAuthorizer()
        s = GridSession(small_config, clock=clock, authorizer=authorizer)
        s.open()

        with pytest.raises(InvalidClaim) as exc:
            s.claim(cells)

        assert exc.value.reason is ClaimFailure.INVALID_INPUT
        assert authorizer.calls == []
        assert len(s.scope) == 0
        assert s.ledger.all_cells() == []
        s.stop()

    def test_claim_joins_scope(self, session):
        txn = session.claim([(2, 2, "#FF0000")], username="Athena")

        assert txn in session.scope
        assert [v.transaction_id for v in session.my_transactions()] == [txn]

    def test_claim_of_taken_cell(self, session):
        session.claim([(2, 2, "#FF0000")])
        with pytest.raises(InvalidClaim) as exc:
            session.claim([(2, 2, "#00FF00")])
        assert exc.value.already_taken

    def test_clear_my_cells(self, session):
        session.claim([(0, 0, "#FF0000")])
        session.claim([(5, 5, "#FF0000")])

        assert session.clear_my_cells() == 2
        assert len(session.scope) == 0
        assert session.ledger.all_cells() == []

    def test_clear_all(self, session):
        session.claim([(0, 0, "#FF0000")])
        session.engine.toggle(3, 3)

        session.clear_all()

        assert len(session.scope) == 0
        assert session.engine.selection == set()
        assert session.ledger.all_cells() == []


class TestViewButtons:

    def test_zoom_in_and_out_about_center(self, session):
        # Grid centered at scale 0.5: viewport center sits on grid point (5, 5)
        assert session.zoom_in()
        assert session.camera.scale == pytest.approx(0.75)
        assert session.camera.to_grid(400, 300) == (5, 5)

        assert session.zoom_out()
        assert session.camera.scale == pytest.approx(0.5)
        assert session.loop.dirty

    def test_zoom_out_at_min_scale(self, session):
        session.camera.scale = session.camera.min_scale
        assert session.zoom_out() is False

    def test_center_view(self, session):
        session.camera.pan(100, -40)
        session.center_view()
        assert session.camera.state() == (375.0, 275.0, 0.5)

    def test_center_on_transaction(self, session):
        txn = session.claim([(2, 2, "#FF0000"), (3, 3, "#FF0000")])

        assert session.center_on_transaction(txn)
        # 2 x 2 cells fitted, scale capped at center_max_scale
        assert session.camera.scale == pytest.approx(4.0)
        assert session.camera.to_grid(400, 300) == (3, 3)
        assert session.center_on_transaction("UNKNOWN") is False


class TestExportImportRender:

    def test_export_then_import(self, session, small_config, clock, temp_dir):
        txn = session.claim([(0, 0, "#FF0000")])
        path = session.export_json(temp_dir / "export.json")

        other = GridSession(small_config, clock=clock)
        other.open()
        counts = other.import_json(path)

        assert counts["cells"] == 1
        assert txn in other.scope
        other.stop()

    def test_import_missing_file_leaves_ledger(self, session, temp_dir):
        session.claim([(0, 0, "#FF0000")])

        assert session.import_json(temp_dir / "missing.json") is None
        assert len(session.ledger.all_cells()) == 1

    def test_render_section_needs_path_without_output_dirs(self, session):
        txn = session.claim([(0, 0, "#FF0000")])
        with pytest.raises(ValueError):
            session.render_section(txn)

    def test_render_section_default_path(self, small_config, clock, output_dirs):
        s = GridSession(small_config, clock=clock, output_dirs=output_dirs)
        s.open()
        txn = s.claim([(0, 0, "#FF0000")])

        saved = s.render_section(txn)

        assert saved == str(output_dirs["sections"] / f"section_{txn}.png")
        s.stop()

    def test_render_frame(self, session, temp_dir):
        session.claim([(0, 0, "#FF0000")])

        stats = session.render_frame(temp_dir / "frame")

        assert stats.output_path.endswith("frame.png")
        assert stats.claimed_drawn == 1
        assert stats.owned_count == 1
