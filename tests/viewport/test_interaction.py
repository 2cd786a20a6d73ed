"""Tests for the pointer interaction state machine."""

import pytest

from shieldgrid.contracts import ClaimFailure, InvalidClaim
from shieldgrid.ledger import OwnershipScope
from shieldgrid.viewport import (
    Camera,
    InteractionEngine,
    InteractionState,
    PointerButton,
    PointerEvent,
)

pytestmark = [pytest.mark.unit, pytest.mark.viewport]


def at(x, y, **kwargs):
    """Pointer event at the center of grid cell (x, y) for a 10 px camera."""
    return PointerEvent(x * 10 + 5, y * 10 + 5, **kwargs)


@pytest.fixture
def redraws():
    return []


@pytest.fixture
def engine(ledger, redraws):
    camera = Camera(grid_size=10, cell_size=10, scale=1.0)
    eng = InteractionEngine(ledger, camera, redraw=lambda: redraws.append(1))
    yield eng
    eng.close()


@pytest.fixture
def owned(engine, ledger):
    """Session owns (0, 0) and (1, 0), red."""
    txn = ledger.claim([(0, 0, "#FF0000"), (1, 0, "#FF0000")], transaction_id="T1")
    engine.scope.add(txn)
    return txn


class TestSelection:

    def test_drag_selects_available_cells_in_box(self, engine, ledger):
        """Drag (0,0)..(2,2) with (1,1) claimed selects the other 8."""
        ledger.claim([(1, 1, "#000000")])

        assert engine.pointer_down(at(0, 0)) is InteractionState.SELECTING
        engine.pointer_move(at(2, 2))
        assert engine.pointer_up() is InteractionState.IDLE

        assert len(engine.selection) == 8
        assert (1, 1) not in engine.selection
        assert engine.selected_cells()[:3] == [(0, 0), (1, 0), (2, 0)]

    def test_click_toggles(self, engine):
        engine.pointer_down(at(3, 4))
        engine.pointer_up()
        assert engine.selection == {(3, 4)}

        engine.pointer_down(at(3, 4))
        engine.pointer_up()
        assert engine.selection == set()

    def test_jitter_inside_anchor_cell_keeps_click(self, engine):
        engine.pointer_down(at(3, 4))
        engine.pointer_move(PointerEvent(37, 48))
        engine.pointer_up()

        assert engine.selection == {(3, 4)}

    def test_drag_back_to_anchor_shrinks_selection(self, engine):
        engine.pointer_down(at(0, 0))
        engine.pointer_move(at(2, 0))
        engine.pointer_move(at(0, 0))
        engine.pointer_up()

        assert engine.selection == {(0, 0)}

    def test_drag_off_grid_keeps_last_rect(self, engine):
        engine.pointer_down(at(8, 8))
        engine.pointer_move(at(9, 9))
        engine.pointer_move(at(12, 12))

        assert engine.selection == {(8, 8), (9, 8), (8, 9), (9, 9)}

    def test_modifier_starts_rect_without_toggle(self, engine):
        state = engine.pointer_down(at(0, 0, modifiers=frozenset({"shift"})))
        assert state is InteractionState.SELECTING
        assert engine.selection == set()

        engine.pointer_move(at(1, 0))
        assert engine.selection == {(0, 0), (1, 0)}

    def test_selected_cells_row_major(self, engine):
        for c in [(2, 1), (0, 1), (5, 0)]:
            engine.toggle(*c)
        assert engine.selected_cells() == [(5, 0), (0, 1), (2, 1)]

    def test_locked_cell_cannot_be_toggled(self, engine, ledger):
        ledger.claim([(4, 4, "#000000")])
        assert engine.toggle(4, 4) is False
        assert engine.toggle(-1, 0) is False
        assert engine.selection == set()

    def test_select_rect_clamps_to_grid(self, engine):
        engine.select_rect((8, 8), (20, 20))
        assert engine.selection == {(8, 8), (9, 8), (8, 9), (9, 9)}

    def test_claim_elsewhere_prunes_selection(self, engine, ledger):
        engine.toggle(0, 0)
        engine.toggle(1, 0)

        ledger.claim([(1, 0, "#000000")])

        assert engine.selection == {(0, 0)}

    def test_claim_during_drag_is_excluded(self, engine, ledger):
        engine.pointer_down(at(0, 0))
        engine.pointer_move(at(2, 2))
        assert len(engine.selection) == 9

        ledger.claim([(1, 1, "#000000")])
        assert (1, 1) not in engine.selection

        engine.pointer_move(at(2, 3))
        engine.pointer_up()

        assert len(engine.selection) == 11
        assert (1, 1) not in engine.selection

    def test_cell_expiring_during_drag_becomes_selectable(self, engine, ledger, clock):
        ledger.claim([(1, 1, "#000000")])
        engine.pointer_down(at(0, 0))
        engine.pointer_move(at(2, 2))
        assert (1, 1) not in engine.selection

        clock.advance(milliseconds=1000)
        engine.pointer_move(at(2, 1))
        engine.pointer_move(at(2, 2))
        engine.pointer_up()

        assert len(engine.selection) == 9
        assert (1, 1) in engine.selection
        assert ledger.is_available(1, 1)

    def test_clear_selection(self, engine, redraws):
        engine.toggle(0, 0)
        redraws.clear()
        engine.clear_selection()
        assert engine.selection == set()
        assert redraws


class TestPanning:

    def test_press_on_locked_cell_pans(self, engine, ledger, redraws):
        ledger.claim([(0, 0, "#000000")])

        assert engine.pointer_down(at(0, 0)) is InteractionState.PANNING
        engine.pointer_move(PointerEvent(25, 15))

        assert engine.camera.state() == (20.0, 10.0, 1.0)
        assert redraws

    def test_secondary_button_pans_even_on_available_cell(self, engine):
        state = engine.pointer_down(at(0, 0, button=PointerButton.SECONDARY))
        assert state is InteractionState.PANNING
        assert engine.selection == set()

    def test_press_off_grid_pans(self, engine):
        assert engine.pointer_down(PointerEvent(500, 500)) is InteractionState.PANNING

    def test_pan_accumulates_deltas(self, engine):
        engine.pointer_down(PointerEvent(500, 500))
        engine.pointer_move(PointerEvent(510, 500))
        engine.pointer_move(PointerEvent(530, 490))
        engine.pointer_up()
        engine.pointer_move(PointerEvent(600, 600))

        assert engine.camera.state() == (30.0, -10.0, 1.0)


class TestHoverAndWheel:

    def test_hover_tracks_cell(self, engine, redraws):
        engine.pointer_move(at(3, 4))
        assert engine.hover == (3, 4)
        assert len(redraws) == 1

        engine.pointer_move(PointerEvent(36, 46))
        assert len(redraws) == 1

        engine.pointer_move(PointerEvent(-5, 5))
        assert engine.hover is None

    def test_leave_clears_hover_and_gesture(self, engine):
        engine.pointer_move(at(1, 1))
        engine.pointer_down(at(1, 1))

        assert engine.pointer_leave() is InteractionState.IDLE
        assert engine.hover is None

    def test_wheel_zooms_at_pointer(self, engine, redraws):
        assert engine.wheel(50, 50, -1) is True
        assert engine.camera.scale == pytest.approx(1.1)
        assert engine.camera.to_grid(50, 50) == (5, 5)

        engine.wheel(50, 50, 1)
        assert engine.camera.scale == pytest.approx(0.99)
        assert len(redraws) == 2

    def test_wheel_at_bound_does_not_redraw(self, engine, redraws):
        engine.camera.zoom_at(0, 0, 100)
        assert engine.wheel(0, 0, -1) is False
        assert redraws == []


class TestTouch:

    def test_single_touch_selects(self, engine):
        engine.touch_start([(5, 5)])
        engine.touch_move([(25, 5)])
        engine.touch_end()

        assert engine.selection == {(0, 0), (1, 0), (2, 0)}

    def test_multi_touch_is_ignored(self, engine):
        assert engine.touch_start([(5, 5), (50, 50)]) is InteractionState.IDLE
        assert engine.selection == set()


class TestPaint:

    def test_paint_owned_cells(self, engine, ledger, owned):
        engine.set_paint_mode(True)
        engine.set_paint_color("lime")

        assert engine.pointer_down(at(0, 0)) is InteractionState.PAINTING
        engine.pointer_move(at(1, 0))
        engine.pointer_move(at(2, 0))
        engine.pointer_up()

        assert ledger.get_cell(0, 0).color == "#00FF00"
        assert ledger.get_cell(1, 0).color == "#00FF00"
        assert ledger.is_available(2, 0)

    def test_paint_mode_on_unowned_cell_does_nothing(self, engine, ledger, owned):
        ledger.claim([(5, 5, "#0000FF")], transaction_id="OTHER")
        engine.set_paint_mode(True)

        assert engine.pointer_down(at(5, 5)) is InteractionState.IDLE
        assert engine.pointer_down(at(6, 6)) is InteractionState.IDLE
        assert ledger.get_cell(5, 5).color == "#0000FF"
        assert engine.selection == set()

    def test_paint_mode_off_grid_pans(self, engine, owned):
        engine.set_paint_mode(True)
        assert engine.pointer_down(PointerEvent(500, 500)) is InteractionState.PANNING

    def test_erase_restores_original_color(self, engine, ledger, owned):
        ledger.recolor(0, 0, "#00FF00", owned)
        engine.set_paint_mode(True)
        engine.set_erase_mode(True)

        engine.pointer_down(at(0, 0))
        engine.pointer_up()

        assert ledger.get_cell(0, 0).color == "#FF0000"

    def test_disabling_paint_mode_mid_stroke_returns_to_idle(self, engine, owned):
        engine.toggle(5, 5)
        engine.set_paint_mode(True)
        assert engine.selection == set()

        engine.pointer_down(at(0, 0))
        engine.set_paint_mode(False)

        assert engine.state is InteractionState.IDLE
        assert engine.paint_mode is False

    def test_cell_expiring_mid_stroke_is_skipped(self, engine, ledger, clock, owned):
        clock.advance(milliseconds=600)
        engine.scope.add(ledger.claim([(2, 0, "#FF0000")], transaction_id="T2"))
        engine.set_paint_mode(True)
        engine.set_paint_color("lime")

        assert engine.pointer_down(at(2, 0)) is InteractionState.PAINTING
        clock.advance(milliseconds=500)

        # (0, 0) and (1, 0) expired between press and move
        assert engine.pointer_move(at(1, 0)) is InteractionState.PAINTING
        assert engine.pointer_move(at(0, 0)) is InteractionState.PAINTING
        engine.pointer_up()

        assert ledger.get_cell(2, 0).color == "#00FF00"
        assert ledger.get_cell(1, 0) is None
        assert ledger.is_available(0, 0)
        assert ledger.is_available(1, 0)

    def test_cell_claimed_by_other_mid_stroke_is_not_painted(self, engine, ledger, clock, owned):
        engine.set_paint_mode(True)
        engine.set_paint_color("lime")
        engine.pointer_down(at(0, 0))

        clock.advance(milliseconds=1000)
        engine.pointer_move(at(2, 0))
        ledger.claim([(1, 0, "#0000FF")], transaction_id="OTHER")
        engine.pointer_move(at(1, 0))
        engine.pointer_up()

        assert ledger.get_cell(1, 0).color == "#0000FF"
        assert ledger.owner_of(1, 0) == "OTHER"

    def test_bad_paint_color_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.set_paint_color("not-a-color")
        assert engine.paint_color == "#FF0000"


class TestCommitClaim:

    def test_commit_claims_selection(self, engine, ledger, redraws):
        engine.toggle(1, 0)
        engine.toggle(0, 0)

        txn = engine.commit_claim("#123456", "a@example.org", username="Athena")

        assert txn in engine.scope
        assert ledger.owner_of(0, 0) == txn
        assert ledger.owner_of(1, 0) == txn
        assert ledger.get_record(txn).username == "Athena"
        assert ledger.get_cell(0, 0).color == "#123456"
        assert engine.selection == set()

    def test_commit_with_explicit_transaction_id(self, engine, ledger):
        engine.toggle(0, 0)
        assert engine.commit_claim("#123456", transaction_id="TXN-EXT") == "TXN-EXT"

    def test_empty_selection_is_invalid(self, engine):
        with pytest.raises(InvalidClaim) as exc:
            engine.commit_claim("#123456")
        assert exc.value.reason is ClaimFailure.INVALID_INPUT

    def test_stale_selection_is_pruned_and_reported(self, ledger):
        camera = Camera(grid_size=10, cell_size=10, scale=1.0)
        engine = InteractionEngine(ledger, camera)
        engine.toggle(0, 0)
        engine.toggle(1, 0)
        # Detached engine misses the claim notification
        engine.close()
        ledger.claim([(1, 0, "#000000")])

        with pytest.raises(InvalidClaim) as exc:
            engine.commit_claim("#123456")

        assert exc.value.already_taken
        assert exc.value.coords == ((1, 0),)
        assert engine.selection == {(0, 0)}

        txn = engine.commit_claim("#123456")
        assert ledger.owner_of(0, 0) == txn

    def test_shared_scope(self, ledger):
        scope = OwnershipScope()
        engine = InteractionEngine(ledger, Camera(10, cell_size=10, scale=1.0), scope=scope)
        engine.toggle(2, 2)

        txn = engine.commit_claim("#FF0000")

        assert txn in scope
        engine.close()


def test_from_config(small_config, ledger):
    camera = Camera.from_config(small_config)
    engine = InteractionEngine.from_config(small_config, ledger, camera)

    assert engine.paint_color == small_config.interaction.paint_color
    assert engine.wheel_zoom_in == small_config.viewport.wheel_zoom_in
    assert engine.selection_modifiers == frozenset(small_config.interaction.selection_modifiers)
    engine.close()
