"""Tests for gallery grid geometry and layout-mode state."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conference.gallery_layout import (
    DEFAULT_TILE,
    GalleryLayout,
    GridLayout,
    LayoutMode,
    compute_layout,
    grid_columns,
)


class TestBreakpoints:

    @pytest.mark.parametrize(
        ("count", "grid"),
        [(0, (1, 1)), (1, (1, 1)), (2, (2, 1)), (3, (2, 2)), (4, (2, 2)), (5, (3, 2)),
         (6, (3, 2)), (7, (3, 3)), (9, (3, 3)), (10, (4, 3)), (12, (4, 3)), (13, (4, 4))],
    )
    def test_columns_and_rows(self, count: int, grid: tuple[int, int]) -> None:
        layout = compute_layout(count, max_cols=4, max_rows=4)
        assert (layout.columns, layout.rows) == grid

    def test_large_rooms_capped(self) -> None:
        layout = compute_layout(30, max_cols=4, max_rows=4)
        assert (layout.columns, layout.rows) == (4, 4)
        assert layout.visible == 16

    def test_sqrt_above_twelve(self) -> None:
        assert grid_columns(17, max_cols=8) == 5

    def test_column_cap_applies_everywhere(self) -> None:
        assert grid_columns(6, max_cols=2) == 2

    def test_monotonic(self) -> None:
        columns = [grid_columns(n) for n in range(40)]
        assert columns == sorted(columns)


class TestTileSize:

    def test_container_with_gap(self) -> None:
        layout = compute_layout(4, 800, 600, gap=8)
        assert layout == GridLayout(columns=2, rows=2, tile_width=396, tile_height=296, visible=4)

    def test_default_without_container(self) -> None:
        layout = compute_layout(4)
        assert (layout.tile_width, layout.tile_height) == DEFAULT_TILE

    def test_zero_sized_container_uses_default(self) -> None:
        layout = compute_layout(4, 0, 600)
        assert (layout.tile_width, layout.tile_height) == DEFAULT_TILE


class TestGalleryLayout:

    def test_compute_uses_container(self) -> None:
        gallery = GalleryLayout(gap=8, max_cols=4, max_rows=4)
        gallery.set_container(800, 600)
        assert gallery.compute(4).tile_width == 396

    def test_grid_style(self) -> None:
        gallery = GalleryLayout(gap=12, max_cols=4, max_rows=4)
        assert gallery.grid_style(6) == "display: grid; grid-template-columns: repeat(3, 1fr); gap: 12px;"

    def test_set_mode_accepts_strings(self) -> None:
        gallery = GalleryLayout()
        gallery.set_mode("sidebar")
        assert gallery.mode is LayoutMode.SIDEBAR

    def test_unknown_mode_rejected(self) -> None:
        with pytest.raises(ValueError):
            GalleryLayout().set_mode("carousel")


class TestFocus:

    def test_grid_mode_has_no_focus(self) -> None:
        gallery = GalleryLayout(MagicMock(active_speaker_id="PJSIP/1002-1"))
        gallery.pin("PJSIP/1001-1")
        assert gallery.focused_id is None

    def test_pin_overrides_speaker(self) -> None:
        gallery = GalleryLayout(MagicMock(active_speaker_id="PJSIP/1002-1"), mode=LayoutMode.SPEAKER)
        gallery.pin("PJSIP/1001-1")
        assert gallery.focused_id == "PJSIP/1001-1"
        assert gallery.is_pinned("PJSIP/1001-1")

    def test_follows_speaker_when_unpinned(self) -> None:
        gallery = GalleryLayout(MagicMock(active_speaker_id="PJSIP/1002-1"), mode=LayoutMode.SPOTLIGHT)
        gallery.pin("PJSIP/1001-1")
        gallery.unpin()
        assert gallery.focused_id == "PJSIP/1002-1"

    def test_no_detector(self) -> None:
        gallery = GalleryLayout(mode=LayoutMode.SPEAKER)
        assert gallery.focused_id is None
