"""
Gallery grid geometry and layout-mode state.

Column count is a step function of the participant count:

====================  =======
participants          columns
====================  =======
0 - 1                 1
2 - 4                 2
5 - 9                 3
10 - 12               4
13+                   ceil(sqrt(count)), capped at ``max_cols``
====================  =======
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from sy_common.config import get_settings

if TYPE_CHECKING:
    from conference.active_speaker import ActiveSpeakerDetector

logger = structlog.get_logger()

DEFAULT_TILE = (320, 180)


class LayoutMode(str, enum.Enum):
    GRID = "grid"
    SPEAKER = "speaker"
    SIDEBAR = "sidebar"
    SPOTLIGHT = "spotlight"


@dataclass(frozen=True, slots=True)
class GridLayout:
    """Computed gallery geometry.

    Attributes:
        columns: Grid columns.
        rows: Grid rows.
        tile_width: Tile width in pixels.
        tile_height: Tile height in pixels.
        visible: Participants that fit in the grid.
    """

    columns: int
    rows: int
    tile_width: int
    tile_height: int
    visible: int


def grid_columns(count: int, max_cols: int = 4) -> int:
    if count <= 1:
        cols = 1
    elif count <= 4:
        cols = 2
    elif count <= 9:
        cols = 3
    elif count <= 12:
        cols = 4
    else:
        cols = math.ceil(math.sqrt(count))
    return max(1, min(max_cols, cols))


def grid_rows(count: int, columns: int, max_rows: int = 4) -> int:
    return max(1, min(max_rows, math.ceil(count / max(1, columns))))


def tile_size(
    columns: int,
    rows: int,
    width: int | None = None,
    height: int | None = None,
    gap: int = 8,
) -> tuple[int, int]:
    """Return ``(tile_width, tile_height)`` for the container.

    Without a known container size the default 16:9 tile is returned.
    """
    if not width or not height or width <= 0 or height <= 0:
        return DEFAULT_TILE
    tile_w = (width - gap * (columns - 1)) // columns
    tile_h = (height - gap * (rows - 1)) // rows
    return max(0, tile_w), max(0, tile_h)


def compute_layout(
    count: int,
    width: int | None = None,
    height: int | None = None,
    *,
    gap: int = 8,
    max_cols: int = 4,
    max_rows: int = 4,
) -> GridLayout:
    columns = grid_columns(count, max_cols)
    rows = grid_rows(count, columns, max_rows)
    tile_w, tile_h = tile_size(columns, rows, width, height, gap)
    return GridLayout(
        columns=columns,
        rows=rows,
        tile_width=tile_w,
        tile_height=tile_h,
        visible=min(max(0, count), columns * rows),
    )


class GalleryLayout:
    """Layout mode, pin, and container state for one gallery.

    Args:
        detector: Active-speaker detector followed when nothing is pinned.
        mode: Initial layout mode.
        gap: Tile gap in pixels.  Defaults to ``Settings.gallery_gap``.
        max_cols: Column cap.  Defaults to ``Settings.gallery_max_cols``.
        max_rows: Row cap.  Defaults to ``Settings.gallery_max_rows``.
    """

    def __init__(
        self,
        detector: ActiveSpeakerDetector | None = None,
        *,
        mode: LayoutMode = LayoutMode.GRID,
        gap: int | None = None,
        max_cols: int | None = None,
        max_rows: int | None = None,
    ) -> None:
        settings = get_settings()
        self.detector = detector
        self.mode = LayoutMode(mode)
        self.gap = settings.gallery_gap if gap is None else gap
        self.max_cols = max_cols or settings.gallery_max_cols
        self.max_rows = max_rows or settings.gallery_max_rows
        self.pinned_id: str | None = None
        self.width: int | None = None
        self.height: int | None = None

    def set_mode(self, mode: LayoutMode | str) -> None:
        self.mode = LayoutMode(mode)
        logger.debug("layout_mode_changed", mode=self.mode.value)

    def set_container(self, width: int | None, height: int | None) -> None:
        self.width, self.height = width, height

    def pin(self, participant_id: str) -> None:
        self.pinned_id = participant_id
        logger.debug("participant_pinned", participant_id=participant_id)

    def unpin(self) -> None:
        logger.debug("participant_unpinned", participant_id=self.pinned_id)
        self.pinned_id = None

    def is_pinned(self, participant_id: str) -> bool:
        return self.pinned_id == participant_id

    @property
    def focused_id(self) -> str | None:
        """Participant given focus: none in grid mode, else pin then speaker."""
        if self.mode is LayoutMode.GRID:
            return None
        if self.pinned_id is not None:
            return self.pinned_id
        if self.detector is not None:
            return self.detector.active_speaker_id
        return None

    def compute(self, count: int) -> GridLayout:
        return compute_layout(
            count,
            self.width,
            self.height,
            gap=self.gap,
            max_cols=self.max_cols,
            max_rows=self.max_rows,
        )

    def grid_style(self, count: int) -> str:
        columns = grid_columns(count, self.max_cols)
        return f"display: grid; grid-template-columns: repeat({columns}, 1fr); gap: {self.gap}px;"
