from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

COLOR_OPACITY_SUFFIX = "33"


@dataclass(frozen=True)
class ColumnColor:
    name: str
    value: str


COLUMN_COLORS: tuple[ColumnColor, ...] = (
    ColumnColor("Blue", "#3B82F6"),
    ColumnColor("Green", "#10B981"),
    ColumnColor("Yellow", "#F59E0B"),
    ColumnColor("Red", "#EF4444"),
    ColumnColor("Purple", "#8B5CF6"),
    ColumnColor("Pink", "#EC4899"),
    ColumnColor("Cyan", "#06B6D4"),
    ColumnColor("Orange", "#F97316"),
)


@dataclass
class ColumnViewState:
    """Client-side projection over a table's physical columns.

    Indices always refer to positions in the fetched `columns` list. The view
    is seeded once per table selection and survives page, sort and filter
    changes for that table.
    """

    order: list[int] = field(default_factory=list)
    visibility: dict[int, bool] = field(default_factory=dict)
    colors: dict[int, str | None] = field(default_factory=dict)

    @property
    def is_initialized(self) -> bool:
        return bool(self.order)

    def initialize(self, columns: Sequence[str]) -> bool:
        """Seed identity order, all visible, no colours. No-op once seeded."""
        if self.is_initialized or not columns:
            return False
        self.order = list(range(len(columns)))
        self.visibility = {index: True for index in self.order}
        self.colors = {index: None for index in self.order}
        return True

    def reset(self) -> None:
        self.order = []
        self.visibility = {}
        self.colors = {}

    def is_visible(self, index: int) -> bool:
        return self.visibility.get(index, True) is not False

    def visible_ordered_columns(self, columns: Sequence[str]) -> list[int]:
        """Physical indices to display, in view order.

        Blank-named columns (unnamed expressions) are never displayed.
        """
        visible: list[int] = []
        for index in self.order:
            if not self.is_visible(index):
                continue
            if index >= len(columns) or not str(columns[index] or "").strip():
                continue
            visible.append(index)
        return visible

    def reorder(self, dragged: int, target: int) -> None:
        """Move `dragged` to the slot `target` occupied before the move."""
        if dragged == target or dragged not in self.order or target not in self.order:
            return
        target_position = self.order.index(target)
        self.order.remove(dragged)
        self.order.insert(target_position, dragged)

    def toggle_visible(self, index: int) -> bool:
        self.visibility[index] = not self.is_visible(index)
        return self.visibility[index]

    def set_color(self, index: int, color: str | None) -> None:
        self.colors[index] = color or None

    def display_color(self, index: int) -> str | None:
        color = self.colors.get(index)
        if not color:
            return None
        return f"{color}{COLOR_OPACITY_SUFFIX}"

    def physical_index(self, display_index: int, columns: Sequence[str]) -> int:
        visible = self.visible_ordered_columns(columns)
        if display_index < 0 or display_index >= len(visible):
            raise IndexError(f"Display column {display_index} is not visible.")
        return visible[display_index]
