"""Drag selection over a grid of slot keys.

One gesture starts on a cell, grows while the pointer (or finger) passes
over further cells, and commits on release. The anchor cell decides the
mode: starting on a selected cell removes every touched cell, starting on
an unselected one adds them.

Pressing again while a gesture is still active commits that gesture first
and then starts the new one, so a lost release event never drops a
gesture or leaves the machine dragging.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Literal

Mode = Literal["add", "remove"]
HitTest = Callable[[float, float], str | None]


@dataclass(frozen=True)
class Idle:
    pass


@dataclass
class Dragging:
    mode: Mode
    anchor_key: str
    accumulated: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class Commit:
    mode: Mode
    keys: frozenset[str]


def apply_commit(selection: Iterable[str], commit: Commit) -> set[str]:
    result = set(selection)
    if commit.mode == "add":
        return result | commit.keys
    return result - commit.keys


class DragSelection:
    def __init__(self, on_commit: Callable[[Commit], None] | None = None) -> None:
        self.state: Idle | Dragging = Idle()
        self._on_commit = on_commit

    @property
    def is_selecting(self) -> bool:
        return isinstance(self.state, Dragging)

    @property
    def mode(self) -> Mode | None:
        return self.state.mode if isinstance(self.state, Dragging) else None

    @property
    def pending(self) -> frozenset[str]:
        """Cells touched by the active gesture."""
        if isinstance(self.state, Dragging):
            return frozenset(self.state.accumulated)
        return frozenset()

    def pointer_down(self, key: str, was_selected: bool) -> Commit | None:
        """Start a gesture; returns the commit of a gesture it cut short."""
        previous = self._commit()
        self.state = Dragging(
            mode="remove" if was_selected else "add",
            anchor_key=key,
            accumulated={key},
        )
        return previous

    def pointer_enter(self, key: str) -> None:
        if isinstance(self.state, Dragging):
            self.state.accumulated.add(key)

    def touch_move(self, x: float, y: float, hit_test: HitTest) -> str | None:
        if not isinstance(self.state, Dragging):
            return None
        key = hit_test(x, y)
        if key is not None:
            self.state.accumulated.add(key)
        return key

    def pointer_up(self) -> Commit | None:
        return self._commit()

    touch_start = pointer_down
    touch_end = pointer_up
    # release anywhere on the page, outside the grid included
    release = pointer_up

    def _commit(self) -> Commit | None:
        if not isinstance(self.state, Dragging):
            return None
        commit = Commit(mode=self.state.mode, keys=frozenset(self.state.accumulated))
        self.state = Idle()
        if self._on_commit is not None:
            self._on_commit(commit)
        return commit


class SlotSelection:
    """A participant's selected keys, edited through drag gestures."""

    def __init__(self, selected: Iterable[str] = (), read_only: bool = False) -> None:
        self.selected: set[str] = set(selected)
        self.read_only = read_only
        self.drag = DragSelection(on_commit=self._apply)

    def _apply(self, commit: Commit) -> None:
        if self.read_only:
            return
        self.selected = apply_commit(self.selected, commit)

    def press(self, key: str) -> None:
        self.drag.pointer_down(key, key in self.selected)

    def is_highlighted(self, key: str) -> bool:
        """Whether a cell currently renders as selected, pending gesture included."""
        if key in self.drag.pending:
            return self.drag.mode == "add"
        return key in self.selected


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px < self.x + self.width and self.y <= py < self.y + self.height


class CellLayout:
    """Screen rectangles of grid cells, used to resolve touch coordinates."""

    def __init__(self) -> None:
        self._cells: list[tuple[str, Rect]] = []

    def place(self, key: str, rect: Rect) -> None:
        self._cells.append((key, rect))

    def hit_test(self, x: float, y: float) -> str | None:
        # later cells are drawn over earlier ones
        for key, rect in reversed(self._cells):
            if rect.contains(x, y):
                return key
        return None

    @classmethod
    def grid(
        cls,
        keys: Iterable[str],
        columns: int,
        cell_width: float,
        cell_height: float,
        gap: float = 0.0,
    ) -> "CellLayout":
        layout = cls()
        for i, key in enumerate(keys):
            row, col = divmod(i, columns)
            layout.place(
                key,
                Rect(
                    x=col * (cell_width + gap),
                    y=row * (cell_height + gap),
                    width=cell_width,
                    height=cell_height,
                ),
            )
        return layout
