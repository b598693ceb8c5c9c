"""Editor and renderer collaborators, plus the reentrancy guard.

The engine never owns a text widget or a plotting engine. It talks to
them through EditorSurface and Renderer; TextBuffer is the in-memory
surface for headless sessions and the tests.
"""

from contextlib import contextmanager
from typing import Any, Callable, Iterator, Protocol, runtime_checkable

ChangeListener = Callable[[str], None]


@runtime_checkable
class EditorSurface(Protocol):
    """A text editing widget."""

    def get_text(self) -> str: ...

    def set_text(self, text: str) -> None: ...

    def set_read_only(self, read_only: bool) -> None: ...


@runtime_checkable
class Renderer(Protocol):
    """Draws a fully resolved spec, or shows why it could not."""

    async def render(self, resolved_spec: dict[str, Any]) -> None: ...

    def show_error(self, message: str) -> None: ...


class TextBuffer:
    """In-memory EditorSurface.

    Like a real widget, it notifies listeners on every content change,
    programmatic set_text() included. type_text() is the user path and is
    ignored while the buffer is read-only.
    """

    def __init__(self, text: str = ""):
        self._text = text
        self.read_only = False
        self._listeners: list[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def get_text(self) -> str:
        return self._text

    def set_text(self, text: str) -> None:
        self._text = text
        self._notify()

    def set_read_only(self, read_only: bool) -> None:
        self.read_only = read_only

    def type_text(self, text: str) -> bool:
        """Simulate a user edit. Returns False when the buffer is locked."""
        if self.read_only:
            return False
        self._text = text
        self._notify()
        return True

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._text)


class EditorGuard:
    """Marks stretches where the engine itself is writing to the editor.

    Change events raised while the guard is held are echoes of our own
    writes, not user edits.
    """

    def __init__(self):
        self._depth = 0

    @property
    def active(self) -> bool:
        return self._depth > 0

    @contextmanager
    def programmatic(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
