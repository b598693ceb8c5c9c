"""Generic traversal over a VisualizationSpec tree.

One descent primitive serves two modes:
- traverse(): find-first, stops at the first node whose visitor returns a Match
- traverse_all(): visits every node, ignoring visitor results

Nodes are visited in pre-order; children follow CHILD_SLOTS order. An
explicit stack replaces recursion so nesting depth is not bounded by the
interpreter recursion limit. The walker never mutates the tree; visitors
that rewrite nodes must be handed a deep clone.
"""

from dataclasses import dataclass
from typing import Callable, Generic, Iterator, Optional, TypeVar

from .schemas import VisualizationSpec

T = TypeVar("T")


@dataclass(frozen=True)
class Match(Generic[T]):
    """A found value. Distinguishes a match on a falsy value from no match."""

    value: T


Visitor = Callable[[VisualizationSpec], Optional[Match[T]]]


def iter_nodes(root: VisualizationSpec) -> Iterator[VisualizationSpec]:
    """Yield every node of the tree in pre-order."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children()))


def _descend(
    root: VisualizationSpec,
    visit: Visitor,
    stop_at_first: bool,
) -> Optional[Match]:
    for node in iter_nodes(root):
        result = visit(node)
        if stop_at_first and result is not None:
            return result
    return None


def traverse(root: VisualizationSpec, visit: Visitor[T], default: T = None) -> T:
    """Return the value of the first Match produced by visit, else default."""
    found = _descend(root, visit, stop_at_first=True)
    return found.value if found is not None else default


def traverse_all(root: VisualizationSpec, visit: Callable[[VisualizationSpec], object]) -> None:
    """Call visit on every node, without short-circuiting."""
    _descend(root, visit, stop_at_first=False)
