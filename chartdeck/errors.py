"""chartdeck exception hierarchy.

Every error the engine raises derives from ChartdeckError so callers
(the HTTP layer, the editor session) can catch the family at one seam.
"""

from typing import Optional


class ChartdeckError(Exception):
    """Base exception for all chartdeck operations."""


class ParseError(ChartdeckError):
    """Pasted, imported or fetched content could not be parsed."""


class FormatUndetected(ChartdeckError):
    """No format heuristic matched the content."""


class InvalidSpecError(ChartdeckError):
    """A chart spec does not have the structural shape needed for traversal."""


class DatasetNotFound(ChartdeckError):
    """A dataset reference or id does not resolve to a stored dataset."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Dataset "{name}" not found')


class DatasetNameConflict(ChartdeckError):
    """A dataset create or rename collides with an existing unique name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'A dataset named "{name}" already exists')


class SnippetNotFound(ChartdeckError):
    """No snippet is stored under the given id."""

    def __init__(self, snippet_id: str):
        self.snippet_id = snippet_id
        super().__init__(f"Snippet '{snippet_id}' not found")


class PersistenceQuotaExceeded(ChartdeckError):
    """The storage collaborator refused a write because it is full."""


class NetworkFetchError(ChartdeckError):
    """A URL fetch failed: non-2xx status, transport failure or timeout."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: {message}")


class ReadOnlyViewError(ChartdeckError):
    """An edit was attempted on the published view while a draft is pending."""
