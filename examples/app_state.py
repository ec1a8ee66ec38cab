"""
Observed application state for a small book-search page.

The page keeps its whole state in one dataclass graph. Wrapping it with
``observe()`` lets the view layer re-render only what changed: every
mutation arrives with the path of the field that moved.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from objectwatch import ObserverConfig, OperationDescription, observe, unsubscribe

logger = logging.getLogger(__name__)


class Page(Enum):
    """Routes the application can show."""
    SEARCH = "search"
    DETAILS = "details"
    FAVORITES = "favorites"


@dataclass
class Book:
    title: str
    author: str
    year: Optional[int] = None


@dataclass
class SearchState:
    query: str = ""
    results: List[Book] = field(default_factory=list)
    loading: bool = False


@dataclass
class AppState:
    page: Page = Page.SEARCH
    search: SearchState = field(default_factory=SearchState)
    favorites: Dict[str, Book] = field(default_factory=dict)
    _render_count: int = 0


class BookSearchApp:
    """Re-renders the region of the page owning each changed path."""

    REGIONS = ('page', 'search', 'favorites')

    def __init__(self):
        config = ObserverConfig(
            ignore_underscores=True,
            details=('append', 'extend', 'clear'),
            on_validate=self._validate,
        )
        self.dirty: List[str] = []
        self.state = observe(AppState(), self._on_change, config)

    def _validate(self, path: str, value: Any, previous: Any,
                  description: Optional[OperationDescription]) -> bool:
        # Queries are capped so a runaway input never hits the backend
        if path == 'search.query' and isinstance(value, str) and len(value) > 200:
            logger.warning(f"Rejected query of {len(value)} characters")
            return False
        return True

    def _on_change(self, path: str, value: Any, previous: Any,
                   description: Optional[OperationDescription]) -> None:
        region = path.split('.', 1)[0]
        if region in self.REGIONS and region not in self.dirty:
            self.dirty.append(region)
        if description is not None:
            logger.debug(f"{path}: {description.name}{description.args}")

    def search(self, query: str, catalogue: List[Book]) -> None:
        self.state.search.query = query
        self.state.search.loading = True
        needle = query.lower()
        self.state.search.results.clear()
        self.state.search.results.extend(book for book in catalogue if needle in book.title.lower())
        self.state.search.loading = False

    def add_favorite(self, book: Book) -> None:
        self.state.favorites[book.title] = book

    def show(self, page: Page) -> None:
        self.state.page = page

    def render(self) -> List[str]:
        """Flush dirty regions; the render counter itself is not observed."""
        rendered, self.dirty = self.dirty, []
        self.state._render_count += 1
        return rendered

    def close(self) -> AppState:
        return unsubscribe(self.state)


if __name__ == '__main__':
    logging.basicConfig(level=logging.DEBUG)
    catalogue = [
        Book("The Left Hand of Darkness", "Ursula K. Le Guin", 1969),
        Book("A Wizard of Earthsea", "Ursula K. Le Guin", 1968),
        Book("Dune", "Frank Herbert", 1965),
    ]
    app = BookSearchApp()
    app.search("earthsea", catalogue)
    app.add_favorite(app.state.search.results[0])
    app.show(Page.FAVORITES)
    print(app.render())
