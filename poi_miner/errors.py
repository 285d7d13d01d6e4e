"""Error taxonomy for aggregation runs."""
from __future__ import annotations


class PoiMinerError(RuntimeError):
    pass


class InvalidGeometry(PoiMinerError, ValueError):
    """Polygon is missing, has fewer than 3 vertices, or holds non-numeric vertices."""


class NoCategorySelected(PoiMinerError, ValueError):
    pass


class ProviderUnavailable(PoiMinerError):
    pass


class CellFetchFailure(PoiMinerError):
    """A whole cell could not be fetched; the run skips it and continues."""

    def __init__(self, cell_index: int, cause: BaseException) -> None:
        super().__init__(f"Cell {cell_index} failed: {cause}")
        self.cell_index = cell_index
        self.cause = cause


class ProviderPageError(PoiMinerError):
    """A page request returned an error status; earlier pages of the cell are kept."""

    def __init__(self, page: int, info: str) -> None:
        super().__init__(f"Provider error on page {page}: {info}")
        self.page = page
        self.info = info
