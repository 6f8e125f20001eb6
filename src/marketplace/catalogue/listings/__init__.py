"""Listing catalogue factory."""

from marketplace.catalogue.listings.fake_adapter import FakeListingCatalogue
from marketplace.catalogue.listings.port import ListingCatalogue

_current_catalogue: ListingCatalogue | None = None


def get_catalogue() -> ListingCatalogue:
    """Return the current listing catalogue. Defaults to FakeListingCatalogue."""
    global _current_catalogue
    if _current_catalogue is None:
        _current_catalogue = FakeListingCatalogue()
    return _current_catalogue


def set_catalogue(catalogue: ListingCatalogue) -> None:
    global _current_catalogue
    _current_catalogue = catalogue


def reset_catalogue() -> None:
    global _current_catalogue
    _current_catalogue = None
