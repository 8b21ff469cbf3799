"""Integration tests for surname dictionary lookups."""

import pytest

from cercagen.services.dictionary import (
    follow_redirects,
    published_variant_forms,
    resolve_cognom,
    resolve_or_create_cognom,
)

pytestmark = pytest.mark.integration


@pytest.fixture
def puig(store) -> int:
    """Canonical PUIG with a published and an unpublished variant."""
    canonical_id = store.create_cognom("Puig", "PUIG")
    store.add_cognom_variant(canonical_id, "Puch", "PUCH")
    store.add_cognom_variant(canonical_id, "Putx", "PUTX", published=False)
    return canonical_id


class TestResolveCognom:
    """Test resolve_cognom."""

    def test_by_canonical_key(self, store, puig: int) -> None:
        """Test the canonical key is folded before lookup."""
        assert resolve_cognom(store, " puig ").id == puig

    def test_by_published_variant(self, store, puig: int) -> None:
        """Test a published variant resolves to its canonical."""
        assert resolve_cognom(store, "Puch").id == puig

    def test_unpublished_variant_ignored(self, store, puig: int) -> None:
        """Test unpublished variants are not used."""
        assert resolve_cognom(store, "Putx") is None

    def test_unknown_and_blank(self, store, puig: int) -> None:
        """Test unknown and empty forms give None."""
        assert resolve_cognom(store, "Vidal") is None
        assert resolve_cognom(store, "  ") is None

    def test_redirect_followed(self, store) -> None:
        """Test a merged canonical resolves to its survivor."""
        ferrer = store.create_cognom("Ferrer", "FERRER")
        farrer = store.create_cognom("Farrer", "FARRER")
        store.set_cognom_redirect(ferrer, farrer)

        assert resolve_cognom(store, "Ferrer").id == farrer


class TestFollowRedirects:
    """Test follow_redirects."""

    def test_cycle_stops(self, store) -> None:
        """Test a redirect cycle ends instead of looping."""
        first = store.create_cognom("Mas", "MAS")
        second = store.create_cognom("Massó", "MASSO")
        store.set_cognom_redirect(first, second)
        store.set_cognom_redirect(second, first)

        assert follow_redirects(store, store.get_cognom(first)).id == first


class TestResolveOrCreate:
    """Test resolve_or_create_cognom."""

    def test_existing(self, store, puig: int) -> None:
        """Test known forms return the canonical id."""
        assert resolve_or_create_cognom(store, "Puch") == puig

    def test_creates_once(self, store) -> None:
        """Test an unknown form is created from its raw text once."""
        created = resolve_or_create_cognom(store, " Vidal ")

        assert store.get_cognom(created).form == "Vidal"
        assert resolve_or_create_cognom(store, "VIDAL") == created

    def test_blank(self, store) -> None:
        """Test blank forms are not created."""
        assert resolve_or_create_cognom(store, "") is None


def test_published_variant_forms(store, puig: int) -> None:
    """Test the canonical form comes first followed by published variants."""
    assert published_variant_forms(store, store.get_cognom(puig)) == ["Puig", "Puch"]
