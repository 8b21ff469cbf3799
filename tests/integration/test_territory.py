"""Integration tests for territory export/import."""

import json

import pytest

from cercagen.database.store import SQLiteStore
from cercagen.errors import TerritoryImportError
from cercagen.services.territory import export_territory, import_territory, rebuild_all_admin_closures

pytestmark = pytest.mark.integration


@pytest.fixture
def document() -> dict:
    return {
        "version": 1,
        "countries": [{"iso2": "es", "iso3": "esp", "num": "724"}],
        "levels": [
            {"id": 20, "pais_iso2": "ES", "nivel": 2, "nom": "Alt Camp", "tipus": "comarca", "parent_id": 10},
            {"id": 10, "pais_iso2": "ES", "nivel": 1, "nom": "Catalunya", "tipus": "comunitat"},
        ],
        "municipalities": [
            {"id": 5, "pais_iso2": "ES", "nom": "Valls", "nivells": [20], "codi_postal": "43800", "latitud": 41.29},
            {"id": 6, "pais_iso2": "ES", "nom": "Fontscaldes", "tipus": "entitat", "parent_id": 5, "nivells": [20]},
        ],
    }


def _without_timestamp(payload) -> dict:
    data = payload.to_json_dict()
    data.pop("exported_at")
    return data


class TestImport:
    """Test import_territory."""

    def test_counts_and_closure(self, store, document: dict) -> None:
        """Test entities are created and the closure is rebuilt."""
        result = import_territory(store, json.dumps(document))

        assert result.countries_created == 1
        assert result.levels_total == 2
        assert result.levels_created == 2
        assert result.municipalities_created == 2

        valls = next(m for m in store.list_municipalities() if m.name == "Valls")
        assert valls.postal_code == "43800"
        assert len(store.list_admin_ancestors(valls.id)) == 2

        fontscaldes = next(m for m in store.list_municipalities() if m.name == "Fontscaldes")
        assert fontscaldes.parent_id == valls.id

    def test_existing_country_reused(self, store, document: dict) -> None:
        """Test countries are matched by ISO code."""
        import_territory(store, document)
        result = import_territory(store, document)

        assert result.countries_created == 0
        assert len(store.list_countries()) == 1

    def test_skipped_entries(self, store) -> None:
        """Test unknown countries, missing parents and unnamed municipalities are skipped."""
        document = {
            "countries": [{"iso2": "AD"}],
            "levels": [
                {"id": 1, "pais_iso2": "FR", "nom": "Occitània"},
                {"id": 2, "pais_iso2": "AD", "nivel": 2, "nom": "Orfe", "parent_id": 99},
            ],
            "municipalities": [{"id": 1, "pais_iso2": "AD", "nom": "  "}],
        }

        result = import_territory(store, document)

        assert result.levels_created == 0
        assert result.levels_skipped == 2
        assert result.municipalities_skipped == 1

    @pytest.mark.parametrize("document", ["{bad", {"countries": "ES"}, b"[]"])
    def test_invalid_document(self, store, document) -> None:
        """Test invalid payloads raise."""
        with pytest.raises(TerritoryImportError):
            import_territory(store, document)


class TestExport:
    """Test export_territory."""

    def test_local_ids(self, store, document: dict) -> None:
        """Test levels and municipalities are renumbered from 1."""
        import_territory(store, document)

        payload = export_territory(store)

        assert [c.iso2 for c in payload.countries] == ["ES"]
        assert payload.countries[0].iso3 == "ESP"
        assert [(lv.id, lv.nom, lv.parent_id) for lv in payload.levels] == [
            (1, "Catalunya", None),
            (2, "Alt Camp", 1),
        ]
        valls, fontscaldes = payload.municipalities
        assert (valls.id, valls.nivells[0], valls.latitud) == (1, 2, 41.29)
        assert fontscaldes.parent_id == 1

    def test_round_trip(self, store, tmp_path, document: dict) -> None:
        """Test export, import into an empty store and export again give the same document."""
        import_territory(store, document)
        first = export_territory(store)

        other = SQLiteStore(tmp_path / "other.db")
        import_territory(other, first)

        assert _without_timestamp(export_territory(other)) == _without_timestamp(first)

    def test_rebuild_all_closures(self, store, document: dict) -> None:
        """Test every municipality closure is rebuilt."""
        import_territory(store, document)
        assert rebuild_all_admin_closures(store) == 2
