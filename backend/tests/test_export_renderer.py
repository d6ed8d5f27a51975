"""Tests for the export renderer."""
import random
from datetime import date, datetime
from io import BytesIO

import pytest
from openpyxl import load_workbook

from exportgate.config import DEFAULT_PACKS
from exportgate.models import CanonicalItem, ExportFormat
from exportgate.services.export_renderer import (
    COLUMNS,
    DEMO_CITIES,
    ExportRenderer,
    build_demo_items,
    price_statistics,
)
from exportgate.services.pack_catalog import PackCatalog


HEADER = ["Titre", "Prix", "Description", "Localisation", "URL", "Date", "Image URL"]
FIXED_NOW = datetime(2025, 8, 19, 20, 45, 0)


@pytest.fixture
def catalog():
    """Production pack catalogue."""
    return PackCatalog(DEFAULT_PACKS, "pack-decouverte")


@pytest.fixture
def renderer(catalog):
    """Renderer with a frozen clock."""
    return ExportRenderer(catalog, author="Tests", clock=lambda: FIXED_NOW)


@pytest.fixture
def items():
    """200 distinct canonical items."""
    return [
        CanonicalItem(
            title=f"Annonce {i}",
            price=f"{i} 000 MGA",
            description=f"Description {i}",
            image_url=f"https://img.example/{i}.jpg",
            location="Antananarivo" if i % 2 else "Toamasina",
            source_url=f"https://site.example/post/{i}",
            posted_at="2025-08-19",
        )
        for i in range(200)
    ]


def read_csv(content):
    return content.decode("utf-8").splitlines()


def read_sheet(content, title=None):
    workbook = load_workbook(BytesIO(content))
    return workbook, workbook[title] if title else workbook.worksheets[0]


class TestRowLimit:
    """Tests for pack row caps."""

    def test_csv_truncates_in_order(self, renderer, items):
        lines = read_csv(renderer.render(items, "pack-decouverte", ExportFormat.CSV))
        assert lines[0] == ";".join(HEADER)
        assert len(lines) == 51
        assert lines[1].startswith("Annonce 0;")
        assert lines[50].startswith("Annonce 49;")

    def test_spreadsheet_truncates_in_order(self, renderer, items):
        _, sheet = read_sheet(renderer.render(items, "pack-decouverte", ExportFormat.EXCEL), "Données")
        assert sheet.max_row == 51
        assert [cell.value for cell in sheet[1]] == HEADER
        assert sheet.cell(row=2, column=1).value == "Annonce 0"
        assert sheet.cell(row=51, column=1).value == "Annonce 49"

    def test_never_pads(self, renderer, items):
        lines = read_csv(renderer.render(items[:3], "pack-pro", ExportFormat.CSV))
        assert len(lines) == 4

    def test_unknown_pack_uses_default(self, renderer, items):
        lines = read_csv(renderer.render(items, "pack-does-not-exist", ExportFormat.CSV))
        assert len(lines) == 51

    def test_larger_pack(self, renderer, items):
        lines = read_csv(renderer.render(items, "pack-essentiel", ExportFormat.CSV))
        assert len(lines) == 151


class TestCsv:
    """Tests for CSV output."""

    def test_semicolons_become_commas(self, renderer):
        item = CanonicalItem(title="A; B", description="ligne 1\nligne 2;fin")
        lines = read_csv(renderer.render([item], None, ExportFormat.CSV))
        assert len(lines) == 2
        fields = lines[1].split(";")
        assert len(fields) == len(COLUMNS)
        assert fields[0] == "A, B"
        assert fields[2] == "ligne 1 ligne 2,fin"

    def test_utf8(self, renderer):
        item = CanonicalItem(title="Maison à Ivandry")
        assert "Maison à Ivandry".encode("utf-8") in renderer.render([item], None, ExportFormat.CSV)

    def test_lone_surrogate_is_replaced(self, renderer, items):
        """A broken emoji half in one title must not fail the whole file."""
        rows = [CanonicalItem(title="Villa \ud83d vue mer")] + items[:2]
        lines = read_csv(renderer.render(rows, None, ExportFormat.CSV))
        assert len(lines) == 4
        assert lines[1].startswith("Villa ? vue mer;")
        assert lines[2].startswith("Annonce 0;")


class TestSpreadsheet:
    """Tests for spreadsheet output."""

    def test_header_styling_and_layout(self, renderer, items):
        _, sheet = read_sheet(renderer.render(items[:5], None, ExportFormat.EXCEL), "Données")
        header = sheet.cell(row=1, column=1)
        assert header.font.bold
        assert header.fill.fgColor.rgb == "FF1F2937"
        assert sheet.freeze_panes == "A2"
        assert sheet.column_dimensions["A"].width == 35

    def test_metadata(self, renderer, items):
        workbook, _ = read_sheet(renderer.render(items[:5], None, ExportFormat.EXCEL))
        assert workbook.properties.creator == "Tests"
        assert workbook.properties.created.date() == FIXED_NOW.date()
        assert workbook.properties.title == "Export Pack Découverte"

    def test_formulas_are_stored_as_text(self, renderer):
        item = CanonicalItem(title="=HYPERLINK(\"http://evil\")")
        _, sheet = read_sheet(renderer.render([item], None, ExportFormat.EXCEL), "Données")
        cell = sheet.cell(row=2, column=1)
        assert cell.data_type == "s"
        assert cell.value == "=HYPERLINK(\"http://evil\")"

    def test_only_web_urls_are_hyperlinked(self, renderer):
        items = [
            CanonicalItem(source_url="https://site.example/1", image_url="/img/x.jpg"),
            CanonicalItem(source_url="javascript:alert(1)"),
        ]
        _, sheet = read_sheet(renderer.render(items, None, ExportFormat.EXCEL), "Données")
        assert sheet.cell(row=2, column=5).hyperlink.target == "https://site.example/1"
        assert sheet.cell(row=2, column=7).hyperlink is None
        assert sheet.cell(row=3, column=5).hyperlink is None

    def test_summary_sheet(self, renderer, items):
        workbook, _ = read_sheet(renderer.render(items[:10], None, ExportFormat.EXCEL))
        summary = workbook["Récapitulatif"]
        values = {row[0]: row[1] for row in summary.iter_rows(values_only=True)}
        assert values["Pack"] == "Pack Découverte"
        assert values["Nombre total d'éléments"] == 10
        assert values["Antananarivo"] == 5
        assert values["Toamasina"] == 5
        assert values["Prix moyen"] == "5 000 MGA"
        assert values["Prix minimum"] == "1 000 MGA"
        assert values["Prix maximum"] == "9 000 MGA"

    def test_summary_without_prices(self, renderer):
        rows = [CanonicalItem(title="A"), CanonicalItem(title="B", price="Prix sur demande")]
        workbook, _ = read_sheet(renderer.render(rows, None, ExportFormat.EXCEL))
        values = {row[0]: row[1] for row in workbook["Récapitulatif"].iter_rows(values_only=True)}
        assert values["Prix moyen"] == "N/A"
        assert values["Prix maximum"] == "N/A"

    def test_price_statistics_skip_placeholders(self):
        rows = [
            CanonicalItem(price="850 000 MGA"),
            CanonicalItem(price="N/A"),
            CanonicalItem(price="Prix sur demande"),
            CanonicalItem(price="150 000 MGA"),
        ]
        assert price_statistics(rows) == {"average": 500000, "minimum": 150000, "maximum": 850000}


class TestDemo:
    """Tests for demo datasets."""

    def test_demo_items_are_pack_sized(self, catalog):
        pack = catalog.resolve("pack-business")
        demo = build_demo_items(pack, rng=random.Random(1), today=date(2025, 8, 19))
        assert len(demo) == 350
        assert all(item.location in DEMO_CITIES for item in demo)
        assert all(item.price.endswith(" MGA") for item in demo)
        assert demo[0].posted_at == "2025-08-19"

    def test_demo_is_reproducible_with_seed(self, catalog):
        pack = catalog.default
        first = build_demo_items(pack, rng=random.Random(7), today=date(2025, 1, 1))
        second = build_demo_items(pack, rng=random.Random(7), today=date(2025, 1, 1))
        assert first == second

    def test_render_demo_csv(self, renderer):
        lines = read_csv(renderer.render_demo("pack-essentiel", ExportFormat.CSV, rng=random.Random(3)))
        assert len(lines) == 151

    def test_render_demo_spreadsheet(self, renderer):
        workbook, sheet = read_sheet(renderer.render_demo(None, ExportFormat.EXCEL))
        assert sheet.title == "Données de démonstration"
        assert sheet.max_row == 51
        assert workbook.properties.creator.endswith("Version Démo")
