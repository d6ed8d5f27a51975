"""Export renderer: canonical items to CSV or spreadsheet bytes."""
import random
import re
from collections import Counter
from datetime import date, datetime
from io import BytesIO
from typing import Callable, Dict, List, Optional, Sequence, Union

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from ..models import CanonicalItem, ExportFormat, Pack
from ..models.item import NO_PRICE
from ..utils.logger import logger
from .pack_catalog import PackCatalog
from .pricing import format_price, parse_display_amount


# (field, header label, spreadsheet column width), in export order
COLUMNS = (
    ("title", "Titre", 35),
    ("price", "Prix", 18),
    ("description", "Description", 60),
    ("location", "Localisation", 25),
    ("source_url", "URL", 40),
    ("posted_at", "Date", 16),
    ("image_url", "Image URL", 40),
)

CSV_SEPARATOR = ";"

DEMO_CITIES = ("Antananarivo", "Toamasina", "Antsirabe", "Mahajanga", "Fianarantsoa", "Toliara")
DEMO_IMAGES = (
    "https://images.unsplash.com/photo-1560448204-e02f11c3d0e2?w=400",
    "https://images.unsplash.com/photo-1522708323590-d24dbb6b0267?w=400",
    "https://images.unsplash.com/photo-1570129477492-45c003edd2be?w=400",
    "https://images.unsplash.com/photo-1460317442991-0ec209397118?w=400",
    "https://images.unsplash.com/photo-1493663284031-b7e3aeca4618?w=400",
)

_HEADER_FONT = Font(bold=True, color="FFFFFFFF")
_HEADER_FILL = PatternFill(fill_type="solid", fgColor="FF1F2937")
_STRIPE_FILL = PatternFill(fill_type="solid", fgColor="FFF9FAFB")
_PRICE_FONT = Font(bold=True, color="FF059669")
_SECTION_FONT = Font(bold=True, color="FF2563EB")
_LINE_BREAKS_RE = re.compile(r"[\r\n]+")


def _is_web_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def _csv_cell(value: str) -> str:
    # No quoting: separators inside a field become commas, line breaks spaces.
    return _LINE_BREAKS_RE.sub(" ", value).replace(CSV_SEPARATOR, ",")


def price_statistics(rows: Sequence[CanonicalItem]) -> Dict[str, Optional[float]]:
    """Average, minimum and maximum of the displayed prices.

    Rows without a positive amount (N/A, price on request) are skipped.
    Each value is None when no row carries a price.
    """
    amounts = [parse_display_amount(item.price) for item in rows]
    prices = [amount for amount in amounts if amount is not None and amount > 0]
    if not prices:
        return {"average": None, "minimum": None, "maximum": None}
    return {
        "average": round(sum(prices) / len(prices)),
        "minimum": min(prices),
        "maximum": max(prices),
    }


def build_demo_items(
    pack: Pack,
    rng: Optional[random.Random] = None,
    today: Optional[date] = None,
    currency: str = "MGA",
) -> List[CanonicalItem]:
    """Synthesize a pack-sized list of placeholder items.

    Args:
        pack: Pack whose row limit sets the number of items
        rng: Random generator (seed it for reproducible output)
        today: Date stamped on every item
        currency: Currency of the generated prices

    Returns:
        Exactly ``pack.row_limit`` demo items
    """
    rng = rng or random.Random()
    posted_at = (today or date.today()).isoformat()
    items = []
    for index in range(1, pack.row_limit + 1):
        amount = rng.randrange(50, 2000) * 1000
        items.append(
            CanonicalItem(
                title=f"Annonce démonstration #{index} - {pack.name}",
                price=format_price(amount, currency),
                description=(
                    f"Ceci est une description de démonstration pour l'annonce #{index}. "
                    "Ce fichier montre le format des données exportées."
                ),
                image_url=DEMO_IMAGES[index % len(DEMO_IMAGES)],
                location=rng.choice(DEMO_CITIES),
                source_url=f"https://example.com/annonce-{index}",
                posted_at=posted_at,
            )
        )
    return items


class ExportRenderer:
    """Renders canonical items into downloadable files."""

    def __init__(
        self,
        catalog: PackCatalog,
        author: str = "Marketplace Scraper Pro",
        demo_currency: str = "MGA",
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the renderer.

        Args:
            catalog: Pack catalogue used to resolve row limits
            author: Author stamped in spreadsheet metadata
            demo_currency: Currency of demo prices and of summary price figures
            clock: Time source for spreadsheet metadata
        """
        self.catalog = catalog
        self.author = author
        self.demo_currency = demo_currency
        self.clock = clock

    def resolve_pack(self, pack: Union[Pack, str, None]) -> Pack:
        if isinstance(pack, Pack):
            return pack
        return self.catalog.resolve(pack)

    def render(
        self,
        items: Sequence[CanonicalItem],
        pack: Union[Pack, str, None],
        export_format: ExportFormat,
        demo: bool = False,
    ) -> bytes:
        """Render items, truncated to the pack's row limit.

        Args:
            items: Canonical items in export order
            pack: Pack (or pack id); unknown ids use the default pack
            export_format: CSV or spreadsheet
            demo: Mark the spreadsheet as demonstration data

        Returns:
            File content
        """
        resolved = self.resolve_pack(pack)
        rows = list(items[: resolved.row_limit])
        logger.info(
            f"Rendering {len(rows)} of {len(items)} items as {export_format.value} for pack {resolved.id}"
        )

        if export_format is ExportFormat.CSV:
            return self._render_csv(rows)
        return self._render_spreadsheet(rows, resolved, demo)

    def render_demo(
        self,
        pack: Union[Pack, str, None],
        export_format: ExportFormat,
        rng: Optional[random.Random] = None,
    ) -> bytes:
        """Render a pack-sized demo dataset."""
        resolved = self.resolve_pack(pack)
        items = build_demo_items(resolved, rng=rng, today=self.clock().date(), currency=self.demo_currency)
        return self.render(items, resolved, export_format, demo=True)

    def _render_csv(self, rows: Sequence[CanonicalItem]) -> bytes:
        lines = [CSV_SEPARATOR.join(label for _, label, _ in COLUMNS)]
        for item in rows:
            lines.append(CSV_SEPARATOR.join(_csv_cell(getattr(item, field)) for field, _, _ in COLUMNS))
        # Unpaired surrogates from provider JSON become "?" instead of failing the export
        return ("\n".join(lines) + "\n").encode("utf-8", errors="replace")

    def _render_spreadsheet(self, rows: Sequence[CanonicalItem], pack: Pack, demo: bool) -> bytes:
        now = self.clock()
        workbook = Workbook()
        workbook.properties.creator = f"{self.author} - Version Démo" if demo else self.author
        workbook.properties.lastModifiedBy = self.author
        workbook.properties.created = now
        workbook.properties.modified = now
        workbook.properties.title = f"Export {pack.name}"

        sheet = workbook.active
        sheet.title = "Données de démonstration" if demo else "Données"

        for column, (_, label, width) in enumerate(COLUMNS, start=1):
            cell = sheet.cell(row=1, column=column, value=label)
            cell.font = _HEADER_FONT
            cell.fill = _HEADER_FILL
            cell.alignment = Alignment(horizontal="center", vertical="center")
            sheet.column_dimensions[get_column_letter(column)].width = width
        sheet.freeze_panes = "A2"

        for index, item in enumerate(rows):
            row = index + 2
            for column, (field, _, _) in enumerate(COLUMNS, start=1):
                value = ILLEGAL_CHARACTERS_RE.sub("", getattr(item, field))
                cell = sheet.cell(row=row, column=column, value=value)
                # never let provider text become a formula
                cell.data_type = "s"
                cell.alignment = Alignment(vertical="top", wrap_text=True)
                if index % 2 == 0:
                    cell.fill = _STRIPE_FILL
                if field in ("source_url", "image_url") and _is_web_url(value):
                    cell.hyperlink = value
                    cell.font = Font(color="FF2563EB", underline="single")
            sheet.cell(row=row, column=2).font = _PRICE_FONT

        self._add_summary_sheet(workbook, rows, pack)

        buffer = BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    def _add_summary_sheet(self, workbook: Workbook, rows: Sequence[CanonicalItem], pack: Pack) -> None:
        sheet = workbook.create_sheet("Récapitulatif")
        sheet.column_dimensions["A"].width = 34
        sheet.column_dimensions["B"].width = 20

        sheet.append(["STATISTIQUES GÉNÉRALES", ""])
        sheet.append(["Pack", pack.name])
        sheet.append(["Nombre total d'éléments", len(rows)])
        sheet.append(["Éléments avec image", sum(1 for item in rows if item.image_url)])
        stats = price_statistics(rows)
        for label, key in (("Prix moyen", "average"), ("Prix minimum", "minimum"), ("Prix maximum", "maximum")):
            amount = stats[key]
            sheet.append([label, NO_PRICE if amount is None else format_price(amount, self.demo_currency)])
        sheet.append(["", ""])
        sheet.append(["RÉPARTITION PAR LOCALISATION", ""])
        section_rows = (1, 9)

        for location, count in Counter(item.location for item in rows).most_common():
            sheet.append([ILLEGAL_CHARACTERS_RE.sub("", location), count])
            sheet.cell(row=sheet.max_row, column=1).data_type = "s"

        for row in section_rows:
            sheet.cell(row=row, column=1).font = _SECTION_FONT
