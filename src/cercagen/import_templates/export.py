"""Sample spreadsheets for an import template.

The sample holds the template's column headers and a few example rows whose
values match each column's transforms, so users can see the expected shape
and feed the file straight back through the same template.
"""

import csv
import io
import zipfile
from xml.sax.saxutils import escape

from cercagen.models.template import Branch, Column, ImportTemplateModel, TransformName

DEFAULT_FILENAME = "plantilla"
SHEET_NAME = "Plantilla"
MIN_COLUMN_WIDTH = 10
MAX_COLUMN_WIDTH = 40

_DATE_TRANSFORMS = frozenset(
    {
        TransformName.PARSE_DDMMYYYY_TO_ISO.value,
        TransformName.PARSE_DATE_FLEXIBLE_TO_BASE_DATA_ACTE.value,
        TransformName.PARSE_DATE_FLEXIBLE_TO_DATE_OR_TEXT_WITH_QUALITY.value,
    }
)
_DATE_SAMPLES = ["12/03/1890", "??/??/1890", "¿12/03/1890"]
_PERSON_SAMPLES = ["Puig i Ferrer (Valls)", "¿Maria Puig (Valls)"]

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}

SampleTable = tuple[list[str], list[list[str]]]


def sample_value(
    transform_names: list[str],
    index: int,
    target: str = "",
    header: str = "",
    book_ids: list[int] | None = None,
) -> str:
    """Example cell for a column given its transforms and first target."""
    names = {name.strip().lower() for name in transform_names if name.strip()}
    if names & _DATE_TRANSFORMS:
        return _DATE_SAMPLES[index % 3]
    if any(name.startswith("parse_person_from_") for name in names):
        return _PERSON_SAMPLES[index % 2]
    if TransformName.SPLIT_COUPLE_I.value in names:
        return "Joan X i Maria Y"
    if TransformName.NORMALIZE_CRONOLOGIA.value in names:
        return "1890-1891"

    if "llibre_id" in target:
        if book_ids:
            return str(book_ids[index % len(book_ids)])
        return str(120 + index)
    if "tipus_acte" in target:
        return "baptisme"
    if "any_doc" in target:
        return "1890"
    if "posicio_pagina" in target or "pagina_id" in target:
        return str(index + 1)
    if target.endswith(".int") or target.endswith(".int_nullable") or target.endswith(".edat"):
        return str(30 + index)
    if "data" in target:
        return "01/01/1890"
    if "cognom" in target:
        return "Puig"
    if "nom" in target:
        return "Joan"
    if "data" in header.lower():
        return "01/01/1890"
    return f"Exemple {index + 1}"


def _branch_sample(branch: Branch, index: int, header: str, book_ids: list[int] | None) -> str:
    if branch.entries:
        entry = branch.entries[0]
        names = [step.name for step in branch.transforms + entry.transforms]
        return sample_value(names, index, entry.target.raw, header, book_ids)
    return sample_value([step.name for step in branch.transforms], index, "", header, book_ids)


def build_sample_table(model: ImportTemplateModel, book_ids: list[int] | None = None) -> SampleTable:
    """Headers plus 2 example rows (3 when a column is conditional).

    A conditional column shows its ``then`` sample in the first row, its
    ``else`` sample (or the plain one) in the second, the plain one after.
    """
    columns: list[Column] = model.columns
    headers = [column.header for column in columns]
    row_count = 3 if model.has_conditions() else 2
    rows: list[list[str]] = [[] for _ in range(row_count)]
    for column in columns:
        base = _branch_sample(column.then, 0, column.header, book_ids)
        if column.condition is not None:
            rows[0].append(base)
            if column.otherwise is not None:
                rows[1].append(_branch_sample(column.otherwise, 1, column.header, book_ids))
            else:
                rows[1].append(base)
            for row in rows[2:]:
                row.append(base)
        else:
            for i, row in enumerate(rows):
                row.append(_branch_sample(column.then, i, column.header, book_ids))
    return headers, rows


def export_sample_csv(model: ImportTemplateModel, separator: str = ",", book_ids: list[int] | None = None) -> str:
    headers, rows = build_sample_table(model, book_ids)
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter="\t" if separator == "\\t" else separator, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


# -----------------------------------------------------------------------------
# XLSX
# -----------------------------------------------------------------------------

_CONTENT_TYPES = """<?xml version="1.0" encoding="UTF-8"?>
<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">
  <Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>
  <Default Extension="xml" ContentType="application/xml"/>
  <Override PartName="/xl/workbook.xml" ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet.main+xml"/>
  <Override PartName="/xl/worksheets/sheet1.xml" ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml"/>
</Types>"""

_ROOT_RELS = """<?xml version="1.0" encoding="UTF-8"?>
<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">
  <Relationship Id="rId1" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" Target="xl/workbook.xml"/>
</Relationships>"""

_WORKBOOK = f"""<?xml version="1.0" encoding="UTF-8"?>
<workbook xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main" xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships">
  <sheets>
    <sheet name="{SHEET_NAME}" sheetId="1" r:id="rId1"/>
  </sheets>
</workbook>"""

_WORKBOOK_RELS = """<?xml version="1.0" encoding="UTF-8"?>
<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">
  <Relationship Id="rId1" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/worksheet" Target="worksheets/sheet1.xml"/>
</Relationships>"""


def column_name(index: int) -> str:
    """Spreadsheet column letters for a 1-based index (1 -> A, 27 -> AA)."""
    if index <= 0:
        return "A"
    name = ""
    while index > 0:
        index, rem = divmod(index - 1, 26)
        name = chr(ord("A") + rem) + name
    return name


def column_widths(headers: list[str], rows: list[list[str]]) -> list[int]:
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row[: len(widths)]):
            widths[i] = max(widths[i], len(cell))
    return [min(max(w + 2, MIN_COLUMN_WIDTH), MAX_COLUMN_WIDTH) for w in widths]


def _xml_row(row_num: int, values: list[str]) -> str:
    cells = "".join(
        f'<c r="{column_name(i)}{row_num}" t="inlineStr"><is><t>{escape(value, _XML_ENTITIES)}</t></is></c>'
        for i, value in enumerate(values, start=1)
    )
    return f'<row r="{row_num}">{cells}</row>'


def sheet_xml(headers: list[str], rows: list[list[str]]) -> str:
    cols = ""
    widths = column_widths(headers, rows)
    if widths:
        cols = "<cols>" + "".join(
            f'<col min="{i}" max="{i}" width="{w}" customWidth="1"/>' for i, w in enumerate(widths, start=1)
        ) + "</cols>"
    data = "".join([_xml_row(1, headers)] + [_xml_row(n, row) for n, row in enumerate(rows, start=2)])
    last_col = column_name(max(len(headers), 1))
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<worksheet xmlns="http://schemas.openxmlformats.org/spreadsheetml/2006/main">
  <sheetViews>
    <sheetView workbookViewId="0">
      <pane ySplit="1" topLeftCell="A2" activePane="bottomLeft" state="frozen"/>
    </sheetView>
  </sheetViews>
  <sheetFormatPr defaultRowHeight="15"/>
  {cols}
  <sheetData>{data}</sheetData>
  <autoFilter ref="A1:{last_col}1"/>
</worksheet>"""


def export_sample_xlsx(model: ImportTemplateModel, book_ids: list[int] | None = None) -> bytes:
    """The sample table as a single-sheet workbook with inline strings."""
    headers, rows = build_sample_table(model, book_ids)
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("[Content_Types].xml", _CONTENT_TYPES)
        zf.writestr("_rels/.rels", _ROOT_RELS)
        zf.writestr("xl/workbook.xml", _WORKBOOK)
        zf.writestr("xl/_rels/workbook.xml.rels", _WORKBOOK_RELS)
        zf.writestr("xl/worksheets/sheet1.xml", sheet_xml(headers, rows))
    return buffer.getvalue()


def sample_filename(name: str, ext: str) -> str:
    """ASCII slug of a template name (spaces to underscores) plus extension."""
    slug = ""
    for ch in (name or "").strip():
        if ch == " ":
            slug += "_"
        elif ch in "-_" or (ch.isascii() and ch.isalnum()):
            slug += ch
    return f"{slug or DEFAULT_FILENAME}.{ext}"
