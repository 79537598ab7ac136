import asyncio
import io

import fitz
import pandas as pd
import pytest
from docx import Document
from unittest.mock import AsyncMock

from app.helpers.parsing import (
    JD_TEMPLATE_COLUMNS, OCR_PREFIX, UNTITLED_JD, build_jd_template, extract_document, extract_text,
    is_image_based, read_jd_rows, read_spreadsheet, read_txt,
)
from app.utils.exceptions import DecodeError, UnsupportedFormat

RESUME_LINES = [
    "Zhang Wei - Senior Python engineer",
    "Ten years of experience building data pipelines",
    "and web services for payment and fintech platforms.",
    "Education: Bachelor of Computer Science, 2014",
]


def make_docx(paragraphs, table_rows=None) -> bytes:
    doc = Document()
    for p in paragraphs:
        doc.add_paragraph(p)
    if table_rows:
        table = doc.add_table(rows=len(table_rows), cols=len(table_rows[0]))
        for r, row in enumerate(table_rows):
            for c, value in enumerate(row):
                table.cell(r, c).text = value
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


def make_xlsx(sheets) -> bytes:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, index=False, header=False)
    return buf.getvalue()


def make_pdf(pages) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


class TestFormatDispatch:
    """Extension based reader selection"""

    def test_unknown_extension_rejected(self):
        with pytest.raises(UnsupportedFormat) as exc:
            asyncio.run(extract_text("resume.exe", b"MZ..."))
        assert exc.value.details["extension"] == ".exe"
        assert ".docx" in exc.value.message and ".pdf" in exc.value.message

    def test_missing_extension_rejected(self):
        with pytest.raises(UnsupportedFormat):
            asyncio.run(extract_text("resume", b"plain"))

    def test_extension_is_case_insensitive(self):
        assert asyncio.run(extract_text("CV.TXT", "hello".encode("utf-8"))) == "hello"


class TestPlainText:
    def test_utf8_decoded(self):
        assert read_txt("张伟 Python".encode("utf-8")) == "张伟 Python"

    def test_gbk_falls_back_to_legacy_decoder(self):
        data = "简历：张伟，熟悉数据分析".encode("gbk")
        assert read_txt(data) == "简历：张伟，熟悉数据分析"

    def test_undecodable_bytes_never_raise(self):
        text = read_txt(b"\x81\xff\xfe abc")
        assert "abc" in text

    def test_empty_file_is_reported_not_raised(self):
        result = asyncio.run(extract_document("empty.txt", b""))
        assert result.text == ""
        assert result.is_empty


class TestWordDocuments:
    def test_paragraphs_and_tables(self):
        data = make_docx(["Zhang Wei", "Python engineer"], [["Skill", "Years"], ["Django", "5"]])
        text = asyncio.run(extract_text("cv.docx", data))
        assert "Zhang Wei" in text
        assert "Python engineer" in text
        assert "Django\t5" in text

    def test_doc_that_is_really_docx(self):
        data = make_docx(["Legacy extension, modern content"])
        assert "modern content" in asyncio.run(extract_text("old.doc", data))

    def test_binary_doc_asks_for_resave(self):
        with pytest.raises(DecodeError) as exc:
            asyncio.run(extract_text("old.doc", b"\xd0\xcf\x11\xe0 not a zip"))
        assert ".docx or PDF" in exc.value.message

    def test_corrupt_docx(self):
        with pytest.raises(DecodeError):
            asyncio.run(extract_text("broken.docx", b"garbage"))


class TestSpreadsheets:
    def test_every_sheet_rendered_as_csv(self):
        data = make_xlsx({
            "Jobs": [["Code", "Title"], ["J1", "Backend engineer"]],
            "Notes": [["Remote friendly"]],
        })
        text = read_spreadsheet(data, "jobs.xlsx")
        assert "--- Sheet: Jobs ---" in text
        assert "--- Sheet: Notes ---" in text
        assert "J1,Backend engineer" in text
        assert text.index("Jobs") < text.index("Notes")

    def test_corrupt_spreadsheet(self):
        with pytest.raises(DecodeError):
            read_spreadsheet(b"not a workbook", "bad.xlsx")


class TestJDRows:
    """Batch import rows from the first sheet"""

    def test_rows_after_header(self):
        data = make_xlsx({"Sheet1": [
            JD_TEMPLATE_COLUMNS,
            ["J-100", "Data engineer", "Build pipelines", "3+ years Spark", "Must have banking background"],
            ["", "", "", "", "clarification without a job"],
            ["", "", "Maintain dashboards", "SQL", ""],
        ]})
        rows = read_jd_rows(data, "jobs.xlsx")

        assert [r.row_index for r in rows] == [1, 3]
        first, second = rows
        assert first.job_code == "J-100"
        assert first.title == "Data engineer"
        assert first.raw_content == "J-100\nData engineer\nBuild pipelines\n3+ years Spark"
        assert first.key_clarification == "Must have banking background"

        assert second.job_code  # generated
        assert second.title == UNTITLED_JD
        assert second.raw_content == "Maintain dashboards\nSQL"
        assert second.key_clarification == ""

    def test_only_first_sheet_is_used(self):
        data = make_xlsx({
            "First": [JD_TEMPLATE_COLUMNS, ["A1", "Analyst", "", "", ""]],
            "Second": [JD_TEMPLATE_COLUMNS, ["B1", "Ignored", "", "", ""]],
        })
        rows = read_jd_rows(data)
        assert [r.job_code for r in rows] == ["A1"]

    def test_template_has_expected_header(self):
        df = pd.read_excel(io.BytesIO(build_jd_template()))
        assert list(df.columns) == JD_TEMPLATE_COLUMNS
        assert len(df) == 1


class TestPdf:
    def test_text_pdf(self):
        data = make_pdf(["\n".join(RESUME_LINES), "Second page with more project history and details"])
        result = asyncio.run(extract_document("cv.pdf", data, ocr=AsyncMock(return_value="unused")))
        assert result.source == "text"
        assert result.page_count == 2
        assert "Senior Python engineer" in result.text

    def test_image_based_classification(self):
        assert is_image_based(["", "  ", "short"])
        assert is_image_based([])
        assert not is_image_based(["x" * 51])
        assert is_image_based(["x" * 30, "y" * 30])  # no page above the threshold

    def test_scanned_pdf_runs_ocr_on_first_five_pages(self):
        data = make_pdf([""] * 7)
        ocr = AsyncMock(return_value="Recognized resume text")

        result = asyncio.run(extract_document("scan.pdf", data, ocr=ocr))

        ocr.assert_awaited_once()
        images = ocr.await_args.args[0]
        assert len(images) == 5
        assert all(isinstance(i, str) and i for i in images)
        assert result.text == f"{OCR_PREFIX}Recognized resume text"
        assert result.source == "ocr"
        assert result.page_count == 7

    def test_empty_ocr_returns_page_text(self):
        data = make_pdf(["tiny"])
        result = asyncio.run(extract_document("scan.pdf", data, ocr=AsyncMock(return_value="  ")))
        assert result.source == "text"
        assert result.text.strip() == "tiny"

    def test_without_ocr_callable_page_text_is_kept(self):
        data = make_pdf([""])
        result = asyncio.run(extract_document("scan.pdf", data))
        assert result.is_empty

    def test_corrupt_pdf(self):
        with pytest.raises(DecodeError):
            asyncio.run(extract_text("broken.pdf", b"this is not a pdf document"))
