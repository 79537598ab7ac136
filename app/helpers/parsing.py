import asyncio
import base64
import io
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import fitz  # PyMuPDF
import pandas as pd
from docx import Document
from pdfminer.high_level import extract_pages
from pdfminer.layout import LTTextContainer

from app.models.ai_settings import get_settings
from app.models.models import ExtractedText, JDRow
from app.utils.exceptions import DecodeError, UnsupportedFormat
from app.utils.logging_config import PerformanceMonitor, get_logger
from app.utils.utils import new_id

logger = get_logger(__name__)

OCR_PREFIX = "[OCR result]:\n"
UNTITLED_JD = "Untitled requirement"
JD_TEMPLATE_COLUMNS = ["Job code", "Title", "Responsibilities", "Requirements", "Key clarification"]

# async callable turning base64 JPEG pages into text ("" when nothing was recognized)
OCRCallable = Callable[[List[str]], Awaitable[str]]


def file_extension(file_name: str) -> str:
    return Path(file_name or "").suffix.lower()


def read_txt(data: bytes, file_name: str = "") -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        encoding = get_settings().ingestion.legacy_encoding
        logger.debug(f"{file_name} is not UTF-8, decoding as {encoding}")
        return data.decode(encoding, errors="replace")


def _docx_text(data: bytes) -> str:
    doc = Document(io.BytesIO(data))
    lines = [p.text for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            cells = [c.text.strip() for c in row.cells if c.text.strip()]
            if cells:
                lines.append("\t".join(cells))
    return "\n".join(lines)


def read_docx(data: bytes, file_name: str = "") -> str:
    try:
        return _docx_text(data)
    except Exception as e:
        raise DecodeError(f"Could not read Word document {file_name}: {e}", file_name=file_name, cause=e) from e


def read_doc(data: bytes, file_name: str = "") -> str:
    # Many .doc uploads are really .docx files with the old extension
    try:
        return _docx_text(data)
    except Exception as e:
        raise DecodeError(
            f"Cannot read legacy binary .doc file {file_name}. Please re-save it as .docx or PDF and try again.",
            file_name=file_name, cause=e,
        ) from e


def read_spreadsheet(data: bytes, file_name: str = "") -> str:
    """Every sheet as CSV under its own header"""
    try:
        sheets = pd.read_excel(io.BytesIO(data), sheet_name=None, header=None, dtype=str)
    except Exception as e:
        raise DecodeError(f"Could not read spreadsheet {file_name}: {e}", file_name=file_name, cause=e) from e

    parts = []
    for name, df in sheets.items():
        parts.append(f"--- Sheet: {name} ---\n{df.to_csv(index=False, header=False)}\n")
    return "".join(parts)


def _cell(value) -> str:
    if value is None or pd.isna(value):
        return ""
    return str(value).strip()


def read_jd_rows(data: bytes, file_name: str = "") -> List[JDRow]:
    """Batch JD import rows from the first sheet.

    Row 0 is the header. Columns 1-4 (non-empty cells) form the raw
    description, column 5 is the explicit key clarification.
    """
    try:
        df = pd.read_excel(io.BytesIO(data), sheet_name=0, header=None, dtype=str)
    except Exception as e:
        raise DecodeError(f"Could not read spreadsheet {file_name}: {e}", file_name=file_name, cause=e) from e

    rows = []
    for i, values in enumerate(df.itertuples(index=False, name=None)):
        if i == 0:
            continue
        cells = [_cell(v) for v in values]
        raw = "\n".join(c for c in cells[:4] if c)
        if not raw:
            continue
        rows.append(JDRow(
            row_index=i,
            job_code=cells[0] or new_id(),
            title=(cells[1] if len(cells) > 1 else "") or UNTITLED_JD,
            raw_content=raw,
            key_clarification=cells[4] if len(cells) > 4 else "",
        ))
    logger.info(f"{file_name}: {len(rows)} JD rows found")
    return rows


def build_jd_template() -> bytes:
    """Spreadsheet template for batch JD import"""
    df = pd.DataFrame(
        [["JD-001", "Backend engineer", "Design and maintain REST services", "Bachelor degree, 3+ years of Python",
          "Fintech background required"]],
        columns=JD_TEMPLATE_COLUMNS,
    )
    buf = io.BytesIO()
    df.to_excel(buf, index=False, sheet_name="JD template", engine="openpyxl")
    return buf.getvalue()


def _pdfminer_pages(data: bytes) -> List[str]:
    pages = []
    for layout in extract_pages(io.BytesIO(data)):
        pages.append("".join(el.get_text() for el in layout if isinstance(el, LTTextContainer)))
    return pages


def _pymupdf_pages(data: bytes) -> List[str]:
    with fitz.open(stream=data, filetype="pdf") as doc:
        return [page.get_text() for page in doc]


def read_pdf_pages(data: bytes, file_name: str = "") -> List[str]:
    try:
        return _pdfminer_pages(data)
    except Exception as e:
        logger.warning(f"pdfminer could not parse {file_name} ({e}), falling back to PyMuPDF")
    try:
        return _pymupdf_pages(data)
    except Exception as e:
        raise DecodeError(f"Could not read PDF {file_name}: {e}", file_name=file_name, cause=e) from e


def is_image_based(pages: List[str], min_chars: int = 50) -> bool:
    """True when no page carries real text (scanned documents)"""
    if not any(len(p.strip()) > min_chars for p in pages):
        return True
    return len("\n".join(pages).strip()) < min_chars


def render_pdf_pages(data: bytes, max_pages: int = 5, scale: float = 1.5, quality: int = 80) -> List[str]:
    """First pages rasterized to base64 JPEG for the vision model"""
    try:
        images = []
        with fitz.open(stream=data, filetype="pdf") as doc:
            for page in doc.pages(0, min(max_pages, doc.page_count)):
                pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale))
                images.append(base64.b64encode(pix.tobytes("jpeg", jpg_quality=quality)).decode("ascii"))
        return images
    except Exception as e:
        raise DecodeError(f"Could not render PDF pages: {e}", cause=e) from e


READERS = {
    ".txt": read_txt,
    ".docx": read_docx,
    ".doc": read_doc,
    ".xlsx": read_spreadsheet,
    ".xls": read_spreadsheet,
}
SUPPORTED_EXTENSIONS = sorted([*READERS, ".pdf"])


async def _extract_pdf(file_name: str, data: bytes, ocr: Optional[OCRCallable]) -> ExtractedText:
    cfg = get_settings().ingestion
    loop = asyncio.get_running_loop()

    pages = await loop.run_in_executor(None, read_pdf_pages, data, file_name)
    text = "\n".join(pages)
    if ocr is None or not is_image_based(pages, cfg.min_text_chars):
        return ExtractedText(file_name=file_name, text=text, page_count=len(pages))

    logger.info(f"{file_name} looks image-based, running OCR on up to {cfg.max_ocr_pages} pages")
    try:
        images = await loop.run_in_executor(
            None, render_pdf_pages, data, cfg.max_ocr_pages, cfg.render_scale, cfg.jpeg_quality
        )
    except DecodeError as e:
        logger.warning(f"Skipping OCR for {file_name}: {e.message}")
        return ExtractedText(file_name=file_name, text=text, page_count=len(pages))

    ocr_text = await ocr(images)
    if ocr_text.strip():
        return ExtractedText(file_name=file_name, text=f"{OCR_PREFIX}{ocr_text}", source="ocr", page_count=len(pages))
    return ExtractedText(file_name=file_name, text=text, page_count=len(pages))


async def extract_document(file_name: str, data: bytes, ocr: Optional[OCRCallable] = None) -> ExtractedText:
    """Plain text of an uploaded document, dispatched on its extension.

    Raises UnsupportedFormat / DecodeError. Empty text is returned, not raised.
    """
    ext = file_extension(file_name)
    if ext != ".pdf" and ext not in READERS:
        raise UnsupportedFormat(
            f"Unsupported file type: {ext or file_name} (supported: {', '.join(SUPPORTED_EXTENSIONS)})",
            file_name=file_name, extension=ext,
        )

    with PerformanceMonitor(f"extract text from {file_name}", logger, threshold_ms=5000):
        if ext == ".pdf":
            result = await _extract_pdf(file_name, data, ocr)
        else:
            loop = asyncio.get_running_loop()
            text = await loop.run_in_executor(None, READERS[ext], data, file_name)
            result = ExtractedText(file_name=file_name, text=text)

    if result.is_empty:
        logger.warning(f"No text could be extracted from {file_name}")
    return result


async def extract_text(file_name: str, data: bytes, ocr: Optional[OCRCallable] = None) -> str:
    return (await extract_document(file_name, data, ocr)).text
