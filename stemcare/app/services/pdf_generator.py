"""
Document converters: markdown report content to PDF bytes.

Two backends are available, selected by ``settings.pdf_converter``:

- ``reportlab``: local rendering with ReportLab and a built-in CJK CID font.
- ``http``: an external markdown-to-PDF service that answers with
  ``{"pdfBase64": ...}``.
"""

import asyncio
import base64
import binascii
import logging
import re
from io import BytesIO

import httpx
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from stemcare.app.core.config import settings
from stemcare.app.core.exceptions import DocumentConversionError

logger = logging.getLogger(__name__)

# Characters outside the Basic Multilingual Plane (emoji) have no glyph in the CID fonts
_NON_BMP = re.compile(r"[\U00010000-\U0010FFFF]")


class PDFGenerator:
    """Generate PDF reports from Markdown content with ReportLab."""

    def __init__(self):
        """Initialize PDF generator."""
        try:
            # Built-in CID font for Simplified Chinese (always available in ReportLab)
            pdfmetrics.registerFont(UnicodeCIDFont("STSong-Light"))
            self.cjk_font = "STSong-Light"
            logger.info(f"[PDF] Registered CJK CID font: {self.cjk_font}")
        except Exception as e:
            logger.warning(f"[PDF] Could not load CJK CID font: {e}")
            self.cjk_font = "Helvetica"

    async def is_available(self) -> bool:
        return True

    async def convert(self, markdown_content: str) -> bytes:
        """
        Render markdown to PDF in a worker thread.

        Raises:
            DocumentConversionError: If ReportLab fails to build the document
        """
        try:
            return await asyncio.to_thread(self.markdown_to_pdf, markdown_content)
        except Exception as e:
            raise DocumentConversionError("PDF rendering", e) from e

    def markdown_to_pdf(self, markdown_content: str) -> bytes:
        """
        Convert Markdown content to PDF.

        Args:
            markdown_content: Markdown-formatted report content

        Returns:
            PDF file as bytes
        """
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=2*cm,
            leftMargin=2*cm,
            topMargin=2*cm,
            bottomMargin=2*cm,
        )

        story = []
        styles = getSampleStyleSheet()

        title_style = ParagraphStyle(
            "ReportTitle",
            parent=styles["Heading1"],
            fontName=self.cjk_font,
            fontSize=22,
            textColor=colors.HexColor("#2c3e50"),
            spaceAfter=20,
            alignment=TA_CENTER,
        )

        heading2_style = ParagraphStyle(
            "ReportHeading2",
            parent=styles["Heading2"],
            fontName=self.cjk_font,
            fontSize=16,
            textColor=colors.HexColor("#2980b9"),
            spaceBefore=16,
            spaceAfter=10,
            leftIndent=5,
        )

        heading3_style = ParagraphStyle(
            "ReportHeading3",
            parent=styles["Heading3"],
            fontName=self.cjk_font,
            fontSize=13,
            textColor=colors.HexColor("#34495e"),
            spaceBefore=12,
            spaceAfter=8,
        )

        body_style = ParagraphStyle(
            "ReportBody",
            parent=styles["BodyText"],
            fontName=self.cjk_font,
            fontSize=11,
            leading=19,
        )

        bullet_style = ParagraphStyle(
            "ReportBullet",
            parent=body_style,
            leftIndent=14,
        )

        lines = markdown_content.split("\n")
        i = 0
        while i < len(lines):
            line = lines[i].strip()

            if not line:
                i += 1
                continue

            if line.startswith("# "):
                story.append(Paragraph(self._inline(line[2:]), title_style))
                story.append(Spacer(1, 12))

            elif line.startswith("## "):
                story.append(Spacer(1, 8))
                story.append(Paragraph(self._inline(line[3:]), heading2_style))
                story.append(Spacer(1, 6))

            elif line.startswith("### ") or line.startswith("#### "):
                text = line.lstrip("#").strip()
                story.append(Paragraph(self._inline(text), heading3_style))
                story.append(Spacer(1, 4))

            elif line.startswith("---") or line.startswith("━"):
                story.append(HRFlowable(width="100%", thickness=1, color=colors.grey))
                story.append(Spacer(1, 6))

            elif line.startswith("|"):
                table_lines = []
                while i < len(lines) and lines[i].strip().startswith("|"):
                    table_lines.append(lines[i].strip())
                    i += 1
                i -= 1  # the loop increments once more below

                table_data = []
                for table_line in table_lines:
                    if re.match(r"^\|[\s\-:|]+\|$", table_line):
                        continue
                    cells = [
                        Paragraph(self._inline(cell.strip()), body_style)
                        for cell in table_line.split("|")[1:-1]
                    ]
                    table_data.append(cells)

                if table_data:
                    table = Table(table_data, repeatRows=1)
                    table.setStyle(TableStyle([
                        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#d6eaf8")),
                        ("ALIGN", (0, 0), (-1, -1), "LEFT"),
                        ("VALIGN", (0, 0), (-1, -1), "TOP"),
                        ("FONTNAME", (0, 0), (-1, -1), self.cjk_font),
                        ("FONTSIZE", (0, 0), (-1, -1), 10),
                        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                    ]))
                    story.append(table)
                    story.append(Spacer(1, 10))

            elif line.startswith("> "):
                quote_style = ParagraphStyle(
                    "ReportQuote",
                    parent=body_style,
                    leftIndent=20,
                    rightIndent=20,
                    textColor=colors.HexColor("#555555"),
                    backColor=colors.HexColor("#f7f7f7"),
                    borderPadding=8,
                )
                story.append(Paragraph(self._inline(line[2:]), quote_style))
                story.append(Spacer(1, 6))

            elif line.startswith("- ") or line.startswith("* "):
                story.append(Paragraph("· " + self._inline(line[2:]), bullet_style))
                story.append(Spacer(1, 2))

            elif re.match(r"^\d+\. ", line):
                story.append(Paragraph(self._inline(line), bullet_style))
                story.append(Spacer(1, 2))

            else:
                story.append(Paragraph(self._inline(line), body_style))
                story.append(Spacer(1, 4))

            i += 1

        logger.info("[PDF] Building PDF document")
        doc.build(story)

        pdf_bytes = buffer.getvalue()
        buffer.close()

        logger.info(f"[PDF] PDF generated successfully ({len(pdf_bytes)} bytes)")
        return pdf_bytes

    def _inline(self, text: str) -> str:
        """Escape markup characters, drop emoji and convert **bold** / *italic*."""
        text = _NON_BMP.sub("", text)
        text = text.replace("&", "&amp;")
        text = text.replace("<", "&lt;")
        text = text.replace(">", "&gt;")
        text = re.sub(r"\*\*(.+?)\*\*", r"<b>\1</b>", text)
        text = re.sub(r"(?<!\*)\*(?!\s)(.+?)(?<!\s)\*(?!\*)", r"<i>\1</i>", text)
        return text


class HttpPDFConverter:
    """Client for an external markdown-to-PDF service."""

    def __init__(self, convert_url: str, timeout: float = 30.0):
        """
        Args:
            convert_url: Conversion endpoint, e.g. http://localhost:4000/convert
            timeout: Timeout for a single conversion request
        """
        self.convert_url = convert_url
        self.timeout = timeout

    @property
    def health_url(self) -> str:
        return self.convert_url.rsplit("/", 1)[0] + "/"

    async def is_available(self) -> bool:
        """Check the service is reachable before converting."""
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(self.health_url, timeout=5.0)
            return response.status_code < 500
        except httpx.HTTPError as e:
            logger.warning(f"[PDF] Conversion service unavailable at {self.health_url}: {e}")
            return False

    async def convert(self, markdown_content: str) -> bytes:
        """
        Convert markdown through the external service.

        Raises:
            DocumentConversionError: transient for timeouts, connection errors
                and 5xx answers; permanent otherwise
        """
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.convert_url,
                    json={"markdown": markdown_content},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise DocumentConversionError("conversion request (timeout)", e, transient=True) from e
        except httpx.HTTPStatusError as e:
            raise DocumentConversionError(
                f"conversion request (HTTP {e.response.status_code})",
                e,
                transient=e.response.status_code >= 500,
            ) from e
        except httpx.RequestError as e:
            raise DocumentConversionError("conversion request (connection)", e, transient=True) from e
        except ValueError as e:
            raise DocumentConversionError("response parsing", e) from e

        pdf_base64 = data.get("pdfBase64") if isinstance(data, dict) else None
        if not pdf_base64:
            raise DocumentConversionError("response parsing", ValueError("response has no pdfBase64"))
        try:
            pdf_bytes = base64.b64decode(pdf_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DocumentConversionError("response decoding", e) from e

        logger.info(f"[PDF] External conversion succeeded ({len(pdf_bytes)} bytes)")
        return pdf_bytes


# Global converter instance (lazy initialization)
_pdf_generator: PDFGenerator | HttpPDFConverter | None = None


def get_pdf_generator() -> PDFGenerator | HttpPDFConverter:
    """
    Get the configured document converter (singleton pattern).

    Returns:
        PDFGenerator for ``reportlab`` or HttpPDFConverter for ``http``
    """
    global _pdf_generator
    if _pdf_generator is None:
        if settings.pdf_converter == "http":
            _pdf_generator = HttpPDFConverter(
                settings.pdf_convert_url,
                timeout=settings.pdf_convert_timeout_seconds,
            )
        else:
            _pdf_generator = PDFGenerator()
    return _pdf_generator
