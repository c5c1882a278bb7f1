"""Unit tests for the document converters."""

import base64

import httpx
import pytest
from unittest.mock import AsyncMock, Mock, patch

from stemcare.app.core.exceptions import DocumentConversionError
from stemcare.app.services.pdf_generator import HttpPDFConverter, PDFGenerator

SAMPLE_MARKDOWN = """# 张三 - 健康评估报告

## 基本信息

- **姓名**: 张三
- **体检ID**: E1

---

## AI健康评估分析

### 1. 健康状况总体评估
血压 <偏高> & 血糖 *轻度* 升高 😀

| 指标 | 结果 | 参考值 |
|------|------|--------|
| 空腹血糖 | 6.5 | 3.9-6.1 |

> 本报告仅供参考

1. 定期复查
"""


class TestPDFGenerator:
    """Test cases for the ReportLab converter."""

    def test_markdown_to_pdf(self):
        """Test rendering produces a PDF document."""
        pdf_bytes = PDFGenerator().markdown_to_pdf(SAMPLE_MARKDOWN)

        assert pdf_bytes.startswith(b"%PDF")
        assert len(pdf_bytes) > 1000

    @pytest.mark.asyncio
    async def test_convert_runs_in_thread(self):
        generator = PDFGenerator()

        assert await generator.is_available() is True
        assert (await generator.convert(SAMPLE_MARKDOWN)).startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_convert_wraps_render_errors(self):
        """Test ReportLab failures surface as permanent conversion errors."""
        generator = PDFGenerator()

        with patch.object(generator, "markdown_to_pdf", side_effect=ValueError("bad markup")):
            with pytest.raises(DocumentConversionError, match="bad markup") as exc_info:
                await generator.convert("# x")

        assert exc_info.value.transient is False

    def test_inline_markup(self):
        """Test escaping, emoji removal and emphasis conversion."""
        text = PDFGenerator()._inline("**重点** <b> & *提示* 😀")

        assert text == "<b>重点</b> &lt;b&gt; &amp; <i>提示</i> "


class TestHttpPDFConverter:
    """Test cases for the external conversion service client."""

    @pytest.mark.asyncio
    async def test_convert_success(self):
        """Test the base64 payload is decoded."""
        converter = HttpPDFConverter("http://converter.test/convert", timeout=5)
        mock_response = Mock()
        mock_response.json.return_value = {"pdfBase64": base64.b64encode(b"%PDF-1.4 data").decode()}
        mock_response.raise_for_status = Mock()

        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(return_value=mock_response)

            pdf_bytes = await converter.convert("# 报告")

            call_args = mock_client.return_value.__aenter__.return_value.post.call_args
            assert call_args.kwargs["json"] == {"markdown": "# 报告"}
            assert call_args.kwargs["timeout"] == 5

        assert pdf_bytes == b"%PDF-1.4 data"

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        converter = HttpPDFConverter("http://converter.test/convert")

        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                side_effect=httpx.ReadTimeout("timed out")
            )

            with pytest.raises(DocumentConversionError) as exc_info:
                await converter.convert("# 报告")

        assert exc_info.value.transient is True

    @pytest.mark.asyncio
    async def test_missing_payload_is_permanent(self):
        converter = HttpPDFConverter("http://converter.test/convert")
        mock_response = Mock()
        mock_response.json.return_value = {"success": False}
        mock_response.raise_for_status = Mock()

        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(return_value=mock_response)

            with pytest.raises(DocumentConversionError, match="pdfBase64") as exc_info:
                await converter.convert("# 报告")

        assert exc_info.value.transient is False

    @pytest.mark.asyncio
    async def test_availability_check(self):
        """Test the availability check targets the service root and maps connection errors to False."""
        converter = HttpPDFConverter("http://converter.test/convert")
        assert converter.health_url == "http://converter.test/"

        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=Mock(status_code=200)
            )
            assert await converter.is_available() is True

        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                side_effect=httpx.ConnectError("refused")
            )
            assert await converter.is_available() is False
