"""
Case Downloader - HTML to PDF to Disk

Fetches a case's HTML, wraps it in the vendor page template, renders it via
the PDF endpoint and saves the PDF plus a plain-text `.txt` sidecar used by
the analyzer.

Output:
- <downloads>/Case_<id>_<title>.pdf
- <downloads>/Case_<id>_<title>.txt
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional, Sequence

from bs4 import BeautifulSoup

from casebot.apps.client import CentaxClient
from casebot.utils.config import settings
from casebot.utils.errors import CasebotError
from casebot.utils.schemas import DownloadResult, SearchHit

logger = logging.getLogger(__name__)

CASE_ID_PATTERN = re.compile(r"Case_(\d+)_")

PDF_TEMPLATE = """<html>
    <head>
        <style>
            body {{ font-family: Verdana; margin: 0; padding: 0; }}
            .tx {{ margin-top: -1pt; margin-bottom: 4pt; text-align: justify; font-size: 11pt; font-family: "Verdana"; }}
            .h1 {{ display: block; text-indent: 0; margin-top: 4pt; margin-bottom: 0; font-size: 11pt; font-weight: 700; font-family: "Verdana"; text-align: left; }}
            .indent1 {{ display: block; margin-left: 10mm; margin-bottom: 4pt; text-indent: -7mm; margin-top: -1pt; text-align: justify; font-size: 11pt; font-family: "Verdana"; }}
            .indent2 {{ display: block; margin-left: 22mm; margin-bottom: 4pt; text-indent: -8mm; margin-top: -1pt; text-align: justify; font-size: 11pt; font-family: "Verdana"; }}
            .quote {{ display: block; margin-left: 8mm; margin-bottom: 4pt; text-indent: 0; margin-top: -1pt; text-align: justify; font-size: 11pt; font-family: "Verdana"; }}
            .allborder table {{ border: 1px solid #000; }}
            .allborder td {{ border: 1px solid #000; }}
            .allborder {{ margin-top: -1pt; margin-bottom: 4pt; text-align: justify; font-size: 11pt; font-family: "Verdana"; border-collapse: collapse; width: 100%; }}
            .copy-citation-action {{ display: none; }}
            a[href] {{ color: Blue; text-decoration: underline; }}
            hr {{ margin-top: -1pt; }}
        </style>
    </head>
    <body style="padding:15px; position:relative;">
        <div style="border-bottom:1px solid #ccc; margin-bottom:35px;">
            <table style="margin-bottom:10px; padding-top:25px;" width="100%" cellpadding="0" cellspacing="0" border="0">
                <tbody>
                    <tr>
                        <td valign="top">
                            <div>
                                <img alt="header" src="https://cdn.centaxonline.com/taxmann-assets/images/centax/centax-logo-1.png" style="max-width:205px;">
                            </div>
                            <div style="margin-bottom:5px; font-size:12px; font-style:italic; padding-left:48px; color:#6c6c6c;">
                                <span>Centaxonline.com</span>: A Legal Research Platform on GST, Customs, Excise & Service Tax, Foreign Trade Policy
                            </div>
                        </td>
                    </tr>
                </tbody>
            </table>
        </div>
        <center>
            <h3 style="border-bottom:0px solid black;padding-bottom:10px">{citation}</h3>
        </center>
        {content}
    </body>
</html>"""


def wrap_html_for_pdf(html_content: str, citation: str = "") -> str:
    """Wrap a document body in the page template the vendor expects."""
    return PDF_TEMPLATE.format(citation=citation, content=html_content)


def html_to_text(html_content: str) -> str:
    """Plain text with whitespace collapsed."""
    text = BeautifulSoup(html_content, "html.parser").get_text(" ")
    return " ".join(text.split())


def safe_pdf_name(case_id: str, title: str = "") -> str:
    safe_title = re.sub(r"[^a-zA-Z0-9\s().-]", "", title or case_id)
    safe_title = re.sub(r"\s+", "_", safe_title)[:120]
    return f"Case_{case_id}_{safe_title}.pdf"


def case_id_from_filename(filename: str) -> Optional[str]:
    match = CASE_ID_PATTERN.search(filename)
    return match.group(1) if match else None


def find_existing_pdf(case_id: str, output_dir: Path) -> Optional[Path]:
    if not output_dir.is_dir():
        return None
    for path in sorted(output_dir.glob("*.pdf")):
        if case_id_from_filename(path.name) == case_id:
            return path
    return None


class CaseDownloader:
    """Downloads cases into one output directory."""

    def __init__(self, client: CentaxClient, output_dir: Optional[str | Path] = None) -> None:
        self.client = client
        self.output_dir = Path(output_dir or settings.DOWNLOADS_DIR)

    async def download_case(self, case_id: str, title: str = "", search_text: str = "") -> DownloadResult:
        """
        Download one case as PDF with a `.txt` sidecar.

        Returns:
            DownloadResult; failures are reported in the result, not raised
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)

        existing = find_existing_pdf(case_id, self.output_dir)
        if existing:
            logger.info("Already exists", extra={"case_id": case_id, "file_path": existing.name})
            return DownloadResult(success=True, skipped=True, id=case_id, path=str(existing))

        try:
            doc = await self.client.get_case_html(case_id, search_text)
            pdf_name = safe_pdf_name(case_id, title)
            signed_url = await self.client.generate_pdf(wrap_html_for_pdf(doc.html_content, title), pdf_name)

            output_path = self.output_dir / pdf_name
            await self.client.download_file(signed_url, output_path)
            output_path.with_suffix(".txt").write_text(html_to_text(doc.html_content), encoding="utf-8")

            size = output_path.stat().st_size
            logger.info("Saved", extra={"case_id": case_id, "file_path": output_path.name, "size_kb": round(size / 1024, 1)})
            return DownloadResult(success=True, id=case_id, path=str(output_path), size=size)

        except (CasebotError, OSError) as e:
            logger.error("Download failed", extra={"case_id": case_id, "error": str(e)})
            return DownloadResult(success=False, id=case_id, error=str(e))

    async def download_multiple(self, cases: Sequence[SearchHit], delay: Optional[float] = None) -> list[DownloadResult]:
        """Download cases one after another, pausing between fresh downloads."""
        delay = settings.DOWNLOAD_DELAY if delay is None else delay
        results = []

        logger.info("Downloading cases as PDFs", extra={"count": len(cases)})

        for index, case in enumerate(cases):
            logger.info(f"[{index + 1}/{len(cases)}] {case.title}")
            result = await self.download_case(case.id, case.title)
            results.append(result)

            if index < len(cases) - 1 and not result.skipped:
                await asyncio.sleep(delay)

        logger.info(
            "Download summary",
            extra={
                "downloaded": sum(1 for r in results if r.success and not r.skipped),
                "skipped": sum(1 for r in results if r.skipped),
                "failed": sum(1 for r in results if not r.success),
                "output_dir": str(self.output_dir),
            },
        )
        return results

    async def generate_texts(self, delay: float = 1.0) -> int:
        """
        Write missing `.txt` sidecars for PDFs already on disk.

        Returns:
            Number of sidecars written
        """
        written = 0
        for pdf in sorted(self.output_dir.glob("*.pdf")):
            txt_path = pdf.with_suffix(".txt")
            if txt_path.exists():
                continue

            case_id = case_id_from_filename(pdf.name)
            if not case_id:
                logger.warning("No case id in filename", extra={"file_path": pdf.name})
                continue

            try:
                doc = await self.client.get_case_html(case_id)
            except CasebotError as e:
                logger.error("Could not fetch text", extra={"file_path": pdf.name, "error": str(e)})
                continue

            text = html_to_text(doc.html_content)
            txt_path.write_text(text, encoding="utf-8")
            written += 1
            logger.info("Wrote text sidecar", extra={"file_path": txt_path.name, "chars": len(text)})
            await asyncio.sleep(delay)

        return written
