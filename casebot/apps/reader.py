"""
Reads the `.txt` sidecars saved next to downloaded PDFs.
"""

import logging
from pathlib import Path
from typing import Optional

from casebot.apps.downloader import case_id_from_filename
from casebot.utils.config import settings
from casebot.utils.schemas import CaseText

logger = logging.getLogger(__name__)


def extract_text(pdf_path: Path) -> Optional[str]:
    txt_path = pdf_path.with_suffix(".txt")
    if txt_path.is_file():
        return txt_path.read_text(encoding="utf-8")
    return None


def extract_all_texts(directory: Optional[str | Path] = None) -> list[CaseText]:
    """Load every downloaded case that has a text sidecar."""
    downloads = Path(directory or settings.DOWNLOADS_DIR)
    pdfs = sorted(downloads.glob("*.pdf")) if downloads.is_dir() else []
    if not pdfs:
        logger.warning("No PDFs found", extra={"directory": str(downloads)})
        return []

    results = []
    for pdf in pdfs:
        text = extract_text(pdf)
        if not text:
            logger.warning("No .txt file found (re-download to generate)", extra={"file_path": pdf.name})
            continue
        case_id = case_id_from_filename(pdf.name) or pdf.name
        results.append(CaseText(id=case_id, filename=pdf.name, text=text))

    logger.info("Loaded cases", extra={"loaded": len(results), "pdfs": len(pdfs)})
    return results
