"""
Extracción de texto de documentos PDF y presentaciones PPTX/PPSX.
"""

import re
import zipfile
import xml.etree.ElementTree as ET
from typing import Dict

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

DRAWINGML_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"
_SLIDE_PATH = re.compile(r"^ppt/slides/slide(\d+)\.xml$")


class ExtractionError(ValueError):
    pass


def extract_pdf_text(file_path: str) -> Dict:
    """Texto de todas las páginas y número de páginas."""
    try:
        reader = PdfReader(file_path)
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PdfReadError, OSError) as e:
        raise ExtractionError(f"No se pudo leer el PDF: {str(e)}")
    return {"text": "\n".join(pages), "page_count": len(pages)}

def _slide_number(name: str) -> int:
    return int(_SLIDE_PATH.match(name).group(1))

def extract_pptx_text(file_path: str) -> Dict:
    """
    Texto de las diapositivas (elementos <a:t>) en orden numérico:
    slide2.xml va antes que slide10.xml.
    """
    try:
        with zipfile.ZipFile(file_path) as archive:
            slides = sorted((n for n in archive.namelist() if _SLIDE_PATH.match(n)), key=_slide_number)
            if not slides:
                raise ExtractionError("No slides were found in this presentation.")

            segments = []
            for slide in slides:
                root = ET.fromstring(archive.read(slide))
                for node in root.iter(f"{{{DRAWINGML_NS}}}t"):
                    if node.text and node.text.strip():
                        segments.append(node.text.strip())
    except (zipfile.BadZipFile, ET.ParseError, OSError) as e:
        raise ExtractionError(f"No se pudo leer la presentación: {str(e)}")

    if not segments:
        raise ExtractionError("We could not extract readable text from this PPT.")
    return {"text": " ".join(segments), "slide_count": len(slides)}
