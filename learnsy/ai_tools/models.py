import os
import re
from typing import Dict, Optional

from learnsy.shared.constants import AI_PROCESSING_STATUS
from learnsy.shared.utils import utcnow

AI_SUBFOLDER = "ai-files"

PLACEHOLDER_KEY_POINTS = {
    "video": [
        "Introduction to core concepts and terminology",
        "Step-by-step demonstration of key processes",
        "Common challenges and how to overcome them",
        "Best practices and recommendations",
        "Summary and next steps for further learning"
    ],
    "ppt": [
        "Title slide with main topic introduction",
        "Agenda and learning objectives",
        "Core content with supporting visuals",
        "Key takeaways and summary",
        "Q&A and next steps"
    ]
}

PLACEHOLDER_TAGS = {
    "video": ["tutorial", "beginner", "practical"],
    "ppt": ["presentation", "visual", "structured"]
}

class AISummary:
    def __init__(self, user_id, file_type: str, file_info: Optional[Dict] = None,
                 source: str = "upload"):
        file_info = file_info or {}
        self.user_id = user_id
        self.file_type = file_type
        self.source = source
        self.file_name = file_info.get("file_name")
        self.original_file_name = file_info.get("original_file_name")
        self.file_size = file_info.get("file_size", 0)
        self.file_path = file_info.get("file_path")

    def to_dict(self) -> Dict:
        now = utcnow()
        return {
            "user_id": self.user_id,
            "file_name": self.file_name,
            "original_file_name": self.original_file_name,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "file_path": self.file_path,
            "source": self.source,
            "summary": "",
            "key_points": [],
            "tags": [],
            "word_count": 0,
            "page_count": None,
            "slide_count": None,
            "duration": None,
            "processing_status": AI_PROCESSING_STATUS["PROCESSING"],
            "processing_error": None,
            "download_count": 0,
            "created_at": now,
            "updated_at": now
        }

def topic_from_file_name(file_name: str) -> str:
    """'Intro_to-Python.mp4' -> 'intro to python'"""
    name = os.path.splitext(os.path.basename(file_name or ""))[0]
    return re.sub(r"[-_]", " ", name).lower()

def placeholder_summary(file_type: str, file_name: str) -> Dict:
    """Resumen genérico para archivos cuyo texto no se puede extraer (vídeos y .ppt)."""
    topic = topic_from_file_name(file_name)
    if file_type == "video":
        summary = (f"This video covers the fundamentals of {topic}. The content is structured into "
                   "several key sections that build upon each other to provide a comprehensive "
                   "understanding of the subject matter.")
    else:
        summary = (f"This presentation provides a structured overview of {topic}. The slides follow "
                   "a logical flow from introduction to conclusion.")
    return {
        "summary": summary,
        "key_points": list(PLACEHOLDER_KEY_POINTS.get(file_type, PLACEHOLDER_KEY_POINTS["ppt"])),
        "tags": list(PLACEHOLDER_TAGS.get(file_type, PLACEHOLDER_TAGS["ppt"])),
        "word_count": len(summary.split())
    }

def render_summary_text(summary: Dict) -> str:
    """Versión en texto plano del resumen para descargar."""
    lines = [f"Summary of {summary.get('original_file_name') or summary.get('file_type')}", ""]
    lines.append(summary.get("summary") or "")
    if summary.get("key_points"):
        lines += ["", "Key points:"]
        lines += [f"- {point}" for point in summary["key_points"]]
    if summary.get("tags"):
        lines += ["", f"Keywords: {', '.join(summary['tags'])}"]
    return "\n".join(lines) + "\n"
