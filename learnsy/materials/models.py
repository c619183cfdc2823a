import bleach
from typing import Dict, Optional
from learnsy.shared.utils import utcnow

MATERIALS_SUBFOLDER = "materials"

class Material:
    """
    Material de un curso (video, documento, enlace, cuestionario...).
    """
    def __init__(self,
                 title: str,
                 material_type: str,
                 course_id,
                 faculty_id,
                 description: str = "",
                 content: str = "",
                 external_url: str = "",
                 order: int = 0,
                 duration: Optional[str] = None,
                 is_published: bool = True,
                 file_info: Optional[Dict] = None):
        self.title = title.strip()
        self.type = material_type
        self.course_id = course_id
        self.faculty_id = faculty_id
        self.description = description or ""
        self.content = content or ""
        self.external_url = external_url or ""
        self.order = order
        self.duration = duration
        self.is_published = is_published
        self.file_info = file_info or {}
        self.created_at = utcnow()

    def to_dict(self) -> Dict:
        return {
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "course_id": self.course_id,
            "faculty_id": self.faculty_id,
            "content": self.content,
            "external_url": self.external_url,
            "file_name": self.file_info.get("file_name"),
            "file_path": self.file_info.get("file_path"),
            "file_size": self.file_info.get("file_size"),
            "mime_type": self.file_info.get("mime_type"),
            "original_file_name": self.file_info.get("original_file_name"),
            "order": self.order,
            "duration": self.duration,
            "is_published": self.is_published,
            "views": 0,
            "created_at": self.created_at,
            "updated_at": self.created_at
        }


def material_file_url(material: Dict) -> Optional[str]:
    if material.get("file_name"):
        return f"/uploads/{MATERIALS_SUBFOLDER}/{material['file_name']}"
    return material.get("external_url") or None

ALLOWED_CONTENT_TAGS = [
    'p', 'br', 'hr', 'strong', 'em', 'b', 'i', 'u', 'ul', 'ol', 'li', 'a', 'img',
    'h1', 'h2', 'h3', 'h4', 'blockquote', 'code', 'pre', 'table', 'thead', 'tbody', 'tr', 'td', 'th'
]
ALLOWED_CONTENT_ATTRS = {
    '*': ['class'],
    'a': ['href', 'title'],
    'img': ['src', 'alt', 'title'],
}

def sanitize_content(html: str) -> str:
    """Limpia el HTML de los materiales de texto (sin scripts ni atributos de eventos)."""
    if not html:
        return ""
    return bleach.clean(
        html,
        tags=ALLOWED_CONTENT_TAGS,
        attributes=ALLOWED_CONTENT_ATTRS,
        protocols=['http', 'https', 'mailto'],
        strip=True
    )
