from typing import Optional, Dict
from learnsy.shared.utils import utcnow

class User:
    """
    Modelo de usuario (estudiante o docente).
    """
    def __init__(self,
                 email: str,
                 name: str,
                 role: str,
                 password: Optional[str] = None,
                 student_id: Optional[str] = None,
                 department: str = "",
                 institution: str = "",
                 is_active: bool = True,
                 is_verified: bool = False):
        self.email = email.strip().lower()
        self.name = name.strip()
        self.role = role
        self.password = password
        self.student_id = student_id.strip() if student_id else None
        self.department = department or ""
        self.institution = institution or ""
        self.is_active = is_active
        self.is_verified = is_verified
        self.last_login = None
        self.created_at = utcnow()
        self.updated_at = utcnow()

    def to_dict(self) -> dict:
        data = {
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "password": self.password,
            "department": self.department,
            "is_active": self.is_active,
            "is_verified": self.is_verified,
            "last_login": self.last_login,
            "created_at": self.created_at,
            "updated_at": self.updated_at
        }
        if self.role == "student":
            data["student_id"] = self.student_id
        else:
            data["institution"] = self.institution
        return data


def public_user(user: Dict) -> Dict:
    """Representación del usuario que se devuelve al cliente (sin contraseña)."""
    if not user:
        return None
    data = {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "role": user.get("role"),
        "department": user.get("department", ""),
        "is_verified": user.get("is_verified", False),
        "last_login": user.get("last_login"),
        "created_at": user.get("created_at")
    }
    if user.get("role") == "student":
        data["student_id"] = user.get("student_id")
    else:
        data["institution"] = user.get("institution", "")
    return data
