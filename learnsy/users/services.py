from typing import Dict, Optional
import logging

import bcrypt
from flask import current_app, has_app_context
from pymongo.errors import DuplicateKeyError

from learnsy.shared.standardization import VerificationBaseService, ErrorCodes
from learnsy.shared.exceptions import AppException
from learnsy.shared.utils import to_object_id, utcnow
from .models import User, public_user

logger = logging.getLogger(__name__)

PROFILE_FIELDS = {
    "student": ("name", "department", "student_id"),
    "faculty": ("name", "department", "institution"),
}

class UserService(VerificationBaseService):
    def __init__(self, db=None):
        super().__init__(collection_name="users", db=db)

    def _bcrypt_rounds(self) -> int:
        if has_app_context():
            return int(current_app.config.get("BCRYPT_ROUNDS", 12))
        return 12

    def hash_password(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self._bcrypt_rounds())
        return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')

    @staticmethod
    def check_password(password: str, hashed: Optional[str]) -> bool:
        if not password or not hashed:
            return False
        try:
            return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))
        except ValueError:
            # hash almacenado con formato inválido
            return False

    def verify_user_exists(self, email: str) -> bool:
        return self.collection.find_one({"email": email.strip().lower()}, {"_id": 1}) is not None

    def register_user(self, data: Dict, role: str) -> Dict:
        """
        Registra un estudiante o docente.

        Args:
            data: Datos del formulario de registro (ya validados por esquema)
            role: 'student' o 'faculty'

        Returns:
            Documento público del usuario creado

        Raises:
            AppException: 409 si el email o la matrícula ya están registrados
        """
        if self.verify_user_exists(data["email"]):
            raise AppException("El correo electrónico ya está registrado.", AppException.CONFLICT,
                               {"error_code": ErrorCodes.EMAIL_IN_USE})

        if role == "student":
            student_id = data["student_id"].strip()
            if self.collection.find_one({"student_id": student_id}, {"_id": 1}):
                raise AppException("La matrícula ya está registrada.", AppException.CONFLICT,
                                   {"error_code": ErrorCodes.STUDENT_ID_IN_USE})

        user = User(
            email=data["email"],
            name=data["name"],
            role=role,
            password=self.hash_password(data["password"]),
            student_id=data.get("student_id") if role == "student" else None,
            department=data.get("department", ""),
            institution=data.get("institution", "") if role == "faculty" else ""
        )
        user_doc = user.to_dict()
        try:
            result = self.collection.insert_one(user_doc)
        except DuplicateKeyError:
            raise AppException("El usuario ya está registrado.", AppException.CONFLICT)

        user_doc["_id"] = result.inserted_id
        logger.info(f"Usuario {role} registrado: {user_doc['email']}")
        return public_user(user_doc)

    def login_user(self, email: str, password: str, role: str) -> Dict:
        """
        Verifica las credenciales de un usuario para el rol indicado.

        Raises:
            AppException: 401 si las credenciales no son válidas o la cuenta está desactivada
        """
        user = self.collection.find_one({"email": (email or "").strip().lower(), "role": role})
        if not user or not self.check_password(password, user.get("password")):
            raise AppException("Credenciales inválidas", AppException.UNAUTHORIZED)

        if user.get("is_active") is False:
            raise AppException("La cuenta está desactivada", AppException.UNAUTHORIZED)

        now = utcnow()
        self.collection.update_one({"_id": user["_id"]}, {"$set": {"last_login": now}})
        user["last_login"] = now
        return public_user(user)

    def get_profile(self, user_id: str) -> Dict:
        user = self.collection.find_one({"_id": to_object_id(user_id)}, {"password": 0})
        if not user:
            raise AppException("Usuario no encontrado", AppException.NOT_FOUND)
        return public_user(user)

    def update_profile(self, user_id: str, role: str, data: Dict) -> Dict:
        """Actualiza los campos editables del perfil según el rol."""
        updates = {}
        for field in PROFILE_FIELDS.get(role, ()):
            value = data.get(field)
            if isinstance(value, str) and value.strip():
                updates[field] = value.strip()

        if not updates:
            raise AppException("No hay campos válidos para actualizar", AppException.BAD_REQUEST)

        if "student_id" in updates:
            clash = self.collection.find_one({
                "student_id": updates["student_id"],
                "_id": {"$ne": to_object_id(user_id)}
            }, {"_id": 1})
            if clash:
                raise AppException("La matrícula ya está registrada.", AppException.CONFLICT)

        self.update(user_id, updates)
        return self.get_profile(user_id)

    def get_stats(self) -> Dict:
        by_role = {"student": 0, "faculty": 0}
        for row in self.collection.aggregate([{"$group": {"_id": "$role", "count": {"$sum": 1}}}]):
            if row["_id"] in by_role:
                by_role[row["_id"]] = row["count"]

        return {
            "total": self.count(),
            "active": self.count({"is_active": True}),
            "verified": self.count({"is_verified": True}),
            "by_role": by_role
        }
