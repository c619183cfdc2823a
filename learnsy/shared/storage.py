"""
Almacenamiento local de archivos subidos (materiales y documentos de IA).

Los archivos se guardan en <UPLOAD_FOLDER>/<subcarpeta>/ con un nombre
único "<timestamp>-<aleatorio>-<nombre seguro>".
"""

import os
import secrets
from typing import Dict, Iterable

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from learnsy.shared.exceptions import AppException
from learnsy.shared.logging import log_warning
from learnsy.shared.utils import utcnow

def file_extension(filename: str) -> str:
    return filename.rsplit('.', 1)[1].lower() if filename and '.' in filename else ''

def upload_root() -> str:
    return os.path.abspath(current_app.config.get('UPLOAD_FOLDER', 'uploads'))

def measure(file: FileStorage) -> int:
    """Tamaño en bytes del archivo recibido, dejando el cursor al inicio."""
    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    return size

def save_upload(file: FileStorage, subfolder: str, allowed_extensions: Iterable[str],
                max_size: int) -> Dict:
    """
    Valida y guarda un archivo subido.

    Returns:
        dict con file_name, file_path, file_size, mime_type y original_file_name

    Raises:
        AppException: si falta el archivo, la extensión no está permitida o
            supera el tamaño máximo
    """
    if file is None or not file.filename:
        raise AppException("No se recibió ningún archivo", AppException.BAD_REQUEST)

    extension = file_extension(file.filename)
    if extension not in set(allowed_extensions):
        raise AppException(
            f"Tipo de archivo no permitido: .{extension or '?'}",
            AppException.BAD_REQUEST,
            {"allowed": sorted(allowed_extensions)}
        )

    size = measure(file)
    if size > max_size:
        raise AppException(
            f"El archivo supera el tamaño máximo de {max_size // (1024 * 1024)} MB",
            AppException.PAYLOAD_TOO_LARGE
        )

    safe_name = secure_filename(file.filename) or f"file.{extension}"
    stamp = int(utcnow().timestamp() * 1000)
    file_name = f"{stamp}-{secrets.randbelow(10**9)}-{safe_name}"

    directory = os.path.join(upload_root(), subfolder)
    os.makedirs(directory, exist_ok=True)
    file_path = os.path.join(directory, file_name)
    file.save(file_path)

    return {
        "file_name": file_name,
        "file_path": file_path,
        "file_size": size,
        "mime_type": file.mimetype,
        "original_file_name": file.filename
    }

def delete_stored_file(file_path: str) -> bool:
    """Elimina un archivo guardado; devuelve False si no existía."""
    if not file_path:
        return False
    try:
        os.remove(file_path)
        return True
    except FileNotFoundError:
        log_warning(f"Archivo no encontrado al eliminar: {file_path}", "shared.storage")
        return False
