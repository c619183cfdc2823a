import logging
import os
from typing import Dict, Optional, Tuple

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from learnsy.shared.standardization import BaseService
from learnsy.shared.constants import AI_FILE_TYPES, AI_MAX_FILE_SIZE, AI_PROCESSING_STATUS
from learnsy.shared.exceptions import AppException
from learnsy.shared.storage import save_upload, delete_stored_file, file_extension
from learnsy.shared.utils import to_object_id, utcnow
from .extractors import ExtractionError, extract_pdf_text, extract_pptx_text
from .models import AI_SUBFOLDER, AISummary, placeholder_summary, render_summary_text
from .summarizer import SummarizerError, summarize_text

logger = logging.getLogger(__name__)

class AIToolsService(BaseService):
    def __init__(self, db=None):
        super().__init__(collection_name="ai_summaries", db=db)

    def summary_view(self, summary: Dict) -> Dict:
        view = dict(summary)
        view.pop("file_path", None)
        view["id"] = str(summary["_id"])
        return view

    def _get_owned(self, summary_id: str, user_id: str) -> Dict:
        summary_oid = to_object_id(summary_id)
        if summary_oid is None:
            raise AppException(f"ID inválido: {summary_id}", AppException.BAD_REQUEST)
        summary = self.collection.find_one({"_id": summary_oid, "user_id": to_object_id(user_id)})
        if not summary:
            raise AppException("Resumen no encontrado", AppException.NOT_FOUND)
        return summary

    @staticmethod
    def analyze_file(file_path: str, file_type: str, original_name: str) -> Dict:
        """
        Extrae el texto del archivo y lo resume.

        Los vídeos y las presentaciones .ppt antiguas reciben un resumen
        genérico a partir del nombre del archivo.
        """
        extension = file_extension(original_name)
        if file_type == "pdf":
            extracted = extract_pdf_text(file_path)
        elif file_type == "ppt" and extension in ("pptx", "ppsx"):
            extracted = extract_pptx_text(file_path)
        else:
            return placeholder_summary(file_type, original_name)

        result = summarize_text(extracted["text"])
        return {
            "summary": result["summary"],
            "key_points": result["highlights"],
            "tags": result["keywords"],
            "word_count": result["word_count"],
            "page_count": extracted.get("page_count"),
            "slide_count": extracted.get("slide_count")
        }

    def upload_and_process(self, user_id: str, file: Optional[FileStorage], file_type: Optional[str]) -> Dict:
        """
        Guarda el archivo y genera su resumen de forma síncrona.

        Un error de extracción no invalida la subida: el resumen queda con
        processing_status = failed y el mensaje en processing_error.
        """
        if file is None or not file.filename:
            raise AppException("No file uploaded", AppException.BAD_REQUEST)
        if not file_type:
            raise AppException("File type is required", AppException.BAD_REQUEST)
        if file_type not in AI_FILE_TYPES:
            raise AppException(f"Tipo de archivo inválido: {file_type}", AppException.BAD_REQUEST,
                               {"valid_types": sorted(AI_FILE_TYPES)})

        file_info = save_upload(file, AI_SUBFOLDER, AI_FILE_TYPES[file_type], AI_MAX_FILE_SIZE)
        record = AISummary(to_object_id(user_id), file_type, file_info).to_dict()
        record["_id"] = self.collection.insert_one(record).inserted_id

        try:
            updates = self.analyze_file(file_info["file_path"], file_type, file_info["original_file_name"])
            updates["processing_status"] = AI_PROCESSING_STATUS["COMPLETED"]
        except (ExtractionError, SummarizerError) as e:
            logger.warning(f"No se pudo resumir {file_info['original_file_name']}: {str(e)}")
            updates = {"processing_status": AI_PROCESSING_STATUS["FAILED"], "processing_error": str(e)}

        updates["updated_at"] = utcnow()
        self.collection.update_one({"_id": record["_id"]}, {"$set": updates})
        record.update(updates)
        logger.info(f"Resumen {record['_id']} ({file_type}) -> {record['processing_status']}")
        return self.summary_view(record)

    def summarize_raw_text(self, text: str, kind: Optional[str] = None) -> Dict:
        try:
            result = summarize_text(text)
        except SummarizerError as e:
            raise AppException(str(e), AppException.BAD_REQUEST)
        result["kind"] = kind or "text"
        return result

    def list_summaries(self, user_id: str, file_type: Optional[str] = None,
                       status: Optional[str] = None) -> Dict:
        query = {"user_id": to_object_id(user_id)}
        if file_type:
            query["file_type"] = file_type
        if status:
            query["processing_status"] = status
        summaries = [self.summary_view(s) for s in self.collection.find(query).sort("created_at", -1)]
        return {"summaries": summaries, "count": len(summaries)}

    def get_summary(self, summary_id: str, user_id: str) -> Dict:
        return self.summary_view(self._get_owned(summary_id, user_id))

    def download(self, summary_id: str, user_id: str) -> Tuple[str, str]:
        """Devuelve (nombre de archivo, texto) e incrementa download_count."""
        summary = self._get_owned(summary_id, user_id)
        if summary.get("processing_status") != AI_PROCESSING_STATUS["COMPLETED"]:
            raise AppException("El resumen todavía no está disponible", AppException.CONFLICT)

        self.collection.update_one({"_id": summary["_id"]}, {"$inc": {"download_count": 1}})
        base = secure_filename(os.path.splitext(summary.get("original_file_name") or "")[0]) or "summary"
        return f"{base}-summary.txt", render_summary_text(summary)

    def delete_summary(self, summary_id: str, user_id: str) -> None:
        summary = self._get_owned(summary_id, user_id)
        delete_stored_file(summary.get("file_path"))
        self.collection.delete_one({"_id": summary["_id"]})
        logger.info(f"Resumen {summary_id} eliminado")

    def stats(self, user_id: str) -> Dict:
        user_oid = to_object_id(user_id)
        by_type = list(self.collection.aggregate([
            {"$match": {"user_id": user_oid}},
            {"$group": {
                "_id": "$file_type",
                "count": {"$sum": 1},
                "total_size": {"$sum": "$file_size"},
                "completed": {"$sum": {"$cond": [
                    {"$eq": ["$processing_status", AI_PROCESSING_STATUS["COMPLETED"]]}, 1, 0
                ]}}
            }}
        ]))
        total = sum(item["count"] for item in by_type)
        completed = sum(item["completed"] for item in by_type)
        return {
            "total_summaries": total,
            "completed_summaries": completed,
            "by_type": [{"file_type": item["_id"], **{k: v for k, v in item.items() if k != "_id"}}
                        for item in by_type],
            "completion_rate": round(completed / total * 100, 1) if total else 0
        }
