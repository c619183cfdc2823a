from flask import request, make_response

from .services import AIToolsService
from learnsy.shared.standardization import APIBlueprint, APIRoute
from learnsy.shared.decorators import get_auth_user_id

ai_tools_bp = APIBlueprint('ai_tools', __name__)
ai_tools_service = AIToolsService()

@ai_tools_bp.route('/upload', methods=['POST'])
@APIRoute.standard(auth_required_flag=True)
def upload_file():
    """
    Sube un vídeo, PDF o presentación (multipart: `file`, `file_type`) y
    devuelve el resumen generado. Máximo 100 MB.
    """
    file_type = request.form.get('file_type') or request.form.get('fileType')
    summary = ai_tools_service.upload_and_process(get_auth_user_id(), request.files.get('file'), file_type)
    return APIRoute.success(data=summary, message="Archivo procesado", status_code=201)

@ai_tools_bp.route('/summarize-text', methods=['POST'])
@APIRoute.standard(auth_required_flag=True, required_fields=['text'])
def summarize_text():
    data = request.get_json()
    return APIRoute.success(data=ai_tools_service.summarize_raw_text(data['text'], data.get('kind')))

@ai_tools_bp.route('/summaries', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def list_summaries():
    result = ai_tools_service.list_summaries(
        get_auth_user_id(), request.args.get('file_type'), request.args.get('status')
    )
    return APIRoute.success(data=result)

@ai_tools_bp.route('/summaries/<summary_id>', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def get_summary(summary_id):
    return APIRoute.success(data=ai_tools_service.get_summary(summary_id, get_auth_user_id()))

@ai_tools_bp.route('/summaries/<summary_id>/download', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def download_summary(summary_id):
    file_name, text = ai_tools_service.download(summary_id, get_auth_user_id())
    response = make_response(text)
    response.headers['Content-Type'] = 'text/plain; charset=utf-8'
    response.headers['Content-Disposition'] = f'attachment; filename="{file_name}"'
    return response

@ai_tools_bp.route('/summaries/<summary_id>', methods=['DELETE'])
@APIRoute.standard(auth_required_flag=True)
def delete_summary(summary_id):
    ai_tools_service.delete_summary(summary_id, get_auth_user_id())
    return APIRoute.success(message="Resumen eliminado")

@ai_tools_bp.route('/stats', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def ai_stats():
    return APIRoute.success(data=ai_tools_service.stats(get_auth_user_id()))
