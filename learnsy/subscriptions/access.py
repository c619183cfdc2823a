"""
Acceso de prueba gratuita: el nivel gratuito solo permite los primeros
materiales de cada tipo de un curso.
"""

from typing import Dict, List

from learnsy.shared.constants import DOCUMENT_MATERIAL_TYPES
from .models import FREE_FEATURES, UNLIMITED

FREE_TIER = "free"

VIDEO_TYPES = {"video"}

def can_access(index: int, tier: str, limit: int) -> bool:
    """
    Decide si el material en la posición `index` (base cero) es accesible.

    En el nivel gratuito el acceso se concede si index < limit; en cualquier
    otro nivel siempre se concede. Un límite de -1 es ilimitado.
    """
    if index < 0:
        return False
    if tier != FREE_TIER or limit == UNLIMITED:
        return True
    return index < limit

def can_access_video(index: int, tier: str) -> bool:
    return can_access(index, tier, FREE_FEATURES.video_limit)

def can_access_document(index: int, tier: str) -> bool:
    return can_access(index, tier, FREE_FEATURES.document_limit)

def annotate_access(materials: List[Dict], tier: str) -> List[Dict]:
    """
    Marca cada material con `is_locked` según su posición entre los del mismo
    tipo (videos y documentos se cuentan por separado). Los materiales deben
    venir ordenados.
    """
    video_index = document_index = 0
    for material in materials:
        kind = material.get("type")
        if kind in VIDEO_TYPES:
            material["is_locked"] = not can_access_video(video_index, tier)
            video_index += 1
        elif kind in DOCUMENT_MATERIAL_TYPES:
            material["is_locked"] = not can_access_document(document_index, tier)
            document_index += 1
        else:
            material["is_locked"] = False
    return materials
