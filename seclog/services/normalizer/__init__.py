"""
Raw record -> canonical document.

    from seclog.services.normalizer import normalize
    doc = normalize(raw)          # never raises
"""

from .ip import clean_ip, is_valid_ip
from .normalize import empty_document, generate_id, normalize, placeholder_document

__all__ = [
    "normalize",
    "empty_document",
    "placeholder_document",
    "generate_id",
    "is_valid_ip",
    "clean_ip",
]
