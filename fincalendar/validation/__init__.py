"""Document validation and repair package."""

from fincalendar.validation.normalizer import normalize, serialize, to_document_dict

__all__ = ["normalize", "serialize", "to_document_dict"]
