from .sanitize import SECRET_FIELDS, to_uppercase, to_lowercase, sanitize_strings
from .model_validators import find_unknown_model_kwargs, find_readonly_kwargs

__all__ = [
    "SECRET_FIELDS",
    "to_uppercase",
    "to_lowercase",
    "sanitize_strings",
    "find_unknown_model_kwargs",
    "find_readonly_kwargs",
]
