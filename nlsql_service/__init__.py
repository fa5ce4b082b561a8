from .assistant import SQLAssistant
from .config import Settings
from .errors import InitializationError, NLSQLError
from .models import Err, Guarded, Ok

__all__ = [
    "SQLAssistant",
    "Settings",
    "InitializationError",
    "NLSQLError",
    "Ok",
    "Guarded",
    "Err",
]
