from .models import ActionKind, ActionRequest
from .parser import IntentParser, format_request

__all__ = ["ActionKind", "ActionRequest", "IntentParser", "format_request"]
