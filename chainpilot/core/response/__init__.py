from .composer import DISPLAY_SYMBOLS, ResponseComposer, display_symbol

__all__ = ["DISPLAY_SYMBOLS", "ResponseComposer", "display_symbol"]
