from .validator import DEFAULT_CHECKS, PreflightCheck, PreflightReport, PreflightValidator

__all__ = ["DEFAULT_CHECKS", "PreflightCheck", "PreflightReport", "PreflightValidator"]
