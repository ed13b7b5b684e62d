"""CI gates: content linter and performance audit."""

from .audit import AuditConfig, AuditReport, evaluate, load_audit_config, run_audit
from .content import LintReport, check_content, clean_content, find_projects

__all__ = [
    "AuditConfig",
    "AuditReport",
    "evaluate",
    "load_audit_config",
    "run_audit",
    "LintReport",
    "check_content",
    "clean_content",
    "find_projects",
]
