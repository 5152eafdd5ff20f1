from .registry import (
    CONTROL_TOOLS,
    CRITICAL_TOOLS,
    DANGEROUS_TOOLS,
    READ_ONLY_TOOLS,
    ToolRegistry,
    ValidationResult,
)
from .file_ops import FileOperationError
from .project import detect_project_type, generate_project_map

__all__ = ["ToolRegistry", "ValidationResult", "FileOperationError",
           "READ_ONLY_TOOLS", "DANGEROUS_TOOLS", "CRITICAL_TOOLS", "CONTROL_TOOLS",
           "detect_project_type", "generate_project_map"]
