"""Secret detection and redaction."""

from gitarchitect.security.scanner import (
    SECRET_PATTERNS,
    DetectionResult,
    ScannerConfig,
    SecretDetection,
    SecretScanner,
    SecurityReport,
    calculate_entropy,
    is_high_entropy_string,
    is_sensitive_file,
    mask_secrets,
    redact_secrets,
    sanitize_for_ai,
    scan_files,
)

__all__ = [
    "SECRET_PATTERNS",
    "DetectionResult",
    "ScannerConfig",
    "SecretDetection",
    "SecretScanner",
    "SecurityReport",
    "calculate_entropy",
    "is_high_entropy_string",
    "is_sensitive_file",
    "mask_secrets",
    "redact_secrets",
    "sanitize_for_ai",
    "scan_files",
]
