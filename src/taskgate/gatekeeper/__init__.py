"""Artifact audit and correction loop checks."""

from .checks import (
    CRITERION_COVERAGE,
    KIND_FIDELITY,
    SECRET_LEAKAGE,
    STRUCTURAL_INTEGRITY,
    check_coverage,
    check_delimiters,
    check_kind_fidelity,
    check_secrets,
    check_structure,
    extract_code_blocks,
    redact,
    scannable_text,
    sniff_image_type,
)
from .gate import Gatekeeper

__all__ = [
    "CRITERION_COVERAGE",
    "KIND_FIDELITY",
    "SECRET_LEAKAGE",
    "STRUCTURAL_INTEGRITY",
    "Gatekeeper",
    "check_coverage",
    "check_delimiters",
    "check_kind_fidelity",
    "check_secrets",
    "check_structure",
    "extract_code_blocks",
    "redact",
    "scannable_text",
    "sniff_image_type",
]
