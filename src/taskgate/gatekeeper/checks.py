"""
Gatekeeper checks.

Each check is independent, reads the artifacts of one pass and returns an
AuditFinding. Details always start with the id of the artifact (task) they
concern; credential values never appear in them.
"""

from __future__ import annotations

import ast
import json
import logging
import re
import shutil
import subprocess
from collections.abc import Iterable, Mapping

from taskgate.delegation.models import (
    CODE_TASK_TYPES,
    Artifact,
    ArtifactKind,
    AuditFinding,
    Criterion,
    CriterionCategory,
    CriterionStatus,
    Task,
    TaskStatus,
    TaskType,
)

logger = logging.getLogger(__name__)

STRUCTURAL_INTEGRITY = "structural_integrity"
KIND_FIDELITY = "kind_fidelity"
SECRET_LEAKAGE = "secret_leakage"
CRITERION_COVERAGE = "criterion_coverage"

DEFAULT_MIN_SECRET_LENGTH = 16
REDACTED = "[REDACTED]"
SHELL_CHECK_TIMEOUT = 10.0
# Criteria without explicit evidence terms match on this much of their description
COVERAGE_PREFIX_LENGTH = 30

FENCE = re.compile(r"```[ \t]*([\w+#.-]*)[^\n]*\n(.*?)```", re.DOTALL)

PYTHON_LANGS = frozenset({"python", "py", "python3"})
JSON_LANGS = frozenset({"json"})
SHELL_LANGS = frozenset({"bash", "sh", "shell", "zsh"})
BRACE_LANGS = frozenset({
    "javascript", "js", "jsx", "mjs", "typescript", "ts", "tsx", "css", "scss",
    "go", "golang", "java", "c", "cpp", "c++", "csharp", "cs", "kotlin", "swift", "php",
})

PAIRS = {")": "(", "]": "[", "}": "{"}

IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


# ============================================================================
# Helpers
# ============================================================================


def sniff_image_type(data: bytes) -> str | None:
    """Return the image MIME type implied by magic bytes, or None."""
    for signature, mime in IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:2] == b"BM" and len(data) >= 26:
        return "image/bmp"
    head = data[:512].lstrip().lower()
    if head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head):
        return "image/svg+xml"
    return None


def scannable_text(artifact: Artifact) -> str | None:
    """Text a secret could hide in: textual content, or the markup of an SVG image."""
    if not artifact.is_binary:
        return artifact.text
    if sniff_image_type(artifact.content) == "image/svg+xml":
        return artifact.content.decode("utf-8", errors="replace")
    return None


def redact(text: str, credentials: Mapping[str, str], min_length: int = DEFAULT_MIN_SECRET_LENGTH) -> str:
    for value in credentials.values():
        if len(value) >= min_length:
            text = text.replace(value, REDACTED)
    return text


def extract_code_blocks(text: str) -> list[tuple[str, str]]:
    """(language, source) for every fenced block, language lower-cased."""
    return [(m.group(1).lower(), m.group(2)) for m in FENCE.finditer(text)]


def check_delimiters(source: str, line_comments: bool = True) -> str | None:
    """
    Balanced ()[]{} scan for C-family sources.

    Skips // and /* */ comments, backtick strings, and quoted strings (which
    end at a newline). A single quote right after a letter or digit is an
    apostrophe. Returns an error message or None.
    """
    stack: list[tuple[str, int]] = []
    i, line, n = 0, 1, len(source)
    while i < n:
        ch = source[i]
        if ch == "\n":
            line += 1
        elif line_comments and source.startswith("//", i):
            end = source.find("\n", i)
            i = n if end == -1 else end
            continue
        elif source.startswith("/*", i):
            end = source.find("*/", i + 2)
            if end == -1:
                return f"unterminated comment starting on line {line}"
            line += source.count("\n", i, end)
            i = end + 2
            continue
        elif ch == "'" and i > 0 and source[i - 1].isalnum():
            # apostrophe in JSX text or prose ("We're", "users'"), not a quote
            pass
        elif ch in "\"'`":
            i += 1
            while i < n and source[i] != ch:
                if source[i] == "\\":
                    i += 1
                    if i < n and source[i] == "\n":
                        line += 1
                elif source[i] == "\n":
                    if ch != "`":
                        break
                    line += 1
                i += 1
            if ch == "`" and i >= n:
                return f"unterminated template string on line {line}"
            if i < n and source[i] == "\n":
                continue
        elif ch in "([{":
            stack.append((ch, line))
        elif ch in PAIRS:
            if not stack or stack[-1][0] != PAIRS[ch]:
                return f"unexpected '{ch}' on line {line}"
            stack.pop()
        i += 1
    if stack:
        opener, opened = stack[-1]
        return f"unclosed '{opener}' from line {opened}"
    return None


def check_shell(source: str, timeout: float = SHELL_CHECK_TIMEOUT) -> str | None:
    """Parse a shell script with `bash -n`; None when bash is unavailable."""
    bash = shutil.which("bash")
    if bash is None:
        return None
    try:
        proc = subprocess.run(
            [bash, "-n"],
            input=source,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return f"bash -n timed out after {timeout}s"
    if proc.returncode != 0:
        lines = proc.stderr.strip().splitlines()
        return lines[-1] if lines else f"bash -n exited {proc.returncode}"
    return None


def validate_source(language: str, source: str, shell_timeout: float = SHELL_CHECK_TIMEOUT) -> str | None:
    """Validate one block. Languages without a validator pass."""
    if language in PYTHON_LANGS:
        try:
            ast.parse(source)
        except SyntaxError as exc:
            return f"line {exc.lineno}: {exc.msg}"
        except ValueError as exc:
            return str(exc)
        return None
    if language in JSON_LANGS:
        try:
            json.loads(source)
        except json.JSONDecodeError as exc:
            return f"line {exc.lineno}: {exc.msg}"
        return None
    if language in SHELL_LANGS:
        return check_shell(source, shell_timeout)
    if language in BRACE_LANGS:
        # plain CSS has no // comments
        return check_delimiters(source, line_comments=language != "css")
    return None


def _validate_unfenced(source: str) -> str | None:
    """Raw code without fences: accept valid Python, else require balanced delimiters."""
    try:
        ast.parse(source)
    except (SyntaxError, ValueError):
        return check_delimiters(source)
    return None


def _delivered(task: Task) -> bool:
    return (
        task.status == TaskStatus.SUCCEEDED
        and task.artifact is not None
        and not task.artifact.placeholder
    )


# ============================================================================
# Checks
# ============================================================================


def check_structure(tasks: Iterable[Task], shell_timeout: float = SHELL_CHECK_TIMEOUT) -> AuditFinding:
    """Syntax-validate code found in textual artifacts."""
    finding = AuditFinding(check_name=STRUCTURAL_INTEGRITY)
    for task in tasks:
        if not _delivered(task) or task.artifact.is_binary:
            continue
        text = task.artifact.text
        blocks = extract_code_blocks(text)
        if blocks:
            for idx, (language, source) in enumerate(blocks, start=1):
                error = validate_source(language, source, shell_timeout)
                if error:
                    label = language or "untagged"
                    finding.fail(f"{task.id}: {label} block {idx}: {error}", task.id)
        elif task.artifact.kind == ArtifactKind.CODE:
            error = _validate_unfenced(text)
            if error:
                finding.fail(f"{task.id}: {error}", task.id)
    return finding


def check_kind_fidelity(tasks: Iterable[Task]) -> AuditFinding:
    """Image tasks must deliver bytes with an image signature."""
    finding = AuditFinding(check_name=KIND_FIDELITY)
    for task in tasks:
        if task.type != TaskType.IMAGE:
            continue
        artifact = task.artifact
        if artifact is None or artifact.placeholder:
            finding.fail(f"{task.id}: no image delivered", task.id)
        elif not artifact.is_binary:
            finding.fail(f"{task.id}: text returned where an image was required", task.id)
        elif sniff_image_type(artifact.content) is None:
            finding.fail(f"{task.id}: payload has no recognizable image signature", task.id)
    return finding


def check_secrets(
    tasks: Iterable[Task],
    credentials: Mapping[str, str],
    min_length: int = DEFAULT_MIN_SECRET_LENGTH,
) -> AuditFinding:
    """Zero-tolerance verbatim scan for credential values in textual artifacts."""
    finding = AuditFinding(check_name=SECRET_LEAKAGE)
    secrets = {name: value for name, value in credentials.items() if len(value) >= min_length}
    if not secrets:
        return finding
    for task in tasks:
        if task.artifact is None:
            continue
        text = scannable_text(task.artifact)
        if text is None:
            continue
        for name, value in secrets.items():
            if value in text:
                finding.fail(f"{task.id}: value of {name} exposed", task.id)
    return finding


def _criterion_met(criterion: Criterion, tasks: list[Task]) -> bool:
    if criterion.category == CriterionCategory.IMAGE:
        return any(
            t.artifact.is_binary and sniff_image_type(t.artifact.content) is not None
            for t in tasks
        )
    terms = criterion.evidence or (criterion.description[:COVERAGE_PREFIX_LENGTH],)
    for task in tasks:
        text = task.artifact.text.casefold()
        if any(term.casefold() in text for term in terms):
            return True
    return False


def _relevant_tasks(criterion: Criterion, tasks: list[Task]) -> list[Task]:
    if criterion.category == CriterionCategory.CODE:
        return [t for t in tasks if t.type in CODE_TASK_TYPES]
    if criterion.category == CriterionCategory.IMAGE:
        return [t for t in tasks if t.type == TaskType.IMAGE]
    if criterion.category == CriterionCategory.RESEARCH:
        return [t for t in tasks if t.type == TaskType.RESEARCH]
    return list(tasks)


def check_coverage(
    tasks: Iterable[Task],
    criteria: Iterable[Criterion],
    secret_finding: AuditFinding,
) -> AuditFinding:
    """
    Mark each criterion met or unmet.

    Missing and placeholder artifacts fail on their own. The security
    criterion takes its status from the secret scan of the same pass; the
    rest use an evidence search over the artifacts of the tasks they concern,
    which is an approximate check rather than a semantic one.
    """
    finding = AuditFinding(check_name=CRITERION_COVERAGE)
    tasks = list(tasks)

    for task in tasks:
        if not _delivered(task):
            reason = task.error or "no artifact"
            finding.fail(f"{task.id}: missing artifact ({reason})", task.id)

    for criterion in criteria:
        if criterion.category == CriterionCategory.SECURITY:
            met = secret_finding.passed
            relevant = [t for t in tasks if t.id in secret_finding.artifact_ids]
        else:
            relevant = _relevant_tasks(criterion, tasks)
            met = _criterion_met(criterion, [t for t in relevant if _delivered(t)])

        criterion.status = CriterionStatus.MET if met else CriterionStatus.UNMET
        if not met:
            ids = [t.id for t in relevant]
            owner = ", ".join(ids) if ids else "register"
            finding.fail(f"{owner}: {criterion.id} unmet ({criterion.description})", *ids)
    return finding
