"""Secret detection and redaction for file content shown to a model backend.

Every file fetched from a repository passes through SecretScanner before any
of its text is placed in a prompt. Detection is pattern-based first: a fixed,
ordered list of named rules whose matches are replaced by a typed marker such
as ``[REDACTED_GOOGLE_API_KEY]``. A Shannon-entropy classifier flags quoted
base64-like strings as a secondary, lower-confidence signal.

Warnings and log lines name the rule and the line number; the context they
carry is taken from the already-redacted text, so secret values never leave
this module.
"""

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import PurePosixPath

logger = logging.getLogger(__name__)

TOO_LARGE_MARKER = "[FILE TOO LARGE - SKIPPED FOR SECURITY]"
ENV_VALUE_MARKER = "[REDACTED]"
HIGH_ENTROPY_RULE = "High Entropy String"
ENV_RULE = "Environment Variable"
MAX_CONTEXT_CHARS = 80

VALID_ENTROPY_MODES = frozenset({"off", "warn", "redact"})

_MARKER_RE = re.compile(r"\[REDACTED[A-Z_]*\]")
_ENV_LINE_RE = re.compile(
    r"^([ \t]*(?:export[ \t]+)?)([A-Za-z_][A-Za-z0-9_]*)[ \t]*=[ \t]*([^\r\n]+?)[ \t]*(?=\r?$)",
    re.MULTILINE,
)
_ENTROPY_CANDIDATE_RE = re.compile(r"[\"']([A-Za-z0-9+/]{32,}={0,2})[\"']")

# Substrings of paths that conventionally hold credentials
SENSITIVE_PATH_PATTERNS = (
    ".env",
    ".env.local",
    ".env.production",
    "credentials",
    "secrets",
    "config.json",
    "config.yaml",
    "config.yml",
    ".aws/credentials",
    ".ssh/id_rsa",
    "key.pem",
    "certificate.pem",
)


@dataclass(frozen=True)
class SecretPattern:
    """Named detection rule.

    Attributes:
        name: Rule name, also encoded in the redaction marker
        pattern: Compiled regular expression
        description: What the rule detects
        secret_group: Capture group holding the secret (0 = whole match)
    """

    name: str
    pattern: re.Pattern[str]
    description: str
    secret_group: int = 0

    @property
    def marker(self) -> str:
        """Return the redaction marker for this rule."""
        return redaction_marker(self.name)


SECRET_PATTERNS: tuple[SecretPattern, ...] = (
    SecretPattern(
        "Generic API Key",
        re.compile(
            r"(?:api[_-]?key|apikey|api[_-]?secret)\s*[=:]\s*[\"']?([a-zA-Z0-9_\-]{20,})[\"']?",
            re.IGNORECASE,
        ),
        "Generic API key assignment",
        secret_group=1,
    ),
    SecretPattern(
        "AWS Access Key",
        re.compile(r"AKIA[0-9A-Z]{16}"),
        "AWS Access Key ID",
    ),
    SecretPattern(
        "AWS Secret Key",
        re.compile(
            r"aws[_-]?secret[_-]?access[_-]?key\s*[=:]\s*[\"']?([a-zA-Z0-9/+=]{40})[\"']?",
            re.IGNORECASE,
        ),
        "AWS Secret Access Key",
        secret_group=1,
    ),
    SecretPattern(
        "Google API Key",
        re.compile(r"AIza[0-9A-Za-z\-_]{35}"),
        "Google API Key",
    ),
    SecretPattern(
        "GitHub Token",
        re.compile(r"gh[pousr]_[A-Za-z0-9_]{36,}"),
        "GitHub personal access or app token",
    ),
    SecretPattern(
        "Generic Secret",
        re.compile(
            r"(?:secret|password|passwd|pwd|token)\s*[=:]\s*[\"']([^\"'\s]{8,})[\"']",
            re.IGNORECASE,
        ),
        "Generic secret or password assignment",
        secret_group=1,
    ),
    SecretPattern(
        "Private Key",
        # Header through footer; an unterminated block runs to end of text
        re.compile(
            r"-----BEGIN (?:[A-Z0-9]+ )*PRIVATE KEY-----.*?"
            r"(?:-----END (?:[A-Z0-9]+ )*PRIVATE KEY-----|\Z)",
            re.DOTALL,
        ),
        "Private key block",
    ),
    SecretPattern(
        "OAuth Token",
        re.compile(r"(?:oauth|bearer)\s+([a-zA-Z0-9\-._~+/]{8,}=*)", re.IGNORECASE),
        "OAuth bearer token",
        secret_group=1,
    ),
    SecretPattern(
        "Stripe Key",
        re.compile(r"(?:sk|pk|rk)_(?:test|live)_[0-9a-zA-Z]{24,}"),
        "Stripe API key",
    ),
    SecretPattern(
        "OpenAI API Key",
        re.compile(r"sk-[a-zA-Z0-9]{48}"),
        "OpenAI API key",
    ),
    SecretPattern(
        "Anthropic API Key",
        re.compile(r"sk-ant-[a-zA-Z0-9\-_]{95,}"),
        "Anthropic API key",
    ),
    SecretPattern(
        "Database Connection String",
        re.compile(
            r"(?:mongodb(?:\+srv)?|mysql|postgresql|postgres|redis|amqp)://[^\s\"']+",
            re.IGNORECASE,
        ),
        "Database connection string",
    ),
    SecretPattern(
        "JWT Token",
        re.compile(r"eyJ[a-zA-Z0-9_-]*\.eyJ[a-zA-Z0-9_-]*\.[a-zA-Z0-9_-]*"),
        "JSON Web Token",
    ),
)


def redaction_marker(rule_name: str) -> str:
    """Build the redaction marker for a rule name.

    >>> redaction_marker("Google API Key")
    '[REDACTED_GOOGLE_API_KEY]'
    """
    return "[REDACTED_" + re.sub(r"\s+", "_", rule_name.strip().upper()) + "]"


def is_redaction_marker(text: str) -> bool:
    """Return True if text is exactly a redaction marker."""
    return _MARKER_RE.fullmatch(text) is not None


@dataclass
class ScannerConfig:
    """Tunable scanner settings.

    Attributes:
        entropy_mode: off, warn (report only) or redact
        entropy_threshold: Minimum Shannon entropy in bits per character
        entropy_min_length: Minimum candidate length
        entropy_max_length: Maximum candidate length
        max_scan_chars: Inputs longer than this are withheld unscanned
    """

    entropy_mode: str = "warn"
    entropy_threshold: float = 4.5
    entropy_min_length: int = 20
    entropy_max_length: int = 200
    max_scan_chars: int = 500_000

    def __post_init__(self) -> None:
        """Validate scanner configuration."""
        self.entropy_mode = str(self.entropy_mode).lower().strip()
        if self.entropy_mode not in VALID_ENTROPY_MODES:
            raise ValueError(
                f"Invalid entropy_mode: {self.entropy_mode}. Valid: {sorted(VALID_ENTROPY_MODES)}"
            )
        if self.entropy_threshold <= 0:
            raise ValueError(f"entropy_threshold must be positive (got {self.entropy_threshold})")
        if self.entropy_min_length <= 0 or self.entropy_max_length < self.entropy_min_length:
            raise ValueError(
                "entropy length bounds must satisfy 0 < min_length <= max_length "
                f"(got {self.entropy_min_length}..{self.entropy_max_length})"
            )
        if self.max_scan_chars <= 0:
            raise ValueError(f"max_scan_chars must be positive (got {self.max_scan_chars})")


@dataclass
class SecretDetection:
    """Single detection.

    Attributes:
        rule: Name of the rule that matched
        line: 1-based line number
        context: Up to 80 characters of the redacted line
    """

    rule: str
    line: int
    context: str = ""

    def describe(self) -> str:
        """Render as a warning string."""
        if self.context:
            return f"{self.rule} on line {self.line}: {self.context}"
        return f"{self.rule} on line {self.line}"


@dataclass
class DetectionResult:
    """Outcome of scanning one text.

    Attributes:
        redacted_text: Text safe to show a model
        detections: Redacted findings
        advisories: Entropy findings that were reported but not redacted
        skipped: Whether the input was withheld for exceeding the size limit
        skip_reason: Warning explaining the skip
    """

    redacted_text: str
    detections: list[SecretDetection] = field(default_factory=list)
    advisories: list[SecretDetection] = field(default_factory=list)
    skipped: bool = False
    skip_reason: str | None = None

    @property
    def found(self) -> bool:
        """Return True if anything was redacted."""
        return len(self.detections) > 0

    @property
    def warnings(self) -> list[str]:
        """One warning per redacted match, plus the skip notice if any."""
        warnings = [d.describe() for d in self.detections]
        if self.skip_reason:
            warnings.append(self.skip_reason)
        return warnings


@dataclass
class SecurityReport:
    """Aggregate result of scanning several files."""

    total_scanned: int = 0
    files_with_secrets: int = 0
    total_secrets_found: int = 0
    details: dict[str, DetectionResult] = field(default_factory=dict)


def calculate_entropy(value: str) -> float:
    """Calculate the Shannon entropy of a string in bits per character."""
    if not value:
        return 0.0
    length = len(value)
    entropy = 0.0
    for count in Counter(value).values():
        probability = count / length
        entropy -= probability * math.log2(probability)
    return entropy


def is_high_entropy_string(
    value: str,
    threshold: float = 4.5,
    min_length: int = 20,
    max_length: int = 200,
) -> bool:
    """Check whether a string looks random enough to be a credential."""
    if len(value) < min_length or len(value) > max_length:
        return False
    return calculate_entropy(value) > threshold


def is_env_file(file_path: str | None) -> bool:
    """Return True for .env, .env.* and *.env paths."""
    if not file_path:
        return False
    name = PurePosixPath(file_path.replace("\\", "/")).name.lower()
    return name == ".env" or name.startswith(".env.") or name.endswith(".env")


def is_sensitive_file(file_path: str) -> bool:
    """Check if a path is conventionally used for credentials."""
    lower_path = file_path.lower()
    return any(pattern in lower_path for pattern in SENSITIVE_PATH_PATTERNS)


class SecretScanner:
    """Detects and redacts secrets in text.

    The scanner is stateless between calls and safe to share across threads.
    """

    def __init__(
        self,
        config: ScannerConfig | None = None,
        patterns: tuple[SecretPattern, ...] = SECRET_PATTERNS,
    ) -> None:
        """Initialize the scanner.

        Args:
            config: Scanner settings (defaults used if None)
            patterns: Ordered detection rules
        """
        self.config = config or ScannerConfig()
        self.patterns = patterns

    def scan(self, text: str, file_path: str | None = None) -> DetectionResult:
        """Scan text and return a redacted copy with its findings.

        Args:
            text: Raw file content
            file_path: Optional path, used to select path-specific rules

        Returns:
            DetectionResult
        """
        if len(text) > self.config.max_scan_chars:
            reason = (
                f"File too large to scan ({len(text)} characters, limit "
                f"{self.config.max_scan_chars}); content withheld"
            )
            logger.warning("Skipped secret scan for %s: %s", file_path or "content", reason)
            return DetectionResult(
                redacted_text=TOO_LARGE_MARKER,
                skipped=True,
                skip_reason=reason,
            )

        hits: list[tuple[str, int]] = []
        found: dict[str, tuple[str, str]] = {}
        redacted = text

        for secret_pattern in self.patterns:
            redacted = self._apply_pattern(redacted, secret_pattern, hits, found)
        redacted = _redact_repeats(redacted, found, hits)

        advisories: list[tuple[str, int]] = []
        if self.config.entropy_mode != "off":
            found.clear()
            redacted = self._apply_entropy(redacted, hits, advisories, found)
            redacted = _redact_repeats(redacted, found, hits)

        if is_env_file(file_path):
            redacted = self._apply_env_rule(redacted, hits)

        lines = redacted.split("\n")
        detections = [
            SecretDetection(rule=rule, line=line, context=_context(lines, line))
            for rule, line in sorted(hits, key=lambda hit: hit[1])
        ]
        # Advisory context never includes the unredacted candidate
        advisory_detections = [
            SecretDetection(rule=rule, line=line) for rule, line in advisories
        ]

        if detections:
            logger.warning(
                "Redacted %d secret(s) in %s: %s",
                len(detections),
                file_path or "content",
                ", ".join(f"{d.rule}@{d.line}" for d in detections),
            )
        if advisory_detections:
            logger.debug(
                "High-entropy strings in %s: %s",
                file_path or "content",
                ", ".join(f"line {d.line}" for d in advisory_detections),
            )

        return DetectionResult(
            redacted_text=redacted,
            detections=detections,
            advisories=advisory_detections,
        )

    def _apply_pattern(
        self,
        text: str,
        secret_pattern: SecretPattern,
        hits: list[tuple[str, int]],
        found: dict[str, tuple[str, str]],
    ) -> str:
        """Replace every match of one rule, recording (rule, line) hits.

        Each secret value is also recorded in ``found`` so that copies of it
        outside a rule match can be redacted afterwards.
        """

        def replace(match: re.Match[str]) -> str:
            secret = match.group(secret_pattern.secret_group)
            if not secret or is_redaction_marker(secret):
                return match.group(0)

            hits.append(
                (secret_pattern.name, _line_of(text, match.start(secret_pattern.secret_group)))
            )
            found.setdefault(secret, (secret_pattern.name, secret_pattern.marker))
            return _replace_secret(match, secret_pattern)

        return secret_pattern.pattern.sub(replace, text)

    def _apply_entropy(
        self,
        text: str,
        hits: list[tuple[str, int]],
        advisories: list[tuple[str, int]],
        found: dict[str, tuple[str, str]],
    ) -> str:
        """Flag or redact quoted high-entropy strings."""
        marker = redaction_marker(HIGH_ENTROPY_RULE)
        redact = self.config.entropy_mode == "redact"

        def replace(match: re.Match[str]) -> str:
            candidate = match.group(1)
            if not is_high_entropy_string(
                candidate,
                threshold=self.config.entropy_threshold,
                min_length=self.config.entropy_min_length,
                max_length=self.config.entropy_max_length,
            ):
                return match.group(0)

            line = _line_of(text, match.start())
            if not redact:
                advisories.append((HIGH_ENTROPY_RULE, line))
                return match.group(0)

            hits.append((HIGH_ENTROPY_RULE, line))
            found.setdefault(candidate, (HIGH_ENTROPY_RULE, marker))
            quote = match.group(0)[0]
            return f"{quote}{marker}{quote}"

        return _ENTROPY_CANDIDATE_RE.sub(replace, text)

    def _apply_env_rule(self, text: str, hits: list[tuple[str, int]]) -> str:
        """Blank every KEY=value line of an environment file."""

        def replace(match: re.Match[str]) -> str:
            prefix, key, value = match.group(1), match.group(2), match.group(3)
            # Values a named rule already redacted keep their typed marker
            if is_redaction_marker(value.strip("\"'")):
                return match.group(0)
            hits.append((ENV_RULE, _line_of(text, match.start())))
            return f"{prefix}{key}={ENV_VALUE_MARKER}"

        return _ENV_LINE_RE.sub(replace, text)


def _replace_secret(match: re.Match[str], secret_pattern: SecretPattern) -> str:
    """Return the match text with its secret group replaced by the rule marker."""
    # Line breaks inside the secret are kept so later line numbers stay valid
    marker = secret_pattern.marker + "\n" * match.group(secret_pattern.secret_group).count("\n")
    if secret_pattern.secret_group == 0:
        return marker
    start = match.start(secret_pattern.secret_group) - match.start()
    end = match.end(secret_pattern.secret_group) - match.start()
    whole = match.group(0)
    return whole[:start] + marker + whole[end:]


def _redact_repeats(
    text: str,
    found: dict[str, tuple[str, str]],
    hits: list[tuple[str, int]],
) -> str:
    """Replace remaining copies of already-detected secret values.

    Longer values are replaced first so a value that contains another is
    not split by the shorter one's marker.
    """
    for value in sorted(found, key=len, reverse=True):
        if value not in text:
            continue
        rule, marker = found[value]

        def replace(
            match: re.Match[str],
            rule: str = rule,
            replacement: str = marker + "\n" * value.count("\n"),
        ) -> str:
            hits.append((rule, _line_of(match.string, match.start())))
            return replacement

        text = re.sub(re.escape(value), replace, text)
    return text


def mask_secrets(text: str, patterns: tuple[SecretPattern, ...] = SECRET_PATTERNS) -> str:
    """Replace named-pattern matches with markers, without recording or logging.

    Used on log records, where only the masked text matters.
    """

    def replace(match: re.Match[str], secret_pattern: SecretPattern) -> str:
        secret = match.group(secret_pattern.secret_group)
        if not secret or is_redaction_marker(secret):
            return match.group(0)
        return _replace_secret(match, secret_pattern)

    for secret_pattern in patterns:
        text = secret_pattern.pattern.sub(lambda m, p=secret_pattern: replace(m, p), text)
    return text


def _line_of(text: str, offset: int) -> int:
    """Return the 1-based line number of an offset."""
    return text.count("\n", 0, offset) + 1


def _context(lines: list[str], line: int) -> str:
    """Return the truncated, stripped content of a 1-based line."""
    if 0 < line <= len(lines):
        return lines[line - 1].strip()[:MAX_CONTEXT_CHARS]
    return ""


_default_scanner = SecretScanner()


def redact_secrets(content: str, file_path: str | None = None) -> DetectionResult:
    """Scan content with the default scanner configuration."""
    return _default_scanner.scan(content, file_path)


def sanitize_for_ai(content: str, file_path: str | None = None) -> tuple[str, list[str]]:
    """Redact content before it is placed in a prompt.

    Returns:
        Tuple of (redacted content, warnings)
    """
    result = redact_secrets(content, file_path)
    return result.redacted_text, result.warnings


def scan_files(files: dict[str, str], scanner: SecretScanner | None = None) -> SecurityReport:
    """Scan several files and aggregate the findings.

    Args:
        files: Mapping of path to content
        scanner: Scanner to use (default configuration if None)

    Returns:
        SecurityReport keyed by path
    """
    scanner = scanner or _default_scanner
    report = SecurityReport(total_scanned=len(files))

    for file_path, content in files.items():
        result = scanner.scan(content, file_path)
        report.details[file_path] = result
        if result.found:
            report.files_with_secrets += 1
            report.total_secrets_found += len(result.detections)

    return report
