"""Traceability scanner.

Walks a corpus of source artifacts, extracts annotation blocks with the
parser registered for each file suffix, and resolves every referenced
display ID against one module of the store.

Scanning is best-effort and read-only:
- IDs that do not resolve become orphan tags, not failures.
- A unit with more than one annotation block gets a lint warning.
- Unreadable or unparseable artifacts get a warning and are skipped.

The result is a point-in-time snapshot; re-run the scan to observe later
store changes.

Example:
    >>> scanner = TraceabilityScanner(store)
    >>> result = scanner.scan(Path("."), module="default")
    >>> [ref.unit for ref in result.references("AUTH-001")]
    ['LoginService.authenticate', 'TestLogin.test_valid_credentials']
"""

from __future__ import annotations

import os
from collections import defaultdict
from collections.abc import Callable, Iterable, Iterator, Mapping
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath

import structlog

from req_core.config import DEFAULT_EXCLUDE_DIRS, DEFAULT_TEST_PATTERNS
from req_core.errors import ValidationError
from req_core.schemas.requirement import DisplayId
from req_core.schemas.traceability import (
    AnnotationBlock,
    AnnotationWarning,
    ArtifactKind,
    CodeReference,
    IntegrityIssue,
    IssueKind,
    ScanResult,
)
from req_core.traceability.parsers import AnnotationParser, default_parsers

logger = structlog.get_logger(__name__)

Classifier = Callable[[str], ArtifactKind]
"""Maps an artifact path (relative, POSIX separators) to its classification."""


class PatternClassifier:
    """Classify artifacts as tests when their path matches a glob pattern.

    Patterns containing ``/`` are matched against the whole relative path;
    other patterns against the file name only.

    Example:
        >>> classify = PatternClassifier(["tests/*", "test_*"])
        >>> classify("tests/unit/test_login.py")
        <ArtifactKind.TEST: 'test'>
        >>> classify("src/login.py")
        <ArtifactKind.IMPLEMENTATION: 'implementation'>
    """

    def __init__(self, test_patterns: Iterable[str] = DEFAULT_TEST_PATTERNS) -> None:
        self.test_patterns = list(test_patterns)

    def __call__(self, path: str) -> ArtifactKind:
        name = PurePosixPath(path).name
        for pattern in self.test_patterns:
            subject = path if "/" in pattern else name
            if fnmatch(subject, pattern):
                return ArtifactKind.TEST
        return ArtifactKind.IMPLEMENTATION


class TraceabilityScanner:
    """Scan source artifacts for requirement annotations.

    Args:
        store: Requirement store used read-only to resolve display IDs.
            Anything with ``resolve_ids(module) -> Mapping[str, object]``.
        parsers: Annotation parsers; the first parser claiming a suffix wins.
        classifier: Classifies an artifact as implementation or test.
        exclude_dirs: Directory names never descended into.
    """

    def __init__(
        self,
        store: object,
        parsers: Iterable[AnnotationParser] | None = None,
        classifier: Classifier | None = None,
        exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
    ) -> None:
        self._store = store
        self._parsers: dict[str, AnnotationParser] = {}
        for parser in parsers if parsers is not None else default_parsers():
            for suffix in parser.suffixes:
                self._parsers.setdefault(suffix.lower(), parser)
        self._classifier = classifier or PatternClassifier()
        self._exclude_dirs = frozenset(exclude_dirs)

    @property
    def suffixes(self) -> frozenset[str]:
        return frozenset(self._parsers)

    def iter_artifacts(self, root: Path) -> Iterator[Path]:
        """Yield parseable files below ``root`` in a stable order."""
        for directory, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in self._exclude_dirs)
            for filename in sorted(filenames):
                if Path(filename).suffix.lower() in self._parsers:
                    yield Path(directory) / filename

    def scan(self, root: Path, module: str) -> ScanResult:
        """Scan every parseable artifact below a directory.

        Raises:
            ValidationError: If ``root`` is not a directory.
            NotFoundError: If the module does not exist.
        """
        if not root.is_dir():
            raise ValidationError(f"Scan root is not a directory: {root}")

        def read_all() -> Iterator[tuple[str, str | None, str | None]]:
            for path in self.iter_artifacts(root):
                relative = path.relative_to(root).as_posix()
                try:
                    yield relative, path.read_text(encoding="utf-8"), None
                except (OSError, UnicodeDecodeError) as e:
                    yield relative, None, f"Could not read artifact: {e}"

        return self._scan(read_all(), module, str(root))

    def scan_sources(self, sources: Mapping[str, str], module: str, root: str = "<memory>") -> ScanResult:
        """Scan in-memory artifacts given as ``{relative path: text}``."""
        return self._scan(((p, t, None) for p, t in sorted(sources.items())), module, root)

    def _scan(
        self,
        artifacts: Iterable[tuple[str, str | None, str | None]],
        module: str,
        root: str,
    ) -> ScanResult:
        known = self._store.resolve_ids(module)  # type: ignore[attr-defined]
        mappings: dict[str, list[CodeReference]] = defaultdict(list)
        orphans: list[IntegrityIssue] = []
        warnings: list[AnnotationWarning] = []
        files = 0

        for relative, text, read_error in artifacts:
            if read_error is not None or text is None:
                logger.warning("artifact_unreadable", path=relative, error=read_error)
                warnings.append(AnnotationWarning(location=relative, message=read_error or "Unreadable"))
                continue
            parser = self._parsers.get(PurePosixPath(relative).suffix.lower())
            if parser is None:
                continue
            files += 1
            try:
                blocks = parser.parse(relative, text)
            except (SyntaxError, ValueError) as e:
                logger.warning("artifact_unparseable", path=relative, error=str(e))
                warnings.append(AnnotationWarning(location=relative, message=f"Could not parse artifact: {e}"))
                continue
            logger.debug("artifact_scanned", path=relative, blocks=len(blocks))

            kind = self._classifier(relative)
            warnings.extend(_multiple_block_warnings(blocks))
            for block in blocks:
                self._resolve_block(block, kind, known, mappings, orphans)

        result = ScanResult(
            module=module,
            root=root,
            files_scanned=files,
            mappings=dict(mappings),
            orphan_tags=orphans,
            warnings=warnings,
        )
        logger.info(
            "scan_completed",
            module=module,
            root=root,
            files=files,
            mapped=len(result.mappings),
            orphan_tags=len(orphans),
            warnings=len(warnings),
        )
        return result

    @staticmethod
    def _resolve_block(
        block: AnnotationBlock,
        kind: ArtifactKind,
        known: Mapping[str, object],
        mappings: dict[str, list[CodeReference]],
        orphans: list[IntegrityIssue],
    ) -> None:
        seen: set[str] = set()
        for token in block.ids:
            try:
                display_id = str(DisplayId.parse(token))
            except ValidationError:
                display_id = token
            if display_id in seen:
                continue
            seen.add(display_id)
            if display_id in known:
                mappings[display_id].append(CodeReference(location=block.location, unit=block.unit, kind=kind))
            else:
                orphans.append(
                    IntegrityIssue(
                        kind=IssueKind.ORPHAN_TAG,
                        reference=display_id,
                        location=block.location,
                        unit=block.unit,
                        message=f"{display_id} does not resolve to a requirement in this module",
                    )
                )


def _multiple_block_warnings(blocks: list[AnnotationBlock]) -> list[AnnotationWarning]:
    by_unit: dict[tuple[str, int], list[AnnotationBlock]] = defaultdict(list)
    for block in blocks:
        by_unit[(block.unit, block.unit_line)].append(block)
    warnings = []
    for (unit, unit_line), unit_blocks in by_unit.items():
        if len(unit_blocks) > 1:
            lines = ", ".join(str(b.line) for b in unit_blocks)
            warnings.append(
                AnnotationWarning(
                    location=f"{unit_blocks[0].path}:{unit_line}",
                    unit=unit,
                    message=(
                        f"{unit} carries {len(unit_blocks)} annotation blocks (lines {lines}); "
                        "use a single block with a comma-separated ID list"
                    ),
                )
            )
    return warnings


__all__ = [
    "Classifier",
    "PatternClassifier",
    "TraceabilityScanner",
]
