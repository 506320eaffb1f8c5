"""Annotation parsers.

A parser extracts annotation blocks from the text of one artifact. Each
block ties a list of display IDs to a named code unit at a known location.
The scanner picks a parser by file suffix, so supporting another kind of
artifact means adding a parser, not changing the scanner.

Parsers:
    PythonAnnotationParser: ``Requirements: AUTH-001, AUTH-002`` docstring
        lines and ``@pytest.mark.requirement("AUTH-001")`` decorators.
    CommentTagParser: ``@req AUTH-001, AUTH-002`` in a comment line,
        attached to the next declaration. Works for C-like, JVM, Go, Rust,
        Ruby and similar sources.

Example:
    >>> parser = CommentTagParser()
    >>> blocks = parser.parse("src/Login.java", "// @req AUTH-001\\npublic void login() {}")
    >>> blocks[0].unit, blocks[0].ids
    ('login', ['AUTH-001'])
"""

from __future__ import annotations

import ast
import re
from typing import Protocol, runtime_checkable

from req_core.schemas.traceability import AnnotationBlock

# Anything shaped like a display ID; validity is decided by the scanner.
ID_TOKEN = re.compile(r"\b[A-Za-z]+-\d+\b")


def split_ids(text: str) -> list[str]:
    """Extract ID-shaped tokens from a comma-separated list."""
    return ID_TOKEN.findall(text)


@runtime_checkable
class AnnotationParser(Protocol):
    """Capability: extract annotation blocks from an artifact."""

    suffixes: frozenset[str]

    def parse(self, path: str, text: str) -> list[AnnotationBlock]:
        """Parse one artifact.

        Args:
            path: Artifact path relative to the scan root.
            text: Artifact contents.

        Returns:
            Annotation blocks in source order.

        Raises:
            SyntaxError: If the artifact cannot be parsed at all.
        """
        ...


class PythonAnnotationParser:
    """Annotation parser for Python modules, based on the ``ast`` module.

    Units are classes, functions and methods, named by their dotted
    qualified name within the module (``LoginService.authenticate``).
    """

    suffixes: frozenset[str] = frozenset({".py"})

    _DOCSTRING_LINE = re.compile(r"^[ \t]*Requirements?\s*:\s*(?P<ids>\S.*)$", re.MULTILINE)
    _MARKER_NAMES = ("requirement", "mark.requirement", "pytest.mark.requirement")

    def parse(self, path: str, text: str) -> list[AnnotationBlock]:
        tree = ast.parse(text, filename=path)
        blocks: list[AnnotationBlock] = []
        self._visit(tree, [], path, blocks)
        return blocks

    def _visit(self, node: ast.AST, scope: list[str], path: str, blocks: list[AnnotationBlock]) -> None:
        for child in ast.iter_child_nodes(node):
            if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                qualified = [*scope, child.name]
                unit = ".".join(qualified)
                blocks.extend(self._decorator_blocks(child, unit, path))
                blocks.extend(self._docstring_blocks(child, unit, path))
                self._visit(child, qualified, path, blocks)
            else:
                self._visit(child, scope, path, blocks)

    def _decorator_blocks(
        self,
        node: ast.FunctionDef | ast.AsyncFunctionDef | ast.ClassDef,
        unit: str,
        path: str,
    ) -> list[AnnotationBlock]:
        blocks = []
        for decorator in node.decorator_list:
            if not isinstance(decorator, ast.Call):
                continue
            if _dotted_name(decorator.func) not in self._MARKER_NAMES:
                continue
            ids: list[str] = []
            for arg in decorator.args:
                if isinstance(arg, ast.Constant) and isinstance(arg.value, str):
                    ids.extend(split_ids(arg.value))
            if ids:
                blocks.append(
                    AnnotationBlock(path=path, line=decorator.lineno, unit=unit, unit_line=node.lineno, ids=ids)
                )
        return blocks

    def _docstring_blocks(
        self,
        node: ast.FunctionDef | ast.AsyncFunctionDef | ast.ClassDef,
        unit: str,
        path: str,
    ) -> list[AnnotationBlock]:
        if not node.body:
            return []
        first = node.body[0]
        if not (
            isinstance(first, ast.Expr)
            and isinstance(first.value, ast.Constant)
            and isinstance(first.value.value, str)
        ):
            return []
        docstring = first.value.value
        blocks = []
        for match in self._DOCSTRING_LINE.finditer(docstring):
            ids = split_ids(match.group("ids"))
            if not ids:
                continue
            line = first.value.lineno + docstring.count("\n", 0, match.start())
            blocks.append(AnnotationBlock(path=path, line=line, unit=unit, unit_line=node.lineno, ids=ids))
        return blocks


def _dotted_name(node: ast.AST) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        prefix = _dotted_name(node.value)
        return f"{prefix}.{node.attr}" if prefix else node.attr
    return ""


class CommentTagParser:
    """Language-agnostic parser for ``@req`` tags in line comments.

    A tag line such as ``// @req AUTH-001, AUTH-002`` (also ``#``, ``--``,
    ``/* ... */`` and javadoc ``*`` lines; ``@requirement`` and
    ``@requirements`` are accepted) applies to the next line that is not a
    comment, blank, or language annotation. That line names the unit.
    """

    suffixes: frozenset[str] = frozenset(
        {
            ".java", ".kt", ".scala", ".groovy",
            ".js", ".jsx", ".ts", ".tsx",
            ".go", ".rs", ".c", ".h", ".cc", ".cpp", ".hpp",
            ".cs", ".swift", ".rb", ".php",
        }
    )  # fmt: skip

    _TAG = re.compile(
        r"^\s*(?://+|#+|--|/\*+|\*+)\s*@req(?:uirements?)?\b\s*:?\s*(?P<ids>.*?)\s*(?:\*+/)?\s*$"
    )
    _COMMENT = re.compile(r"^\s*(?://|#|--|/\*|\*|\*/)")
    _ANNOTATION = re.compile(r"^\s*@\w")
    _TYPE_DECL = re.compile(
        r"\b(?:class|interface|enum|record|struct|trait|object|impl|module|type)\s+([A-Za-z_$][\w$]*)"
    )
    _FUNC_DECL = re.compile(r"\b(?:def|fn|func|function|sub)\s+(?:\([^)]*\)\s*)?([A-Za-z_$][\w$]*[?!]?)")
    _BINDING = re.compile(r"\b(?:const|let|var|val)\s+([A-Za-z_$][\w$]*)\s*[:=]")
    _CALL_LIKE = re.compile(r"([A-Za-z_$][\w$]*)\s*(?:<[^<>]*>)?\s*\(")
    _KEYWORDS = frozenset({"if", "for", "while", "switch", "catch", "return", "new", "sizeof"})

    def parse(self, path: str, text: str) -> list[AnnotationBlock]:
        blocks: list[AnnotationBlock] = []
        pending: list[tuple[int, list[str]]] = []
        for number, line in enumerate(text.splitlines(), start=1):
            tag = self._TAG.match(line)
            if tag is not None:
                ids = split_ids(tag.group("ids"))
                if ids:
                    pending.append((number, ids))
                continue
            if not pending:
                continue
            if not line.strip() or self._COMMENT.match(line) or self._ANNOTATION.match(line):
                continue
            unit = self.unit_name(line)
            blocks.extend(
                AnnotationBlock(path=path, line=tag_line, unit=unit, unit_line=number, ids=ids)
                for tag_line, ids in pending
            )
            pending = []
        # Tags at the end of a file annotate nothing; keep them visible.
        blocks.extend(
            AnnotationBlock(path=path, line=tag_line, unit="<end of file>", unit_line=tag_line, ids=ids)
            for tag_line, ids in pending
        )
        return blocks

    def unit_name(self, line: str) -> str:
        """Best-effort name of the unit declared on a source line."""
        for pattern in (self._TYPE_DECL, self._FUNC_DECL, self._BINDING):
            match = pattern.search(line)
            if match is not None:
                return match.group(1)
        for match in self._CALL_LIKE.finditer(line):
            if match.group(1) not in self._KEYWORDS:
                return match.group(1)
        stripped = line.strip()
        return stripped if len(stripped) <= 60 else stripped[:57] + "..."


def default_parsers() -> list[AnnotationParser]:
    """Parsers used when the caller supplies none."""
    return [PythonAnnotationParser(), CommentTagParser()]


__all__ = [
    "ID_TOKEN",
    "AnnotationParser",
    "CommentTagParser",
    "PythonAnnotationParser",
    "default_parsers",
    "split_ids",
]
