"""Repository-listing heuristics behind the metadata-based strategy.

Every heuristic here works on paths and diff text only; nothing reads file
content. That keeps the metadata strategy to a single collaborator call
(the repository listing) no matter how large the diff is.
"""

from __future__ import annotations

import posixpath
import re
from collections import defaultdict
from pathlib import PurePosixPath

from diffanchor_core.context.models import ContextMatch, MatchReason
from diffanchor_core.diff.models import Diff, LineKind

# Test/spec filename patterns covering the dominant conventions across ecosystems.
# {stem} = filename without extension, {suffix} = extension including the dot.
_TEST_PATTERNS = [
    "test_{stem}{suffix}",  # Python:      test_parser.py
    "{stem}_test{suffix}",  # Go / Rust:   parser_test.go
    "{stem}.test{suffix}",  # JS / TS:     parser.test.ts
    "{stem}.spec{suffix}",  # JS / TS:     parser.spec.js
    "{stem}_spec{suffix}",  # Ruby:        parser_spec.rb
    "{stem}Test{suffix}",  # Java:        ParserTest.java
    "{stem}Tests{suffix}",  # Java / C#:   ParserTests.cs
]

# Checked in order; the first keyword found in a path names its layer.
_LAYER_KEYWORDS = [
    "controller",
    "service",
    "repository",
    "dao",
    "model",
    "entity",
    "dto",
    "mapper",
    "adapter",
    "port",
]

_SIBLING_NAME_BOOST = 0.05

_PY_FROM_RE = re.compile(r"^\s*from\s+(\.*[\w.]*)\s+import\s+\(?\s*([\w\s,*]+)")
_IMPORT_RE = re.compile(r"^\s*import\s+(?:static\s+)?([\w.]+)")
_JS_FROM_RE = re.compile(r"""(?:from|import)\s+['"]([^'"]+)['"]""")
_REQUIRE_RE = re.compile(r"""require\(\s*['"]([^'"]+)['"]\s*\)""")
_TYPE_NAME_RE = re.compile(r"\b[A-Z][a-z0-9]+(?:[A-Z][a-z0-9]+)+\b")


def _module_key(path: str) -> str:
    return str(PurePosixPath(path).with_suffix(""))


def _normalized_stem(path: str) -> str:
    return PurePosixPath(path).stem.lower().replace("_", "").replace("-", "")


class _RepositoryIndex:
    """Lookup tables over a repository listing, built once per retrieval."""

    def __init__(self, repository_files: list[str]):
        self.files = list(repository_files)
        self.by_module: dict[str, list[str]] = defaultdict(list)
        self.by_stem: dict[str, list[str]] = defaultdict(list)
        for path in self.files:
            key = _module_key(path)
            self.by_module[key].append(path)
            if PurePosixPath(path).name == "__init__.py":
                self.by_module[str(PurePosixPath(path).parent)].append(path)
            self.by_stem[_normalized_stem(path)].append(path)

    def resolve_exact(self, key: str) -> list[str]:
        return list(self.by_module.get(key, ()))

    def resolve_suffix(self, key: str) -> list[str]:
        """Files whose extension-less path is ``key`` or ends with ``/key``."""
        exact = self.resolve_exact(key)
        if exact:
            return exact
        tail = "/" + key
        return [p for k, paths in self.by_module.items() if k.endswith(tail) for p in paths]

    def resolve_dotted(self, module: str) -> list[str]:
        """Resolve ``a.b.c``, shortening from the right for imported symbols."""
        parts = [p for p in module.split(".") if p]
        while parts:
            found = self.resolve_suffix("/".join(parts))
            if found:
                return found
            parts.pop()
        return []


def _relative_python_module(source_path: str, module: str) -> str:
    dots = len(module) - len(module.lstrip("."))
    base = PurePosixPath(source_path).parent
    for _ in range(dots - 1):
        base = base.parent
    rest = module[dots:].replace(".", "/")
    return posixpath.normpath(posixpath.join(str(base), rest)) if rest else str(base)


def _resolve_line(line: str, source_path: str, index: _RepositoryIndex) -> list[str]:
    match = _PY_FROM_RE.match(line)
    if match:
        module, names = match.group(1), [n.strip() for n in match.group(2).split(",") if n.strip()]
        if module.startswith("."):
            base = _relative_python_module(source_path, module)
            found = [
                p
                for name in names
                if name != "*"
                for p in index.resolve_exact(posixpath.normpath(posixpath.join(base, name)))
            ]
            return found or index.resolve_exact(base)
        found = [p for name in names for p in index.resolve_dotted(f"{module}.{name}") if name != "*"]
        return found or index.resolve_dotted(module)

    match = _IMPORT_RE.match(line)
    if match and not _JS_FROM_RE.search(line):
        return index.resolve_dotted(match.group(1))

    found: list[str] = []
    for spec in _JS_FROM_RE.findall(line) + _REQUIRE_RE.findall(line):
        if spec.startswith("."):
            key = posixpath.normpath(posixpath.join(str(PurePosixPath(source_path).parent), spec))
            found.extend(
                index.resolve_exact(key) or index.resolve_exact(_module_key(key)) or index.resolve_exact(key + "/index")
            )
        else:
            found.extend(index.resolve_suffix(spec.lstrip("@~/")))
    return found


def extract_references(diff: Diff, repository_files: list[str]) -> list[ContextMatch]:
    """Files named by import statements or type names on the added lines of ``diff``."""
    index = _RepositoryIndex(repository_files)
    changed = {f.effective_path for f in diff.files}
    matches: list[ContextMatch] = []

    for file in diff.files:
        source = file.effective_path
        if not source:
            continue
        for hunk in file.hunks:
            for line in hunk.lines:
                if line.kind is not LineKind.ADDED or not line.content.strip():
                    continue
                evidence = line.content.strip()
                for path in _resolve_line(line.content, source, index):
                    if path != source:
                        matches.append(
                            ContextMatch(
                                path,
                                MatchReason.DIRECT_IMPORT,
                                MatchReason.DIRECT_IMPORT.base_confidence,
                                evidence,
                            )
                        )
                for name in _TYPE_NAME_RE.findall(line.content):
                    for path in index.by_stem.get(name.lower(), ()):
                        if path != source and path not in changed:
                            matches.append(
                                ContextMatch(
                                    path,
                                    MatchReason.TYPE_REFERENCE,
                                    MatchReason.TYPE_REFERENCE.base_confidence,
                                    f"references {name}",
                                )
                            )
    return matches


def _names_overlap(a: str, b: str) -> bool:
    a, b = _normalized_stem(a), _normalized_stem(b)
    return bool(a and b) and (a.startswith(b) or b.startswith(a))


def find_directory_siblings(changed_paths: list[str], repository_files: list[str]) -> list[ContextMatch]:
    """Files in the same directory as a changed file.

    Siblings whose name extends the changed file's name (or the reverse, as
    with ``UserService`` and ``UserServiceImpl``) get a small confidence boost.
    """
    matches: list[ContextMatch] = []
    base = MatchReason.SIBLING.base_confidence
    for changed in changed_paths:
        directory = PurePosixPath(changed).parent
        for path in repository_files:
            if path == changed or PurePosixPath(path).parent != directory:
                continue
            confidence = min(1.0, base + _SIBLING_NAME_BOOST) if _names_overlap(changed, path) else base
            matches.append(ContextMatch(path, MatchReason.SIBLING, confidence, f"same directory as {changed}"))
    return matches


def _test_names(path: str) -> set[str]:
    p = PurePosixPath(path)
    return {pattern.format(stem=p.stem, suffix=p.suffix) for pattern in _TEST_PATTERNS}


def is_test_counterpart(a: str, b: str) -> bool:
    """True when one of the two paths is the test file of the other, by naming convention."""
    return PurePosixPath(b).name in _test_names(a) or PurePosixPath(a).name in _test_names(b)


def _layer_of(path: str) -> str:
    name = PurePosixPath(path).name.lower()
    for keyword in _LAYER_KEYWORDS:
        if keyword in name:
            return keyword
    lowered = path.lower()
    for keyword in _LAYER_KEYWORDS:
        if keyword in lowered:
            return keyword
    return ""


def _core_name(path: str) -> str:
    core = PurePosixPath(path).stem.lower()
    for keyword in _LAYER_KEYWORDS:
        core = core.replace(keyword, "")
    return core.strip("_-.")


def is_related_layer(a: str, b: str) -> bool:
    """``user_service.py`` and ``user_repository.py``: same core name, different layer."""
    layer_a, layer_b = _layer_of(a), _layer_of(b)
    if not layer_a or not layer_b or layer_a == layer_b:
        return False
    core_a = _core_name(a)
    return bool(core_a) and core_a == _core_name(b)


def find_path_patterns(changed_paths: list[str], repository_files: list[str]) -> list[ContextMatch]:
    """Test/implementation pairs and same-entity files from other architectural layers."""
    matches: list[ContextMatch] = []
    for changed in changed_paths:
        for path in repository_files:
            if path == changed:
                continue
            if is_test_counterpart(changed, path):
                reason = MatchReason.PATH_PATTERN
            elif is_related_layer(changed, path):
                reason = MatchReason.RELATED_LAYER
            else:
                continue
            matches.append(ContextMatch(path, reason, reason.base_confidence, f"path pattern match with {changed}"))
    return matches
