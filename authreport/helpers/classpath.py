"""Compiled-class byte access over directories and archives.

A ClassPath is an ordered list of entries, each either a directory of
``.class`` files or a ``.jar``/``.war``/``.zip`` archive. Archives laid out
the Spring Boot way (``BOOT-INF/classes/``) or as a web app
(``WEB-INF/classes/``) are searched under those prefixes too.
"""

from __future__ import annotations

from collections.abc import Iterator
import logging
from pathlib import Path
import threading
import zipfile

from authreport.formats.classfile import AnalysisUnavailable, ClassFile, parse_class

logger = logging.getLogger(__name__)

_ARCHIVE_SUFFIXES = frozenset({".jar", ".war", ".zip"})
_ARCHIVE_PREFIXES = ("", "BOOT-INF/classes/", "WEB-INF/classes/")


class TypeNotFound(AnalysisUnavailable):
    """Raised when a type is not present on the classpath."""


def type_to_resource(type_name: str) -> str:
    """``com.acme.Foo`` (or ``com/acme/Foo``) → ``com/acme/Foo.class``."""
    return type_name.replace(".", "/") + ".class"


def resource_to_type(resource: str) -> str:
    return resource[: -len(".class")].replace("/", ".")


class ClassPath:
    """Read-only access to compiled classes.

    Archive handles are opened lazily and shared; ``zipfile`` serializes
    reads internally, so one ClassPath can serve several worker threads.
    Parsed classes are cached by type name.
    """

    def __init__(self, entries: list[str | Path]):
        self.entries: list[Path] = [Path(e) for e in entries]
        self._archives: dict[Path, zipfile.ZipFile] = {}
        self._parsed: dict[str, ClassFile] = {}
        self._lock = threading.Lock()

    def __enter__(self) -> ClassPath:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            for zf in self._archives.values():
                zf.close()
            self._archives.clear()

    def _archive(self, path: Path) -> zipfile.ZipFile:
        with self._lock:
            zf = self._archives.get(path)
            if zf is None:
                zf = zipfile.ZipFile(path, "r")
                self._archives[path] = zf
            return zf

    def _is_archive(self, entry: Path) -> bool:
        return entry.is_file() and entry.suffix.lower() in _ARCHIVE_SUFFIXES

    def read(self, type_name: str) -> bytes:
        """Return the raw class bytes for *type_name*.

        Raises TypeNotFound if no entry holds the class.
        """
        resource = type_to_resource(type_name)
        for entry in self.entries:
            if entry.is_dir():
                candidate = entry / resource
                if candidate.is_file():
                    return candidate.read_bytes()
            elif self._is_archive(entry):
                zf = self._archive(entry)
                for prefix in _ARCHIVE_PREFIXES:
                    try:
                        return zf.read(prefix + resource)
                    except KeyError:
                        continue
        raise TypeNotFound(
            f"type {type_name} not found on classpath",
            {"type": type_name, "entries": [str(e) for e in self.entries]},
        )

    def load(self, type_name: str) -> ClassFile:
        """Read and parse *type_name*, caching the result.

        Raises TypeNotFound or AnalysisUnavailable.
        """
        key = type_name.replace("/", ".")
        with self._lock:
            cached = self._parsed.get(key)
        if cached is not None:
            return cached
        cls = parse_class(self.read(key))
        with self._lock:
            self._parsed.setdefault(key, cls)
        return cls

    def iter_type_names(self, package: str = "") -> Iterator[str]:
        """Yield the dotted names of all classes under *package* (recursive).

        Each type is yielded once, in entry order; an empty package means
        everything on the classpath.
        """
        prefix = package.replace(".", "/").strip("/")
        prefix = prefix + "/" if prefix else ""
        seen: set[str] = set()
        for entry in self.entries:
            for resource in self._iter_resources(entry):
                if not resource.startswith(prefix) or not resource.endswith(".class"):
                    continue
                if resource.endswith("module-info.class") or resource.endswith("package-info.class"):
                    continue
                type_name = resource_to_type(resource)
                if type_name not in seen:
                    seen.add(type_name)
                    yield type_name

    def _iter_resources(self, entry: Path) -> Iterator[str]:
        if entry.is_dir():
            for path in sorted(entry.rglob("*.class")):
                yield path.relative_to(entry).as_posix()
        elif self._is_archive(entry):
            for name in sorted(self._archive(entry).namelist()):
                for archive_prefix in _ARCHIVE_PREFIXES[1:]:
                    if name.startswith(archive_prefix):
                        name = name[len(archive_prefix):]
                        break
                yield name
        else:
            logger.warning("Skipping classpath entry %s: not a directory or archive", entry)
