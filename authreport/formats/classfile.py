"""Reader for the JVM class-file format.

Parses just enough of a ``.class`` file for static security analysis: the
constant pool, fields (with ``ConstantValue``), methods (with ``Code``),
``BootstrapMethods`` and ``RuntimeVisibleAnnotations``. Everything else is
skipped by length.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import struct
from typing import Any

MAGIC = 0xCAFEBABE

# Constant pool tags
CONSTANT_UTF8 = 1
CONSTANT_INTEGER = 3
CONSTANT_FLOAT = 4
CONSTANT_LONG = 5
CONSTANT_DOUBLE = 6
CONSTANT_CLASS = 7
CONSTANT_STRING = 8
CONSTANT_FIELDREF = 9
CONSTANT_METHODREF = 10
CONSTANT_INTERFACE_METHODREF = 11
CONSTANT_NAME_AND_TYPE = 12
CONSTANT_METHOD_HANDLE = 15
CONSTANT_METHOD_TYPE = 16
CONSTANT_DYNAMIC = 17
CONSTANT_INVOKE_DYNAMIC = 18
CONSTANT_MODULE = 19
CONSTANT_PACKAGE = 20

ACC_STATIC = 0x0008
ACC_SYNTHETIC = 0x1000


class AnalysisUnavailable(Exception):
    """Raised when compiled code cannot be analyzed.

    Covers unparsable class bytes and methods that have no code to walk.
    Callers treat it as "no features detected" rather than a fatal error.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


@dataclass(frozen=True)
class MemberRef:
    """A resolved field or method reference (owner in internal form)."""

    owner: str
    name: str
    descriptor: str


@dataclass(frozen=True)
class MethodHandle:
    kind: int
    ref: MemberRef


@dataclass(frozen=True)
class EnumConstant:
    """An enum-valued annotation element."""

    type_descriptor: str
    name: str


@dataclass
class Annotation:
    """A runtime-visible annotation; element values are plain Python values.

    Strings and numbers map to themselves, arrays to lists, enum constants
    to EnumConstant, class literals to their descriptor string and nested
    annotations to Annotation.
    """

    type_descriptor: str
    elements: dict[str, Any] = field(default_factory=lambda: dict[str, Any]())

    @property
    def type_name(self) -> str:
        """Fully-qualified dotted name of the annotation type."""
        return descriptor_to_type_name(self.type_descriptor)

    def first_string(self, *names: str) -> str | None:
        """Return the first string among the given elements.

        Array elements contribute their first string entry.
        """
        for name in names:
            value = self.elements.get(name)
            if isinstance(value, str):
                return value
            if isinstance(value, list):
                for item in value:  # pyright: ignore[reportUnknownVariableType]
                    if isinstance(item, str):
                        return item
        return None

    def strings(self, name: str) -> list[str]:
        value = self.elements.get(name)
        if isinstance(value, str):
            return [value]
        if isinstance(value, list):
            return [v for v in value if isinstance(v, str)]  # pyright: ignore[reportUnknownVariableType]
        return []


@dataclass
class FieldInfo:
    access: int
    name: str
    descriptor: str
    constant_value: Any = None


@dataclass
class MethodInfo:
    access: int
    name: str
    descriptor: str
    code: bytes | None = None
    annotations: list[Annotation] = field(default_factory=lambda: list[Annotation]())

    @property
    def is_synthetic(self) -> bool:
        return bool(self.access & ACC_SYNTHETIC)

    @property
    def return_descriptor(self) -> str:
        return self.descriptor[self.descriptor.index(")") + 1 :]

    def annotation(self, type_name: str) -> Annotation | None:
        return _find_annotation(self.annotations, type_name)


@dataclass(frozen=True)
class BootstrapMethod:
    handle: MethodHandle
    arguments: tuple[Any, ...]


@dataclass
class ClassFile:
    """A parsed class file.

    Constant pool lookups are exposed through the resolve_* helpers; raw
    entries are kept as (tag, payload) tuples indexed like the JVM pool.
    """

    name: str
    super_name: str | None
    pool: list[tuple[int, Any] | None]
    fields: list[FieldInfo] = field(default_factory=lambda: list[FieldInfo]())
    methods: list[MethodInfo] = field(default_factory=lambda: list[MethodInfo]())
    annotations: list[Annotation] = field(default_factory=lambda: list[Annotation]())
    bootstrap_methods: list[BootstrapMethod] = field(
        default_factory=lambda: list[BootstrapMethod]()
    )

    @property
    def type_name(self) -> str:
        """Dotted fully-qualified name, e.g. ``com.acme.SecurityConfig``."""
        return self.name.replace("/", ".")

    def find_methods(self, name: str) -> list[MethodInfo]:
        return [m for m in self.methods if m.name == name]

    def find_method(self, name: str, descriptor: str | None = None) -> MethodInfo | None:
        """First method named *name* (and matching *descriptor*, if given) with code.

        Falls back to a body-less declaration when no overload has code.
        """
        candidates = [
            m for m in self.methods
            if m.name == name and (descriptor is None or m.descriptor == descriptor)
        ]
        for m in candidates:
            if m.code is not None:
                return m
        return candidates[0] if candidates else None

    def annotation(self, type_name: str) -> Annotation | None:
        return _find_annotation(self.annotations, type_name)

    # -- constant pool ------------------------------------------------------

    def _entry(self, index: int, *tags: int) -> tuple[int, Any]:
        """The raw pool entry at *index*, required to carry one of *tags*."""
        if index <= 0 or index >= len(self.pool) or self.pool[index] is None:
            raise AnalysisUnavailable(
                f"invalid constant pool index {index} in {self.type_name}"
            )
        entry = self.pool[index]
        assert entry is not None
        if tags and entry[0] not in tags:
            raise AnalysisUnavailable(
                f"constant {index} in {self.type_name} has unexpected tag {entry[0]}"
            )
        return entry

    def utf8(self, index: int) -> str:
        _, value = self._entry(index, CONSTANT_UTF8)
        return value

    def class_name(self, index: int) -> str:
        _, name_index = self._entry(index, CONSTANT_CLASS)
        return self.utf8(name_index)

    def member_ref(self, index: int) -> MemberRef:
        _, (class_index, nat_index) = self._entry(
            index, CONSTANT_FIELDREF, CONSTANT_METHODREF, CONSTANT_INTERFACE_METHODREF
        )
        name, descriptor = self.name_and_type(nat_index)
        return MemberRef(self.class_name(class_index), name, descriptor)

    def name_and_type(self, index: int) -> tuple[str, str]:
        _, (name_index, desc_index) = self._entry(index, CONSTANT_NAME_AND_TYPE)
        return self.utf8(name_index), self.utf8(desc_index)

    def string_constant(self, index: int) -> str | None:
        """The string value of an ``ldc`` operand, or None for other constants."""
        tag, value = self._entry(index)
        if tag != CONSTANT_STRING:
            return None
        return self.utf8(value)

    def loadable(self, index: int) -> Any:
        """Resolve a loadable constant (bootstrap argument or annotation value)."""
        tag, value = self._entry(index)
        if tag == CONSTANT_STRING:
            return self.utf8(value)
        if tag == CONSTANT_CLASS:
            return self.utf8(value)
        if tag == CONSTANT_METHOD_HANDLE:
            kind, ref_index = value
            return MethodHandle(kind, self.member_ref(ref_index))
        if tag == CONSTANT_METHOD_TYPE:
            return self.utf8(value)
        if tag in (CONSTANT_UTF8, CONSTANT_INTEGER, CONSTANT_FLOAT, CONSTANT_LONG, CONSTANT_DOUBLE):
            return value
        return None

    def invoke_dynamic(self, index: int) -> tuple[BootstrapMethod | None, str, str]:
        _, (bsm_index, nat_index) = self._entry(
            index, CONSTANT_INVOKE_DYNAMIC, CONSTANT_DYNAMIC
        )
        name, descriptor = self.name_and_type(nat_index)
        bsm = (
            self.bootstrap_methods[bsm_index]
            if bsm_index < len(self.bootstrap_methods)
            else None
        )
        return bsm, name, descriptor


def _find_annotation(annotations: list[Annotation], type_name: str) -> Annotation | None:
    """Match by fully-qualified or simple type name."""
    for a in annotations:
        if a.type_name == type_name or a.type_name.rsplit(".", 1)[-1] == type_name:
            return a
    return None


def descriptor_to_type_name(descriptor: str) -> str:
    """``Lcom/acme/Foo;`` → ``com.acme.Foo``; primitives/arrays pass through."""
    if descriptor.startswith("L") and descriptor.endswith(";"):
        return descriptor[1:-1].replace("/", ".")
    return descriptor


def parse_descriptor(descriptor: str) -> tuple[list[str], str]:
    """Split a method descriptor into (parameter descriptors, return descriptor)."""
    if not descriptor.startswith("("):
        raise ValueError(f"not a method descriptor: {descriptor!r}")
    params: list[str] = []
    i = 1
    while descriptor[i] != ")":
        start = i
        while descriptor[i] == "[":
            i += 1
        if descriptor[i] == "L":
            i = descriptor.index(";", i)
        i += 1
        params.append(descriptor[start:i])
    return params, descriptor[i + 1 :]


# -- Parsing -----------------------------------------------------------------


class _Reader:
    def __init__(self, data: bytes, pos: int = 0):
        self.data = data
        self.pos = pos

    def u1(self) -> int:
        value = self.data[self.pos]
        self.pos += 1
        return value

    def u2(self) -> int:
        (value,) = struct.unpack_from(">H", self.data, self.pos)
        self.pos += 2
        return value

    def u4(self) -> int:
        (value,) = struct.unpack_from(">I", self.data, self.pos)
        self.pos += 4
        return value

    def take(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise IndexError("read past end of class data")
        chunk = self.data[self.pos : self.pos + n]
        self.pos += n
        return chunk

    def unpack(self, fmt: str) -> Any:
        (value,) = struct.unpack_from(fmt, self.data, self.pos)
        self.pos += struct.calcsize(fmt)
        return value


def decode_modified_utf8(raw: bytes) -> str:
    """Decode the JVM's modified UTF-8 (``C0 80`` nulls, surrogate pairs)."""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        text = raw.replace(b"\xc0\x80", b"\x00").decode("utf-8", "surrogatepass")
        return text.encode("utf-16", "surrogatepass").decode("utf-16")


def parse_class(data: bytes) -> ClassFile:
    """Parse class-file bytes.

    Raises AnalysisUnavailable for anything that is not a well-formed class.
    """
    try:
        return _parse_class(_Reader(data))
    except AnalysisUnavailable:
        raise
    except (
        IndexError, struct.error, UnicodeDecodeError, ValueError, KeyError, TypeError
    ) as e:
        raise AnalysisUnavailable(f"malformed class file: {e}") from e


def _parse_class(r: _Reader) -> ClassFile:
    if r.u4() != MAGIC:
        raise AnalysisUnavailable("not a class file (bad magic)")
    r.u2()  # minor
    r.u2()  # major
    pool = _parse_pool(r)
    r.u2()  # access flags
    this_index = r.u2()
    super_index = r.u2()
    for _ in range(r.u2()):
        r.u2()  # interfaces

    cls = ClassFile(name="", super_name=None, pool=pool)
    cls.name = cls.class_name(this_index)
    cls.super_name = cls.class_name(super_index) if super_index else None

    for _ in range(r.u2()):
        access, name_index, desc_index = r.u2(), r.u2(), r.u2()
        info = FieldInfo(access, cls.utf8(name_index), cls.utf8(desc_index))
        for attr_name, body in _iter_attributes(r, cls):
            if attr_name == "ConstantValue":
                info.constant_value = cls.loadable(struct.unpack_from(">H", body)[0])
        cls.fields.append(info)

    for _ in range(r.u2()):
        access, name_index, desc_index = r.u2(), r.u2(), r.u2()
        method = MethodInfo(access, cls.utf8(name_index), cls.utf8(desc_index))
        for attr_name, body in _iter_attributes(r, cls):
            if attr_name == "Code":
                method.code = _code_bytes(body)
            elif attr_name == "RuntimeVisibleAnnotations":
                method.annotations = _parse_annotations(_Reader(body), cls)
        cls.methods.append(method)

    for attr_name, body in _iter_attributes(r, cls):
        if attr_name == "BootstrapMethods":
            cls.bootstrap_methods = _parse_bootstrap_methods(_Reader(body), cls)
        elif attr_name == "RuntimeVisibleAnnotations":
            cls.annotations = _parse_annotations(_Reader(body), cls)
    return cls


def _parse_pool(r: _Reader) -> list[tuple[int, Any] | None]:
    count = r.u2()
    pool: list[tuple[int, Any] | None] = [None] * count
    i = 1
    while i < count:
        tag = r.u1()
        if tag == CONSTANT_UTF8:
            pool[i] = (tag, decode_modified_utf8(r.take(r.u2())))
        elif tag == CONSTANT_INTEGER:
            pool[i] = (tag, r.unpack(">i"))
        elif tag == CONSTANT_FLOAT:
            pool[i] = (tag, r.unpack(">f"))
        elif tag in (CONSTANT_LONG, CONSTANT_DOUBLE):
            pool[i] = (tag, r.unpack(">q" if tag == CONSTANT_LONG else ">d"))
            i += 1  # eight-byte constants take two slots
        elif tag in (CONSTANT_CLASS, CONSTANT_STRING, CONSTANT_METHOD_TYPE,
                     CONSTANT_MODULE, CONSTANT_PACKAGE):
            pool[i] = (tag, r.u2())
        elif tag in (CONSTANT_FIELDREF, CONSTANT_METHODREF, CONSTANT_INTERFACE_METHODREF,
                     CONSTANT_NAME_AND_TYPE, CONSTANT_DYNAMIC, CONSTANT_INVOKE_DYNAMIC):
            pool[i] = (tag, (r.u2(), r.u2()))
        elif tag == CONSTANT_METHOD_HANDLE:
            pool[i] = (tag, (r.u1(), r.u2()))
        else:
            raise AnalysisUnavailable(f"unknown constant pool tag {tag} at index {i}")
        i += 1
    return pool


def _iter_attributes(r: _Reader, cls: ClassFile) -> list[tuple[str, bytes]]:
    attributes: list[tuple[str, bytes]] = []
    for _ in range(r.u2()):
        name = cls.utf8(r.u2())
        attributes.append((name, r.take(r.u4())))
    return attributes


def _code_bytes(body: bytes) -> bytes:
    r = _Reader(body)
    r.u2()  # max_stack
    r.u2()  # max_locals
    return r.take(r.u4())


def _parse_bootstrap_methods(r: _Reader, cls: ClassFile) -> list[BootstrapMethod]:
    methods: list[BootstrapMethod] = []
    for _ in range(r.u2()):
        handle = cls.loadable(r.u2())
        args = tuple(cls.loadable(r.u2()) for _ in range(r.u2()))
        if not isinstance(handle, MethodHandle):
            raise AnalysisUnavailable("bootstrap method is not a MethodHandle")
        methods.append(BootstrapMethod(handle, args))
    return methods


def _parse_annotations(r: _Reader, cls: ClassFile) -> list[Annotation]:
    return [_parse_annotation(r, cls) for _ in range(r.u2())]


def _parse_annotation(r: _Reader, cls: ClassFile) -> Annotation:
    annotation = Annotation(cls.utf8(r.u2()))
    for _ in range(r.u2()):
        name = cls.utf8(r.u2())
        annotation.elements[name] = _parse_element_value(r, cls)
    return annotation


def _parse_element_value(r: _Reader, cls: ClassFile) -> Any:
    tag = chr(r.u1())
    if tag == "s":
        return cls.utf8(r.u2())
    if tag in "BCDFIJSZ":
        return cls.loadable(r.u2())
    if tag == "e":
        type_descriptor = cls.utf8(r.u2())
        return EnumConstant(type_descriptor, cls.utf8(r.u2()))
    if tag == "c":
        return cls.utf8(r.u2())
    if tag == "@":
        return _parse_annotation(r, cls)
    if tag == "[":
        return [_parse_element_value(r, cls) for _ in range(r.u2())]
    raise AnalysisUnavailable(f"unknown annotation element tag {tag!r}")
