"""Instruction-stream interpreter: one method's bytecode → ordered trace.

The trace records only what the classifiers need: method invocations,
string-constant loads and the polarity of boolean branches. Control flow
is not followed; the instruction stream is walked once, in order.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from authreport.formats import bytecode as op
from authreport.formats.bytecode import BytecodeError, iter_instructions
from authreport.formats.classfile import (
    AnalysisUnavailable,
    ClassFile,
    MethodHandle,
    MethodInfo,
    parse_descriptor,
)
from authreport.helpers.classpath import ClassPath
from authreport.helpers.naming import simple_name

logger = logging.getLogger(__name__)


# -- Trace events ------------------------------------------------------------


@dataclass(frozen=True)
class Invocation:
    """A call site. ``owner`` is dotted; ``descriptor`` is the JVM descriptor."""

    owner: str
    name: str
    descriptor: str

    @property
    def owner_simple_name(self) -> str:
        return simple_name(self.owner)

    @property
    def return_type(self) -> str | None:
        """Dotted return type for object-returning calls, else None."""
        try:
            _, ret = parse_descriptor(self.descriptor)
        except (ValueError, IndexError):
            return None
        if ret.startswith("L") and ret.endswith(";"):
            return ret[1:-1].replace("/", ".")
        return None

    @property
    def parameter_types(self) -> list[str]:
        try:
            params, _ = parse_descriptor(self.descriptor)
        except (ValueError, IndexError):
            return []
        return [
            p[1:-1].replace("/", ".") if p.startswith("L") else p for p in params
        ]


@dataclass(frozen=True)
class ConstantLoad:
    value: str


@dataclass(frozen=True)
class BranchPolarity:
    """A boolean test. ``negated`` means the fall-through runs when false."""

    negated: bool


TraceEvent = Invocation | ConstantLoad | BranchPolarity


# -- Interpretation ----------------------------------------------------------


def interpret(cls: ClassFile, method: MethodInfo) -> list[TraceEvent]:
    """Produce the trace of *method* declared in *cls*.

    Raises AnalysisUnavailable if the method has no code or its code
    cannot be decoded.
    """
    if method.code is None:
        raise AnalysisUnavailable(
            f"{cls.type_name}.{method.name} has no code",
            {"type": cls.type_name, "method": method.name},
        )
    events: list[TraceEvent] = []
    try:
        for insn in iter_instructions(method.code):
            _interpret_instruction(cls, insn, events)
    except BytecodeError as e:
        raise AnalysisUnavailable(
            f"cannot decode {cls.type_name}.{method.name}: {e}",
            {"type": cls.type_name, "method": method.name},
        ) from e
    return events


def _interpret_instruction(
    cls: ClassFile, insn: op.Instruction, events: list[TraceEvent]
) -> None:
    opcode = insn.opcode
    if opcode in op.INVOKE_OPCODES:
        ref = cls.member_ref(insn.u2())
        events.append(Invocation(ref.owner.replace("/", "."), ref.name, ref.descriptor))
    elif opcode == op.INVOKEDYNAMIC:
        bsm, _name, _descriptor = cls.invoke_dynamic(insn.u2())
        if bsm is None:
            return
        for arg in bsm.arguments:
            if isinstance(arg, MethodHandle):
                ref = arg.ref
                events.append(
                    Invocation(ref.owner.replace("/", "."), ref.name, ref.descriptor)
                )
    elif opcode in (op.LDC, op.LDC_W):
        index = insn.u1() if opcode == op.LDC else insn.u2()
        value = cls.string_constant(index)
        if value is not None:
            events.append(ConstantLoad(value))
    elif opcode == op.GETSTATIC:
        ref = cls.member_ref(insn.u2())
        # Enum constants: the field's type is its declaring type.
        if ref.descriptor == f"L{ref.owner};":
            events.append(ConstantLoad(f"{simple_name(ref.owner)}.{ref.name}"))
    elif opcode == op.IFEQ:
        events.append(BranchPolarity(negated=False))
    elif opcode == op.IFNE:
        events.append(BranchPolarity(negated=True))


def _is_lambda_body(cls: ClassFile, event: TraceEvent) -> bool:
    return (
        isinstance(event, Invocation)
        and event.owner == cls.type_name
        and event.name.startswith("lambda$")
    )


def interpret_with_lambdas(
    cls: ClassFile, method: MethodInfo, _visiting: frozenset[str] = frozenset()
) -> list[TraceEvent]:
    """Like interpret(), but splice in the bodies of the class's own lambdas.

    Configuration DSLs pass lambdas (``csrf -> csrf.disable()``); their
    bodies are compiled into synthetic ``lambda$...`` methods. Each such
    reference is replaced by the referenced body's trace, at most once per
    call chain.
    """
    key = method.name + method.descriptor
    visiting = _visiting | {key}
    events: list[TraceEvent] = []
    for event in interpret(cls, method):
        if not _is_lambda_body(cls, event):
            events.append(event)
            continue
        assert isinstance(event, Invocation)
        target = cls.find_method(event.name, event.descriptor)
        if (
            target is None
            or target.code is None
            or target.name + target.descriptor in visiting
        ):
            events.append(event)
            continue
        events.extend(interpret_with_lambdas(cls, target, visiting))
    return events


def trace_method(
    classpath: ClassPath,
    type_name: str,
    method_name: str,
    descriptor: str | None = None,
    inline_lambdas: bool = True,
) -> list[TraceEvent]:
    """Load *type_name* from the classpath and trace one of its methods.

    Raises TypeNotFound when the type is missing and AnalysisUnavailable
    when it cannot be parsed or the method has no code.
    """
    cls = classpath.load(type_name)
    method = cls.find_method(method_name, descriptor)
    if method is None:
        raise AnalysisUnavailable(
            f"method {method_name} not found in {cls.type_name}",
            {"type": cls.type_name, "method": method_name},
        )
    if inline_lambdas:
        events = interpret_with_lambdas(cls, method)
    else:
        events = interpret(cls, method)
    logger.debug(
        "Traced %s.%s: %d events", cls.type_name, method_name, len(events)
    )
    return events


def field_string_assignments(cls: ClassFile) -> dict[str, str]:
    """String constants stored into the class's own fields.

    Combines ``ConstantValue`` attributes with ``ldc "..."`` immediately
    followed by ``putfield``/``putstatic`` in constructors and static
    initializers.
    """
    values: dict[str, str] = {}
    for f in cls.fields:
        if isinstance(f.constant_value, str):
            values[f.name] = f.constant_value
    for method in cls.methods:
        if method.name not in ("<init>", "<clinit>") or method.code is None:
            continue
        last_string: str | None = None
        try:
            for insn in iter_instructions(method.code):
                if insn.opcode in (op.LDC, op.LDC_W):
                    index = insn.u1() if insn.opcode == op.LDC else insn.u2()
                    last_string = cls.string_constant(index)
                    continue
                if insn.opcode in (op.PUTFIELD, op.PUTSTATIC) and last_string is not None:
                    ref = cls.member_ref(insn.u2())
                    if ref.owner == cls.name and ref.descriptor == "Ljava/lang/String;":
                        values.setdefault(ref.name, last_string)
                if insn.opcode not in (0x2A, 0x59):  # aload_0, dup keep the pending constant
                    last_string = None
        except (BytecodeError, AnalysisUnavailable) as e:
            logger.debug("Skipping field scan of %s.%s: %s", cls.type_name, method.name, e)
    return values
