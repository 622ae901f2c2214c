"""Filter applicability analysis: which request paths a filter guards.

A custom filter's per-request method (``doFilterInternal`` for Spring's
OncePerRequestFilter) is traced, and comparisons of the request path
against string literals are read off the trace with a small state
machine. Results are memoized per filter type for one scan.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
import logging
import threading

from authreport.commands.scan.interpreter import (
    BranchPolarity,
    ConstantLoad,
    Invocation,
    TraceEvent,
    field_string_assignments,
    trace_method,
)
from authreport.formats.classfile import AnalysisUnavailable
from authreport.helpers.classpath import ClassPath
from authreport.helpers.naming import simple_name
from authreport.helpers.settings import AnalysisSettings

logger = logging.getLogger(__name__)

WILDCARD = "*"

PATH_READ_METHODS = frozenset(
    {"getRequestURI", "getServletPath", "getPathInfo", "getRequestURL"}
)
EQUALITY_METHODS = frozenset({"equals", "equalsIgnoreCase", "startsWith"})
HEADER_READ_METHODS = frozenset({"getHeader"})
_HEADER_FIELD_HINTS = ("header", "key", "token")


@dataclass(frozen=True)
class FilterApplicability:
    """The path patterns a filter type is inferred to protect."""

    filter_type: str
    patterns: frozenset[str] = frozenset()
    header_name: str | None = None
    delegates: tuple[str, ...] = ()

    @property
    def filter_name(self) -> str:
        return simple_name(self.filter_type)

    @property
    def is_wildcard(self) -> bool:
        return WILDCARD in self.patterns


# -- Path matching state machine ---------------------------------------------


class MatchState(Enum):
    IDLE = "idle"
    PATH_READ = "path_read"
    CONSTANT = "constant"
    AWAIT_BRANCH = "await_branch"


@dataclass
class PathMatcher:
    """Reads ``request.getRequestURI().equals("/x")`` style checks off a trace.

    IDLE → PATH_READ on a path read; PATH_READ → CONSTANT on a string
    constant; CONSTANT → AWAIT_BRANCH on an equality call. The branch
    that tests the comparison decides the polarity: a negated test means
    the filter acts on every path except the literal, so the wildcard is
    emitted instead of the literal. Any other event, or the end of the
    trace, settles the comparison as non-negated. A constant loaded before
    the path read (``"/x".equals(request.getRequestURI())``) is kept; an
    unrelated call consumes it.
    """

    state: MatchState = MatchState.IDLE
    last_constant: str | None = None
    pending_negation: bool = False
    patterns: list[str] = field(default_factory=lambda: list[str]())

    def feed(self, event: TraceEvent) -> None:
        if self.state is MatchState.AWAIT_BRANCH:
            if isinstance(event, BranchPolarity):
                self._emit(self.pending_negation or event.negated)
                return
            self._emit(self.pending_negation)

        if isinstance(event, ConstantLoad):
            self.last_constant = event.value
            if self.state is MatchState.PATH_READ:
                self.state = MatchState.CONSTANT
        elif isinstance(event, BranchPolarity):
            if self.state is not MatchState.IDLE:
                self.pending_negation = self.pending_negation or event.negated
        elif event.name in PATH_READ_METHODS:
            if self.state is MatchState.IDLE:
                self.pending_negation = False
                self.state = (
                    MatchState.CONSTANT if self.last_constant is not None else MatchState.PATH_READ
                )
        elif event.name in EQUALITY_METHODS:
            if self.state is MatchState.CONSTANT:
                self.state = MatchState.AWAIT_BRANCH
            else:
                self.last_constant = None
        else:
            self.last_constant = None
            if self.state is MatchState.CONSTANT:
                self.state = MatchState.PATH_READ

    def finish(self) -> list[str]:
        if self.state is MatchState.AWAIT_BRANCH:
            self._emit(self.pending_negation)
        return self.patterns

    def _emit(self, negated: bool) -> None:
        assert self.last_constant is not None
        pattern = WILDCARD if negated else self.last_constant
        if pattern not in self.patterns:
            self.patterns.append(pattern)
        self.state = MatchState.IDLE
        self.last_constant = None
        self.pending_negation = False


def match_paths(trace: list[TraceEvent]) -> list[str]:
    """Path patterns a per-request trace compares the request path against."""
    matcher = PathMatcher()
    for event in trace:
        matcher.feed(event)
    return matcher.finish()


def header_from_trace(trace: list[TraceEvent]) -> str | None:
    """The literal passed to the first ``getHeader(...)`` call, if any."""
    for previous, event in zip(trace, trace[1:]):
        if (
            isinstance(event, Invocation)
            and event.name in HEADER_READ_METHODS
            and isinstance(previous, ConstantLoad)
        ):
            return previous.value
    return None


def header_from_fields(assignments: dict[str, str]) -> str | None:
    """A string field whose name suggests it holds the header name."""
    for hint in _HEADER_FIELD_HINTS:
        for name, value in assignments.items():
            if hint in name.lower() and value:
                return value
    return None


def _delegate_filters(trace: list[TraceEvent], own_type: str) -> list[str]:
    delegates: list[str] = []
    for event in trace:
        if (
            isinstance(event, Invocation)
            and event.name == "<init>"
            and event.owner != own_type
            and simple_name(event.owner).endswith("Filter")
            and event.owner not in delegates
        ):
            delegates.append(event.owner)
    return delegates


# -- Analyzer -------------------------------------------------------------------


class FilterAnalyzer:
    """Computes and memoizes FilterApplicability per filter type for one scan.

    Safe to share across worker threads: each filter type is analyzed at
    most once, later callers wait for and reuse the first result.
    """

    def __init__(self, classpath: ClassPath, settings: AnalysisSettings | None = None):
        self.classpath = classpath
        self.settings = settings or AnalysisSettings()
        self._memo: dict[str, FilterApplicability] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @property
    def analyzed(self) -> dict[str, FilterApplicability]:
        with self._guard:
            return dict(self._memo)

    def applicability(self, filter_type: str) -> FilterApplicability:
        with self._guard:
            cached = self._memo.get(filter_type)
            if cached is not None:
                return cached
            key_lock = self._locks.setdefault(filter_type, threading.Lock())
        with key_lock:
            with self._guard:
                cached = self._memo.get(filter_type)
            if cached is not None:
                return cached
            result = self._analyze(filter_type)
            with self._guard:
                self._memo[filter_type] = result
            return result

    def analyze_all(self, filter_types: list[str]) -> dict[str, FilterApplicability]:
        """Analyze *filter_types* and every filter they delegate to.

        Uses an explicit work-list, so filters that reference each other
        are each visited once.
        """
        results: dict[str, FilterApplicability] = {}
        worklist = deque(filter_types)
        while worklist:
            name = worklist.popleft()
            if name in results:
                continue
            result = self.applicability(name)
            results[name] = result
            worklist.extend(d for d in result.delegates if d not in results)
        return results

    def _analyze(self, filter_type: str) -> FilterApplicability:
        try:
            trace = self._trace_filter_method(filter_type)
        except AnalysisUnavailable as e:
            logger.warning("Cannot analyze filter %s: %s", filter_type, e)
            return FilterApplicability(filter_type)

        patterns = match_paths(trace)
        header = self._header_name(filter_type, trace)
        delegates = _delegate_filters(trace, filter_type)
        logger.info(
            "Filter %s applies to %s", simple_name(filter_type), patterns or "nothing detectable"
        )
        return FilterApplicability(
            filter_type=filter_type,
            patterns=frozenset(patterns),
            header_name=header,
            delegates=tuple(delegates),
        )

    def _trace_filter_method(self, filter_type: str) -> list[TraceEvent]:
        last_error: AnalysisUnavailable | None = None
        for method_name in self.settings.filter_methods:
            try:
                return trace_method(
                    self.classpath,
                    filter_type,
                    method_name,
                    inline_lambdas=self.settings.inline_lambdas,
                )
            except AnalysisUnavailable as e:
                if type(e) is not AnalysisUnavailable:
                    raise  # TypeNotFound: no other method name will help
                last_error = e
        raise last_error or AnalysisUnavailable(
            f"no per-request method configured for {filter_type}"
        )

    def _header_name(self, filter_type: str, trace: list[TraceEvent]) -> str | None:
        try:
            assignments = field_string_assignments(self.classpath.load(filter_type))
        except AnalysisUnavailable as e:
            logger.debug("No field scan for %s: %s", filter_type, e)
            assignments = {}
        return header_from_fields(assignments) or header_from_trace(trace)
