"""Security feature classifier: trace → chain-level security features.

The heuristics are a table of (predicate, effect) rules evaluated
independently against every event of the trace. Effects only ever add
to the accumulated Classification, so the result is the monotonic union
of everything the rules recognized.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from authreport.commands.scan.interpreter import (
    ConstantLoad,
    Invocation,
    TraceEvent,
)
from authreport.formats.auth_report import SessionPolicy
from authreport.helpers.naming import simple_name, squash

BASIC_AUTH = "Basic Authentication"
API_KEY_AUTH = "API Key Authentication"
CSRF_DISABLED = "CSRF Disabled"
JWT_AUTH = "JWT Authentication"
OAUTH2_AUTH = "OAuth2 Authentication"

FILTER_INSERTION_METHODS = frozenset(
    {"addFilterBefore", "addFilterAfter", "addFilterAt", "addFilter"}
)
SESSION_CONFIG_METHODS = frozenset({"sessionManagement", "sessionCreationPolicy"})
CUSTOM_SESSION_METHODS = frozenset(
    {"sessionAuthenticationStrategy", "maximumSessions", "sessionFixation", "sessionRegistry"}
)
OAUTH2_BUILDER_METHODS = frozenset({"oauth2ResourceServer", "oauth2Login", "oauth2Client"})

# IF_REQUIRED before the markers it does not contain, ALWAYS/NEVER last.
_SESSION_MARKERS: tuple[SessionPolicy, ...] = (
    SessionPolicy.IF_REQUIRED,
    SessionPolicy.STATELESS,
    SessionPolicy.ALWAYS,
    SessionPolicy.NEVER,
)

# Interfaces too generic to name the inserted filter.
_GENERIC_FILTER_TYPES = frozenset(
    {"jakarta.servlet.Filter", "javax.servlet.Filter", "java.lang.Object"}
)

_SESSION_RANK = {SessionPolicy.DEFAULT: 0, SessionPolicy.CUSTOM: 1}


def session_tag(policy: SessionPolicy) -> str:
    return f"Session Management: {policy.value}"


@dataclass
class Classification:
    """Chain-level features recognized in one configuration trace."""

    basic_auth_required: bool = False
    api_key_required: bool = False
    # True only when API key evidence does not come from a filter insertion;
    # filter-backed API keys are resolved per endpoint by the correlator.
    chain_wide_api_key: bool = False
    session_policy: SessionPolicy | None = None
    features: set[str] = field(default_factory=lambda: set[str]())
    referenced_filters: list[str] = field(default_factory=lambda: list[str]())

    def add_filter(self, type_name: str) -> None:
        if type_name not in self.referenced_filters:
            self.referenced_filters.append(type_name)

    def offer_session_policy(self, policy: SessionPolicy) -> None:
        """Record *policy* unless a more specific one is already known."""
        current = self.session_policy
        if current is None or _SESSION_RANK.get(policy, 2) > _SESSION_RANK.get(current, 2):
            self.session_policy = policy


@dataclass(frozen=True)
class TraceWindow:
    """An event with its neighbours and the latest object produced before it."""

    event: TraceEvent
    previous: TraceEvent | None
    next: TraceEvent | None
    produced_type: str | None

    @property
    def call(self) -> Invocation | None:
        return self.event if isinstance(self.event, Invocation) else None

    def adjacent_constants(self) -> list[str]:
        return [
            e.value for e in (self.previous, self.next) if isinstance(e, ConstantLoad)
        ]


@dataclass(frozen=True)
class Rule:
    name: str
    predicate: Callable[[TraceWindow], bool]
    effect: Callable[[TraceWindow, Classification], None]


# -- Predicates ---------------------------------------------------------------


def is_http_security_builder(owner: str) -> bool:
    return "HttpSecurity" in simple_name(owner)


def is_filter_insertion(call: Invocation) -> bool:
    return call.name in FILTER_INSERTION_METHODS


def produced_filter_type(call: Invocation) -> str | None:
    """The ``...Filter`` type a constructor or factory method hands back."""
    produced = call.owner if call.name == "<init>" else call.return_type
    if produced is not None and simple_name(produced).endswith("Filter"):
        return produced
    return None


def mentions_api_key(call: Invocation) -> bool:
    text = squash(f"{call.owner} {call.name} {call.descriptor}")
    return "apikey" in text or "tokenauth" in text


def inserted_filter_type(window: TraceWindow) -> str | None:
    """The filter type a filter-insertion call adds to the chain.

    The descriptor's first parameter when it is a concrete type, otherwise
    the object most recently produced before the call.
    """
    call = window.call
    if call is None:
        return None
    params = call.parameter_types
    if params and params[0] not in _GENERIC_FILTER_TYPES and not params[0].startswith("["):
        if "." in params[0]:
            return params[0]
    return window.produced_type


def _denotes_configure_or_add_filter(name: str) -> bool:
    lowered = name.lower()
    return "configure" in lowered or lowered.startswith("addfilter")


def _basic_auth(w: TraceWindow) -> bool:
    c = w.call
    return c is not None and is_http_security_builder(c.owner) and c.name == "httpBasic"


def _api_key_call(w: TraceWindow) -> bool:
    c = w.call
    return (
        c is not None
        and not is_filter_insertion(c)
        and produced_filter_type(c) is None
        and mentions_api_key(c)
    )


def _api_key_filter(w: TraceWindow) -> bool:
    c = w.call
    if c is None or not is_filter_insertion(c):
        return False
    inserted = inserted_filter_type(w)
    return inserted is not None and "ApiKeyAuthFilter" in simple_name(inserted)


def _session_call(w: TraceWindow) -> bool:
    c = w.call
    return c is not None and (
        c.name in SESSION_CONFIG_METHODS or c.name in CUSTOM_SESSION_METHODS
    )


def _csrf_disabled(w: TraceWindow) -> bool:
    c = w.call
    if c is None:
        return False
    if (
        is_http_security_builder(c.owner)
        and "csrf" in c.name.lower()
        and "disable" in c.descriptor.lower()
    ):
        return True
    # csrf().disable() and csrf(c -> c.disable()) after lambda inlining
    if c.name == "disable" and "csrf" in simple_name(c.owner).lower():
        return True
    # csrf(AbstractHttpConfigurer::disable)
    prev = w.previous
    return (
        is_http_security_builder(c.owner)
        and c.name == "csrf"
        and isinstance(prev, Invocation)
        and prev.name == "disable"
    )


def _jwt(w: TraceWindow) -> bool:
    c = w.call
    if c is None:
        return False
    if "jwt" in c.owner.lower() and _denotes_configure_or_add_filter(c.name):
        return True
    return c.name == "jwt" and "oauth2" in c.owner.lower()


def _oauth2(w: TraceWindow) -> bool:
    c = w.call
    if c is None:
        return False
    if "oauth2" in c.owner.lower() and _denotes_configure_or_add_filter(c.name):
        return True
    return is_http_security_builder(c.owner) and c.name in OAUTH2_BUILDER_METHODS


def _filter_insertion(w: TraceWindow) -> bool:
    c = w.call
    return c is not None and is_filter_insertion(c) and inserted_filter_type(w) is not None


# -- Effects -------------------------------------------------------------------


def _set_basic_auth(w: TraceWindow, result: Classification) -> None:
    result.basic_auth_required = True
    result.features.add(BASIC_AUTH)


def _set_chain_api_key(w: TraceWindow, result: Classification) -> None:
    result.api_key_required = True
    result.chain_wide_api_key = True
    result.features.add(API_KEY_AUTH)


def _set_filter_api_key(w: TraceWindow, result: Classification) -> None:
    result.api_key_required = True
    result.features.add(API_KEY_AUTH)


def _set_session_policy(w: TraceWindow, result: Classification) -> None:
    call = w.call
    assert call is not None
    policy = SessionPolicy.DEFAULT
    if call.name in CUSTOM_SESSION_METHODS:
        policy = SessionPolicy.CUSTOM
    for constant in w.adjacent_constants():
        marker = parse_session_marker(constant)
        if marker is not None:
            policy = marker
            break
    result.offer_session_policy(policy)


def _add_tag(tag: str) -> Callable[[TraceWindow, Classification], None]:
    def effect(w: TraceWindow, result: Classification) -> None:
        result.features.add(tag)

    return effect


def _record_filter(w: TraceWindow, result: Classification) -> None:
    inserted = inserted_filter_type(w)
    if inserted is not None:
        result.add_filter(inserted)


def parse_session_marker(constant: str) -> SessionPolicy | None:
    upper = constant.upper()
    for policy in _SESSION_MARKERS:
        if policy.value in upper:
            return policy
    return None


RULES: tuple[Rule, ...] = (
    Rule("basic-auth", _basic_auth, _set_basic_auth),
    Rule("api-key-call", _api_key_call, _set_chain_api_key),
    Rule("api-key-filter", _api_key_filter, _set_filter_api_key),
    Rule("session-management", _session_call, _set_session_policy),
    Rule("csrf-disabled", _csrf_disabled, _add_tag(CSRF_DISABLED)),
    Rule("jwt", _jwt, _add_tag(JWT_AUTH)),
    Rule("oauth2", _oauth2, _add_tag(OAUTH2_AUTH)),
    Rule("filter-insertion", _filter_insertion, _record_filter),
)


def iter_windows(trace: list[TraceEvent]) -> list[TraceWindow]:
    """Pair every event with its neighbours and the latest produced object.

    The produced object is the last ``...Filter`` type constructed or
    returned by a call. Constructors of other types and fluent builder
    calls do not count.
    """
    windows: list[TraceWindow] = []
    produced: str | None = None
    for i, event in enumerate(trace):
        windows.append(
            TraceWindow(
                event=event,
                previous=trace[i - 1] if i > 0 else None,
                next=trace[i + 1] if i + 1 < len(trace) else None,
                produced_type=produced,
            )
        )
        if isinstance(event, Invocation):
            produced = produced_filter_type(event) or produced
    return windows


def classify(
    trace: list[TraceEvent], rules: tuple[Rule, ...] = RULES
) -> Classification:
    """Scan *trace* once and accumulate every feature the rules recognize."""
    result = Classification()
    for window in iter_windows(trace):
        for rule in rules:
            if rule.predicate(window):
                rule.effect(window, result)
    if result.session_policy is not None:
        result.features.add(session_tag(result.session_policy))
    return result
