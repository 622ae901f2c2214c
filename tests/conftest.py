"""Shared test fixtures for authreport tests.

The sample application mirrors a small Spring Boot service: two
controllers, one security configuration and one API key filter that only
guards ``/admin``.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path

import pytest

from authreport.commands.scan.interpreter import BranchPolarity, ConstantLoad, Invocation
from authreport.commands.scan.steps.types import EndpointRecord
from authreport.formats.auth_report import (
    AuthorizationReport,
    EndpointEntry,
    HttpVerb,
)
from authreport.helpers.classpath import ClassPath
from authreport.report.grouping import build_report
from tests.jvm import (
    ACC_PRIVATE,
    ACC_PROTECTED,
    ACC_STATIC,
    ACC_SYNTHETIC,
    ClassBuilder,
    Code,
    EnumValue,
    ann,
    obj,
)

# -- Spring type names -----------------------------------------------------------

HTTP_SECURITY = "org.springframework.security.config.annotation.web.builders.HttpSecurity"
CUSTOMIZER = "org.springframework.security.config.Customizer"
FILTER_CHAIN = "org.springframework.security.web.SecurityFilterChain"
DEFAULT_FILTER_CHAIN = "org.springframework.security.web.DefaultSecurityFilterChain"
CSRF_CONFIGURER = "org.springframework.security.config.annotation.web.configurers.CsrfConfigurer"
SESSION_CONFIGURER = (
    "org.springframework.security.config.annotation.web.configurers.SessionManagementConfigurer"
)
SESSION_POLICY = "org.springframework.security.config.http.SessionCreationPolicy"
USERNAME_PASSWORD_FILTER = (
    "org.springframework.security.web.authentication.UsernamePasswordAuthenticationFilter"
)
ONCE_PER_REQUEST_FILTER = "org.springframework.web.filter.OncePerRequestFilter"
REQUEST = "jakarta.servlet.http.HttpServletRequest"
SERVLET_FILTER_CHAIN = "jakarta.servlet.FilterChain"

REST_CONTROLLER = "org.springframework.web.bind.annotation.RestController"
REQUEST_MAPPING = "org.springframework.web.bind.annotation.RequestMapping"
REQUEST_METHOD = "org.springframework.web.bind.annotation.RequestMethod"
GET_MAPPING = "org.springframework.web.bind.annotation.GetMapping"
POST_MAPPING = "org.springframework.web.bind.annotation.PostMapping"
PRE_AUTHORIZE = "org.springframework.security.access.prepost.PreAuthorize"
SECURED = "org.springframework.security.access.annotation.Secured"
BEAN = "org.springframework.context.annotation.Bean"

CONFIG_METHOD_DESC = f"({obj(HTTP_SECURITY)}){obj(FILTER_CHAIN)}"
BUILDER_DESC = f"({obj(CUSTOMIZER)}){obj(HTTP_SECURITY)}"
PER_REQUEST_DESC = (
    "(Ljakarta/servlet/http/HttpServletRequest;Ljakarta/servlet/http/HttpServletResponse;"
    "Ljakarta/servlet/FilterChain;)V"
)
ADD_FILTER_DESC = f"(Ljakarta/servlet/Filter;Ljava/lang/Class;){obj(HTTP_SECURITY)}"
STRING_PREDICATE_DESC = "(Ljava/lang/String;)Z"

API_KEY_FILTER = "com.acme.security.ApiKeyAuthFilter"
SECURITY_CONFIG = "com.acme.security.SecurityConfig"
USER_CONTROLLER = "com.acme.web.UserController"
ADMIN_CONTROLLER = "com.acme.web.AdminController"


# -- Class builders ----------------------------------------------------------------


def path_filter_class(
    name: str = API_KEY_FILTER,
    path: str = "/admin",
    negated: bool = False,
    header_field: str | None = "X-API-TOKEN",
    comparison: str = "startsWith",
) -> ClassBuilder:
    """A OncePerRequestFilter whose doFilterInternal compares the request URI to *path*."""
    cb = ClassBuilder(name, ONCE_PER_REQUEST_FILTER)
    if header_field is not None:
        cb.add_field("HEADER_NAME", constant=header_field)
    code = cb.code()
    code.aload(1).invokeinterface(REQUEST, "getRequestURI", "()Ljava/lang/String;")
    code.ldc(path).invokevirtual("java.lang.String", comparison, STRING_PREDICATE_DESC)
    if negated:
        code.ifne()
    else:
        code.ifeq()
    code.aload(1).ldc("X-Request-Key")
    code.invokeinterface(REQUEST, "getHeader", "(Ljava/lang/String;)Ljava/lang/String;", 2)
    code.pop()
    code.aload(3).aload(1).aload(2)
    code.invokeinterface(
        SERVLET_FILTER_CHAIN,
        "doFilter",
        "(Ljakarta/servlet/ServletRequest;Ljakarta/servlet/ServletResponse;)V",
        3,
    )
    code.return_()
    cb.add_method("doFilterInternal", PER_REQUEST_DESC, code, access=ACC_PROTECTED)
    return cb


def security_config_class(
    name: str = SECURITY_CONFIG,
    filter_type: str | None = API_KEY_FILTER,
    session_policy: str = "STATELESS",
) -> ClassBuilder:
    """``http.httpBasic(withDefaults()).csrf(c -> c.disable())
    .sessionManagement(s -> s.sessionCreationPolicy(...)).addFilterBefore(new F(), ...)``."""
    cb = ClassBuilder(name)
    cb.annotate(ann("org.springframework.context.annotation.Configuration"))

    csrf_desc = f"({obj(CSRF_CONFIGURER)})V"
    csrf_body = cb.code().aload(0)
    csrf_body.invokevirtual(
        CSRF_CONFIGURER,
        "disable",
        "()Lorg/springframework/security/config/annotation/web/HttpSecurityBuilder;",
    )
    csrf_body.pop().return_()
    cb.add_method(
        "lambda$filterChain$0", csrf_desc, csrf_body, access=ACC_PRIVATE | ACC_STATIC | ACC_SYNTHETIC
    )

    session_desc = f"({obj(SESSION_CONFIGURER)})V"
    session_body = cb.code().aload(0).enum_constant(SESSION_POLICY, session_policy)
    session_body.invokevirtual(
        SESSION_CONFIGURER,
        "sessionCreationPolicy",
        f"({obj(SESSION_POLICY)}){obj(SESSION_CONFIGURER)}",
    )
    session_body.pop().return_()
    cb.add_method(
        "lambda$filterChain$1",
        session_desc,
        session_body,
        access=ACC_PRIVATE | ACC_STATIC | ACC_SYNTHETIC,
    )

    code = cb.code().aload(1)
    code.invokestatic(CUSTOMIZER, "withDefaults", f"(){obj(CUSTOMIZER)}")
    code.invokevirtual(HTTP_SECURITY, "httpBasic", BUILDER_DESC)
    code.lambda_("lambda$filterChain$0", csrf_desc)
    code.invokevirtual(HTTP_SECURITY, "csrf", BUILDER_DESC)
    code.lambda_("lambda$filterChain$1", session_desc)
    code.invokevirtual(HTTP_SECURITY, "sessionManagement", BUILDER_DESC)
    if filter_type is not None:
        code.construct(filter_type)
        code.ldc_class(USERNAME_PASSWORD_FILTER)
        code.invokevirtual(HTTP_SECURITY, "addFilterBefore", ADD_FILTER_DESC)
    code.invokevirtual(HTTP_SECURITY, "build", f"(){obj(DEFAULT_FILTER_CHAIN)}")
    code.areturn()
    cb.add_method("filterChain", CONFIG_METHOD_DESC, code, annotations=[ann(BEAN)])
    return cb


def _handler_body(cb: ClassBuilder) -> Code:
    return cb.code().raw(0x01).areturn()  # aconst_null


def user_controller_class() -> ClassBuilder:
    cb = ClassBuilder(USER_CONTROLLER)
    cb.annotate(ann(REST_CONTROLLER), ann(REQUEST_MAPPING, value=["/api"]))
    cb.add_method(
        "listUsers",
        "()Ljava/util/List;",
        _handler_body(cb),
        annotations=[ann(GET_MAPPING, value=["/users"]), ann(PRE_AUTHORIZE, value="hasRole('USER')")],
    )
    cb.add_method(
        "createUser",
        "()Ljava/lang/Object;",
        _handler_body(cb),
        annotations=[
            ann(POST_MAPPING, value=["/users"]),
            ann(PRE_AUTHORIZE, value="hasRole('ADMIN')"),
        ],
    )
    cb.add_method(
        "health",
        "()Ljava/lang/String;",
        _handler_body(cb),
        annotations=[ann(GET_MAPPING, path=["/health"])],
    )
    cb.add_method("toString", "()Ljava/lang/String;", _handler_body(cb))
    return cb


def admin_controller_class() -> ClassBuilder:
    cb = ClassBuilder(ADMIN_CONTROLLER)
    cb.annotate(
        ann(REST_CONTROLLER),
        ann(REQUEST_MAPPING, value=["/admin"]),
        ann(PRE_AUTHORIZE, value="hasRole('ADMIN')"),
    )
    cb.add_method(
        "users",
        "()Ljava/util/List;",
        _handler_body(cb),
        annotations=[ann(GET_MAPPING, value=["/users"])],
    )
    cb.add_method(
        "audit",
        "()Ljava/lang/Object;",
        _handler_body(cb),
        annotations=[
            ann(REQUEST_MAPPING, value=["/audit"], method=[EnumValue(REQUEST_METHOD, "POST")]),
            ann(SECURED, value=["ROLE_AUDITOR", "ROLE_ADMIN"]),
        ],
    )
    return cb


def sample_app_classes() -> list[ClassBuilder]:
    return [
        path_filter_class(),
        security_config_class(),
        user_controller_class(),
        admin_controller_class(),
    ]


@pytest.fixture
def app_dir(tmp_path: Path) -> Path:
    """A directory of compiled classes for the sample application."""
    root = tmp_path / "classes"
    for builder in sample_app_classes():
        builder.write(root)
    return root


@pytest.fixture
def classpath(app_dir: Path) -> Iterator[ClassPath]:
    with ClassPath([app_dir]) as cp:
        yield cp


# -- Records, entries and reports ---------------------------------------------------


def make_record(
    path: str,
    verb: HttpVerb = HttpVerb.GET,
    auth_expression: str = "None",
    **kwargs: object,
) -> EndpointRecord:
    """Helper to create an EndpointRecord with minimal boilerplate."""
    return EndpointRecord(path=path, verb=verb, auth_expression=auth_expression, **kwargs)  # type: ignore[arg-type]


def make_entry(
    path: str,
    verb: HttpVerb = HttpVerb.GET,
    auth_expression: str = "None",
    **kwargs: object,
) -> EndpointEntry:
    """Helper to create an EndpointEntry with minimal boilerplate."""
    return EndpointEntry(path=path, verb=verb, auth_expression=auth_expression, **kwargs)  # type: ignore[arg-type]


GENERATED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_report(records: list[EndpointRecord]) -> AuthorizationReport:
    return build_report(records, generated_at=GENERATED_AT)


def call(owner: str, name: str, descriptor: str = "()V") -> Invocation:
    return Invocation(owner, name, descriptor)


def const(value: str) -> ConstantLoad:
    return ConstantLoad(value)


def branch(negated: bool = False) -> BranchPolarity:
    return BranchPolarity(negated)


@pytest.fixture
def sample_records() -> list[EndpointRecord]:
    return [
        make_record("/api/users", HttpVerb.GET, "hasRole('USER')"),
        make_record("/api/users", HttpVerb.POST, "hasRole('ADMIN')"),
        make_record("/admin/users", HttpVerb.GET, "hasRole('ADMIN')"),
        make_record("/public", HttpVerb.GET),
    ]
