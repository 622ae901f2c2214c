"""Discover endpoints and security configuration methods on a classpath.

Endpoints come from Spring MVC controller annotations; configuration
methods are the ones that build a ``SecurityFilterChain``.
"""

from __future__ import annotations

import logging

from authreport.commands.scan.steps.types import ConfigMethod, EndpointRecord
from authreport.formats.auth_report import NO_AUTH_EXPRESSION, HttpVerb
from authreport.formats.classfile import (
    AnalysisUnavailable,
    Annotation,
    ClassFile,
    EnumConstant,
    MethodInfo,
    descriptor_to_type_name,
)
from authreport.helpers.classpath import ClassPath
from authreport.helpers.naming import normalize_path

logger = logging.getLogger(__name__)

_WEB = "org.springframework.web.bind.annotation."
CONTROLLER_ANNOTATIONS = (_WEB + "RestController", "org.springframework.stereotype.Controller")
REQUEST_MAPPING = _WEB + "RequestMapping"
VERB_MAPPINGS = {
    _WEB + "GetMapping": HttpVerb.GET,
    _WEB + "PostMapping": HttpVerb.POST,
    _WEB + "PutMapping": HttpVerb.PUT,
    _WEB + "DeleteMapping": HttpVerb.DELETE,
    _WEB + "PatchMapping": HttpVerb.PATCH,
}

PRE_AUTHORIZE = "org.springframework.security.access.prepost.PreAuthorize"
ROLE_ANNOTATIONS = (
    "org.springframework.security.access.annotation.Secured",
    "jakarta.annotation.security.RolesAllowed",
    "javax.annotation.security.RolesAllowed",
)

SECURITY_FILTER_CHAIN = "org.springframework.security.web.SecurityFilterChain"


def _mapping_paths(annotation: Annotation | None) -> list[str]:
    if annotation is None:
        return []
    return annotation.strings("value") or annotation.strings("path")


def _request_mapping_verbs(annotation: Annotation) -> list[HttpVerb]:
    value = annotation.elements.get("method")
    items = value if isinstance(value, list) else [value]
    verbs: list[HttpVerb] = []
    for item in items:  # pyright: ignore[reportUnknownVariableType]
        if isinstance(item, EnumConstant) and item.name in HttpVerb.__members__:
            verbs.append(HttpVerb[item.name])
    return verbs or [HttpVerb.GET]


def method_mappings(method: MethodInfo) -> list[tuple[str, HttpVerb]]:
    """The (method path, verb) pairs a handler method is mapped to.

    An annotation without a path maps the handler at the controller prefix.
    """
    for type_name, verb in VERB_MAPPINGS.items():
        annotation = method.annotation(type_name)
        if annotation is not None:
            return [(p, verb) for p in _mapping_paths(annotation) or [""]]
    annotation = method.annotation(REQUEST_MAPPING)
    if annotation is None:
        return []
    verbs = _request_mapping_verbs(annotation)
    return [(p, v) for p in _mapping_paths(annotation) or [""] for v in verbs]


def auth_expression(cls: ClassFile, method: MethodInfo) -> str:
    """Authorization declared for a handler.

    Method ``@PreAuthorize`` wins, then ``@Secured``/``@RolesAllowed``
    roles joined with ``", "``, then class-level ``@PreAuthorize``.
    """
    pre = method.annotation(PRE_AUTHORIZE)
    if pre is not None and pre.first_string("value"):
        return pre.first_string("value") or NO_AUTH_EXPRESSION
    for type_name in ROLE_ANNOTATIONS:
        annotation = method.annotation(type_name)
        if annotation is not None and annotation.strings("value"):
            return ", ".join(annotation.strings("value"))
    pre = cls.annotation(PRE_AUTHORIZE)
    if pre is not None and pre.first_string("value"):
        return pre.first_string("value") or NO_AUTH_EXPRESSION
    return NO_AUTH_EXPRESSION


def is_controller(cls: ClassFile) -> bool:
    return any(cls.annotation(a) is not None for a in CONTROLLER_ANNOTATIONS)


def controller_endpoints(cls: ClassFile) -> list[EndpointRecord]:
    """Endpoint records for one controller class, in declaration order."""
    prefixes = _mapping_paths(cls.annotation(REQUEST_MAPPING)) or [""]
    records: list[EndpointRecord] = []
    for method in cls.methods:
        if method.is_synthetic:
            continue
        mappings = method_mappings(method)
        if not mappings:
            continue
        expression = auth_expression(cls, method)
        for prefix in prefixes:
            for path, verb in mappings:
                records.append(
                    EndpointRecord(
                        path=normalize_path(f"{prefix}/{path}"),
                        verb=verb,
                        auth_expression=expression,
                        declaring_type=cls.type_name,
                        method_name=method.name,
                    )
                )
    return records


def _iter_classes(classpath: ClassPath, package: str):
    for type_name in classpath.iter_type_names(package):
        try:
            yield classpath.load(type_name)
        except AnalysisUnavailable as e:
            logger.warning("Skipping %s: %s", type_name, e)


def discover_endpoints(classpath: ClassPath, package: str = "") -> list[EndpointRecord]:
    """Scan *package* for controller classes and collect their endpoints."""
    records: list[EndpointRecord] = []
    for cls in _iter_classes(classpath, package):
        if not is_controller(cls):
            continue
        endpoints = controller_endpoints(cls)
        logger.info("Controller %s: %d endpoint(s)", cls.type_name, len(endpoints))
        records.extend(endpoints)
    return records


def discover_config_methods(classpath: ClassPath, package: str = "") -> list[ConfigMethod]:
    """Scan *package* for methods returning a SecurityFilterChain."""
    found: list[ConfigMethod] = []
    for cls in _iter_classes(classpath, package):
        for method in cls.methods:
            if method.is_synthetic or not method.return_descriptor.startswith("L"):
                continue
            if descriptor_to_type_name(method.return_descriptor) == SECURITY_FILTER_CHAIN:
                found.append(ConfigMethod(cls.type_name, method.name, method.descriptor))
    return found
