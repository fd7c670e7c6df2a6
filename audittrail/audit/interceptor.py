"""
Audit Interception

Observes operations that have registered AuditMetadata and records one audit
entry per successful completion, without the operation itself calling any
logging code.

Lifecycle of one intercepted call:

    PENDING -> EXTRACTING -> COMPOSED
                          -> SKIPPED          (no metadata / skip_logging / disabled)
                          -> FAILED_SILENTLY  (extraction or write raised, or the
                                               operation itself failed)

The operation's own result (or exception) always reaches the caller
unchanged. Auditing is attached per router through the route class:

    router = APIRouter(route_class=audited_route_class(audit_registry))
"""
import enum
import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from fastapi import Request, Response
from fastapi.routing import APIRoute

from audittrail.audit.audit_logger import AuditLogger
from audittrail.audit.context import AuditContext, get_audit_context
from audittrail.audit.metadata import (
    AuditMetadata,
    AuditRegistry,
    OperationInputs,
    OperationKind,
    audit_registry,
)
from audittrail.audit.middleware import build_audit_context
from audittrail.core.config import settings
from audittrail.services.logging import audit_ops_logger

logger = logging.getLogger(__name__)


class InterceptionState(str, enum.Enum):
    PENDING = "pending"
    EXTRACTING = "extracting"
    COMPOSED = "composed"
    SKIPPED = "skipped"
    FAILED_SILENTLY = "failed_silently"


@dataclass
class Interception:
    """Per-call state carried from before dispatch to after completion."""
    metadata: AuditMetadata
    kind: OperationKind
    inputs: OperationInputs
    context: AuditContext
    state: InterceptionState = InterceptionState.PENDING
    record_id: Optional[str] = None
    old_values: Any = None
    new_values: Any = None


async def _derive(derivation, inputs: OperationInputs) -> Any:
    value = derivation(inputs)
    if inspect.isawaitable(value):
        value = await value
    return value


def _as_record_id(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


async def resolve_record_id(metadata: AuditMetadata, inputs: OperationInputs) -> Optional[str]:
    """
    Resolve the record id from the inputs.

    Order: the declared record_id_param (falling back to the "id" path
    parameter), else the custom get_record_id derivation, else the "id" path
    parameter. The result-based fallback happens after completion.
    """
    if metadata.record_id_param:
        return _as_record_id(
            inputs.path_params.get(metadata.record_id_param) or inputs.path_params.get("id")
        )
    if metadata.get_record_id is not None:
        return _as_record_id(await _derive(metadata.get_record_id, inputs))
    return _as_record_id(inputs.path_params.get("id"))


def record_id_from_result(result: Any) -> Optional[str]:
    """Find an id on an operation result ({"data": {"id": ...}} or {"id": ...})."""
    if isinstance(result, dict):
        data = result.get("data")
        if isinstance(data, dict) and data.get("id"):
            return _as_record_id(data["id"])
        return _as_record_id(result.get("id"))
    return _as_record_id(getattr(result, "id", None))


def _result_payload(result: Any) -> Any:
    if isinstance(result, dict) and result.get("data") is not None:
        return result["data"]
    return result


class AuditInterceptor:
    """Runs the extraction/composition sequence around one operation."""

    def __init__(self, audit_logger: Optional[AuditLogger] = None):
        self.audit_logger = audit_logger or AuditLogger()

    async def begin(
        self,
        metadata: Optional[AuditMetadata],
        kind: OperationKind,
        inputs: OperationInputs,
        context: Optional[AuditContext] = None,
    ) -> Optional[Interception]:
        """
        Extract record id and value snapshots before dispatch.

        Returns None when the operation is not to be audited. Never raises;
        an extraction failure yields an interception in FAILED_SILENTLY.
        """
        if metadata is None or metadata.skip_logging or not settings.AUDIT_LOGGING_ENABLED:
            return None

        interception = Interception(
            metadata=metadata,
            kind=kind,
            inputs=inputs,
            context=context or AuditContext.create_empty(),
        )
        interception.state = InterceptionState.EXTRACTING
        try:
            interception.record_id = await resolve_record_id(metadata, inputs)
            if metadata.get_old_values is not None:
                interception.old_values = await _derive(metadata.get_old_values, inputs)
            if metadata.get_new_values is not None:
                interception.new_values = await _derive(metadata.get_new_values, inputs)
            else:
                interception.new_values = inputs.body
        except Exception as e:
            interception.state = InterceptionState.FAILED_SILENTLY
            audit_ops_logger.audit_extraction_failed(metadata.action, "before dispatch", e)
        return interception

    async def finish(self, interception: Optional[Interception], result: Any) -> InterceptionState:
        """Compose and write the entry after a successful completion. Never raises."""
        if interception is None:
            return InterceptionState.SKIPPED
        if interception.state == InterceptionState.FAILED_SILENTLY:
            return interception.state

        try:
            if interception.record_id is None:
                interception.record_id = record_id_from_result(result)

            new_values = interception.new_values
            if interception.kind == OperationKind.DELETE:
                new_values = None
            elif new_values is None:
                new_values = _result_payload(result)

            written = await self.audit_logger.record(
                interception.kind,
                interception.metadata,
                actor=interception.context.actor,
                context=interception.context,
                record_id=interception.record_id,
                old_values=interception.old_values,
                new_values=new_values,
                inputs=interception.inputs,
            )
        except Exception as e:
            audit_ops_logger.audit_extraction_failed(
                interception.metadata.action, "after completion", e
            )
            written = False

        interception.state = (
            InterceptionState.COMPOSED if written else InterceptionState.FAILED_SILENTLY
        )
        return interception.state

    async def intercept(
        self,
        metadata: Optional[AuditMetadata],
        kind: OperationKind,
        inputs: OperationInputs,
        context: Optional[AuditContext],
        call_next: Callable[[], Awaitable[Any]],
        *,
        is_success: Callable[[Any], bool] = lambda _: True,
        result_of: Callable[[Any], Any] = lambda outcome: outcome,
    ) -> Any:
        """
        Run `call_next` and audit it.

        Exceptions raised by the operation propagate untouched and are not
        audited. `is_success` decides whether a returned outcome counts as a
        successful completion; `result_of` extracts the value used for the
        record id and new value fallbacks.
        """
        interception = await self.begin(metadata, kind, inputs, context)
        outcome = await call_next()

        if interception is None:
            return outcome

        try:
            succeeded = is_success(outcome)
            result = result_of(outcome) if succeeded else None
        except Exception as e:
            audit_ops_logger.audit_extraction_failed(metadata.action, "reading result", e)
            return outcome

        if succeeded:
            await self.finish(interception, result)
        return outcome


async def read_request_body(request: Request) -> Any:
    """
    JSON body of a request, or None for empty/non-JSON bodies.

    Bodies of other content types (multipart uploads, forms) are never read.
    """
    if "json" not in request.headers.get("content-type", "").lower():
        return None
    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None


def read_response_body(response: Response) -> Any:
    """JSON payload of a rendered response, or None when unavailable."""
    body = getattr(response, "body", None)
    if not body:
        return None
    media_type = response.media_type or response.headers.get("content-type", "")
    if "json" not in media_type:
        return None
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None


_default_interceptor: Optional[AuditInterceptor] = None


def get_default_interceptor() -> AuditInterceptor:
    global _default_interceptor
    if _default_interceptor is None:
        _default_interceptor = AuditInterceptor()
    return _default_interceptor


class AuditedRoute(APIRoute):
    """
    APIRoute that audits the endpoint registered under its route name.

    Use audited_route_class() to bind a registry and interceptor; the base
    class uses the process-wide registry and default interceptor.
    """
    audit_registry: AuditRegistry = audit_registry
    audit_interceptor: Optional[AuditInterceptor] = None

    def get_route_handler(self) -> Callable[[Request], Awaitable[Response]]:
        original_handler = super().get_route_handler()
        metadata = self.audit_registry.get(self.name)

        if metadata is None:
            return original_handler
        if metadata.skip_logging:
            audit_ops_logger.audit_skipped(self.name, "skip_logging declared")
            return original_handler

        interceptor = self.audit_interceptor or get_default_interceptor()

        async def audited_route_handler(request: Request) -> Response:
            kind = OperationKind.from_method(request.method)
            try:
                context = get_audit_context() or build_audit_context(request)
                inputs = OperationInputs(
                    body=await read_request_body(request),
                    path_params=dict(request.path_params),
                    query_params=dict(request.query_params),
                    actor=context.actor,
                    request=request,
                )
            except Exception as e:
                audit_ops_logger.audit_extraction_failed(metadata.action, "reading request", e)
                return await original_handler(request)

            return await interceptor.intercept(
                metadata,
                kind,
                inputs,
                context,
                lambda: original_handler(request),
                is_success=lambda response: response.status_code < 400,
                result_of=read_response_body,
            )

        return audited_route_handler


def audited_route_class(
    registry: AuditRegistry,
    interceptor: Optional[AuditInterceptor] = None,
) -> type[AuditedRoute]:
    """Build an AuditedRoute subclass bound to a registry and interceptor."""
    return type(
        "AuditedRoute",
        (AuditedRoute,),
        {"audit_registry": registry, "audit_interceptor": interceptor},
    )
