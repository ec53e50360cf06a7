"""Context variables for structured logging."""

from contextvars import ContextVar

_trace_id: ContextVar[str] = ContextVar("trace_id", default="")
_client: ContextVar[str] = ContextVar("client", default="")
_operation: ContextVar[str] = ContextVar("operation", default="")
_resource: ContextVar[str] = ContextVar("resource", default="")


def set_log_context(
    trace_id: str | None = None,
    client: str | None = None,
    operation: str | None = None,
    resource: str | None = None,
) -> None:
    if trace_id is not None:
        _trace_id.set(trace_id)
    if client is not None:
        _client.set(client)
    if operation is not None:
        _operation.set(operation)
    if resource is not None:
        _resource.set(resource)


def get_log_context() -> dict[str, str]:
    return {
        "trace_id": _trace_id.get(),
        "client": _client.get(),
        "operation": _operation.get(),
        "resource": _resource.get(),
    }


def clear_log_context() -> None:
    _trace_id.set("")
    _client.set("")
    _operation.set("")
    _resource.set("")
