from typing import Any, Dict, Iterable


def ok(
    data: Any, *, partial: bool = False, warnings: Iterable[str] | None = None
) -> Dict[str, Any]:
    """Return a success envelope.

    ``partial`` marks a result assembled with one or more partitions missing;
    the reasons are listed under ``warnings``.
    """
    envelope: Dict[str, Any] = {"success": True, "data": data}
    warnings = list(warnings or ())
    if partial or warnings:
        envelope["partial"] = partial
        envelope["warnings"] = warnings
    return envelope


def err(code: str, message: str, details: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """Return an error envelope."""
    from ..middlewares.request_id import request_id_ctx

    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    envelope: Dict[str, Any] = {"success": False, "error": error}
    req_id = request_id_ctx.get(None)
    if req_id:
        envelope["request_id"] = req_id
    return envelope
