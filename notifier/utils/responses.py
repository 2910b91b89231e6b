from typing import Any, Dict, List, Optional
from fastapi import status, Request
from fastapi.responses import JSONResponse
from notifier.schemas.camel_base_model import to_json_value
from notifier.schemas.response_schemas import (
    ApiResponse,
    PaginationMeta,
    ResponseStatus,
)


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def _render(
    response: ApiResponse, status_code: int, extra: Optional[Dict[str, Any]]
) -> JSONResponse:
    content = response.model_dump(exclude_none=True)
    if extra:
        # Top-level fields the admin client reads directly, e.g. notificationId
        content.update(
            {key: to_json_value(value) for key, value in extra.items() if value is not None}
        )
    return JSONResponse(status_code=status_code, content=content)


class ResponseBuilder:
    """Builder class for creating standardized responses"""

    @staticmethod
    def success(
        request: Request,
        data: Any = None,
        message: str = "Request successful",
        meta: Optional[Dict[str, Any]] = None,
        pagination: Optional[PaginationMeta] = None,
        status_code: int = status.HTTP_200_OK,
        extra: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        """Create a success response"""
        response = ApiResponse(
            success=True,
            status=ResponseStatus.SUCCESS,
            message=message,
            data=data,
            meta=meta,
            pagination=pagination,
            request_id=_request_id(request) or "app",
            path=str(request.url.path),
        )
        return _render(response, status_code, extra)

    @staticmethod
    def error(
        request: Request,
        message: str = "An error occurred",
        errors: Optional[List[Dict[str, Any]]] = None,
        error_code: Optional[str] = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        data: Any = None,
        meta: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        """Create an error response"""
        response_meta = meta or {}
        if error_code:
            response_meta["error_code"] = error_code

        response = ApiResponse(
            success=False,
            status=ResponseStatus.ERROR,
            message=message,
            data=data,
            meta=response_meta if response_meta else None,
            errors=errors,
            request_id=_request_id(request) or "app",
            path=str(request.url.path),
        )
        return _render(response, status_code, extra)

    @staticmethod
    def paginated(
        request: Request,
        data: List[Any],
        page: int,
        limit: int,
        total: int,
        message: str = "Data retrieved successfully",
        meta: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        """Create a paginated response"""
        pages = (total + limit - 1) // limit

        pagination = PaginationMeta(
            page=page,
            limit=limit,
            total=total,
            pages=pages,
            has_next=page < pages,
            has_prev=page > 1,
        )

        return ResponseBuilder.success(
            request=request,
            data=data,
            message=message,
            meta=meta,
            pagination=pagination,
        )
