from typing import Annotated, Any

from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pg_browser.models.requests import (
    TableDataRequest,
    TableDataResponse,
    TableEntry,
    TablesRequest,
    TablesResponse,
    UpdateCellRequest,
    UpdateCellResponse,
)
from pg_browser.services.errors import (
    BrowserError,
    DatabaseConnectionError,
    QueryError,
    QueryValidationError,
    StaleRowError,
)
from pg_browser.services.grid_controller import DatabaseGateway, DirectGateway
from pg_browser.utils.logging import get_logger, log_warning

LOGGER = get_logger(__name__)

ERROR_STATUS: dict[type[BrowserError], int] = {
    QueryValidationError: status.HTTP_400_BAD_REQUEST,
    StaleRowError: status.HTTP_409_CONFLICT,
    DatabaseConnectionError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    QueryError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

CELL_ENCODERS: dict[Any, Any] = {
    bytes: lambda value: "\\x" + value.hex(),
    memoryview: lambda value: "\\x" + bytes(value).hex(),
}


def _status_for(error: BrowserError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def encode_rows(rows: list[list[Any]]) -> list[list[Any]]:
    return jsonable_encoder(rows, custom_encoder=CELL_ENCODERS)


def create_app(*, gateway: DatabaseGateway | None = None) -> FastAPI:
    """Create the FastAPI instance exposing table listing, paging and cell updates."""
    app = FastAPI(
        title="PostgreSQL Table Browser API",
        version="0.1.0",
    )
    active_gateway: DatabaseGateway = gateway or DirectGateway()

    def get_gateway() -> DatabaseGateway:
        return active_gateway

    @app.exception_handler(BrowserError)
    async def browser_error_handler(request: Request, error: BrowserError) -> JSONResponse:
        code = _status_for(error)
        log_warning(
            LOGGER,
            "api.request.failed",
            path=request.url.path,
            status=code,
            error_type=type(error).__name__,
        )
        return JSONResponse(status_code=code, content={"error": str(error)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, error: RequestValidationError) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(part) for part in issue.get('loc', ()))}: {issue.get('msg')}"
            for issue in error.errors()
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": details or "Invalid request"},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, error: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=error.status_code,
            content={"error": str(error.detail)},
            headers=getattr(error, "headers", None),
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/tables", response_model=TablesResponse)
    def list_tables_endpoint(
        payload: TablesRequest,
        active: Annotated[DatabaseGateway, Depends(get_gateway)],
    ) -> TablesResponse:
        if not payload.postgres_url:
            raise QueryValidationError("PostgreSQL URL is required")
        names = active.list_tables(payload.postgres_url)
        return TablesResponse(tables=[TableEntry(table_name=name) for name in names])

    @app.post("/api/table-data")
    def table_data_endpoint(
        payload: TableDataRequest,
        active: Annotated[DatabaseGateway, Depends(get_gateway)],
    ) -> dict[str, Any]:
        if not payload.postgres_url or not payload.table_name:
            raise QueryValidationError("PostgreSQL URL and table name are required")
        data = active.fetch_page(
            payload.postgres_url,
            payload.table_name,
            page=payload.page,
            limit=payload.limit,
            sort_column=payload.sort_column,
            sort_direction=payload.sort_direction,
            where_clause=payload.where_clause,
        )
        response = TableDataResponse(
            columns=data.columns,
            rows=encode_rows(data.rows),
            total_rows=data.total_rows,
            query=data.compiled_query_display or "",
        )
        return response.model_dump()

    @app.post("/api/update-cell", response_model=UpdateCellResponse)
    def update_cell_endpoint(
        payload: UpdateCellRequest,
        active: Annotated[DatabaseGateway, Depends(get_gateway)],
    ) -> UpdateCellResponse:
        if (
            not payload.postgres_url
            or not payload.table_name
            or payload.column_name is None
            or payload.row_index is None
            or "new_value" not in payload.model_fields_set
        ):
            raise QueryValidationError("All fields are required")
        active.update_cell(
            payload.postgres_url,
            payload.table_name,
            column=payload.column_name,
            row_index=payload.row_index,
            page=payload.page,
            limit=payload.limit,
            new_value=payload.new_value,
            sort_column=payload.sort_column,
            sort_direction=payload.sort_direction,
            where_clause=payload.where_clause,
        )
        return UpdateCellResponse(success=True)

    return app
