"""
FastAPI application for the Taiga query engine.

Provides endpoints for:
- Running advanced queries against a project
- Validating query syntax and reporting query statistics
- Query language help
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional, Union

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from .client import TaigaClient
from .config import Settings, load_settings
from .exceptions import QueryExecutionError, QuerySyntaxError
from .help import get_query_help
from .service import QueryService


EntityTypeName = Literal['issues', 'user_stories', 'tasks']


# Pydantic models for API requests/responses


class SearchRequest(BaseModel):
    """Request to run a query."""
    project: Union[int, str] = Field(..., description="Project id or slug")
    query: str = Field(..., description="Query string")
    type: EntityTypeName = Field("issues", description="Entity type to search")


class SearchResponse(BaseModel):
    """Response from the search endpoint."""
    query: str
    type: EntityTypeName
    results: List[Dict[str, Any]]
    grouped: bool
    total: int
    total_fetched: int
    total_matched: int
    execution_time_ms: float
    executed_at: str


class ValidateRequest(BaseModel):
    """Request to validate a query."""
    query: str = Field(..., description="Query string")
    type: EntityTypeName = Field("issues", description="Entity type to validate against")


class FilterModel(BaseModel):
    field: str
    operator: str
    value: Any = None


class OrderByModel(BaseModel):
    field: str
    direction: str


class StatsModel(BaseModel):
    """Query statistics."""
    filter_count: int
    logic: str
    has_order_by: bool
    has_limit: bool
    has_group_by: bool
    complexity: float
    fields: List[str] = Field(default_factory=list)
    operators: Dict[str, int] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    exceeds_max_complexity: bool = False


class ValidateResponse(BaseModel):
    """Response from the validate endpoint."""
    valid: bool
    type: EntityTypeName
    logic: str
    filters: List[FilterModel]
    order_by: Optional[OrderByModel] = None
    limit: Optional[int] = None
    group_by: Optional[str] = None
    stats: StatsModel


class HelpResponse(BaseModel):
    topic: Optional[str] = None
    content: str


def syntax_error_detail(error: QuerySyntaxError) -> Dict[str, Any]:
    """Build the 400 response body for a query syntax error."""
    return {
        "error_code": error.error_code,
        "message": error.message,
        "fragment": error.fragment,
        "position": error.position,
    }


def create_app(
    service: Optional[QueryService] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Optional QueryService (tests pass one over an in-memory source)
        settings: Optional settings; loaded from the environment if omitted

    Returns:
        Configured FastAPI app
    """
    owned_client: Optional[TaigaClient] = None
    if service is None:
        settings = settings or load_settings()
        owned_client = TaigaClient(settings)
        service = QueryService(owned_client, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Injected services own their sources; only close the client built here
        if owned_client is not None:
            await owned_client.aclose()

    app = FastAPI(
        title="Taiga Query API",
        description="REST API for advanced queries over Taiga issues, user stories and tasks",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.service = service

    # API Routes

    @app.post("/api/search", response_model=SearchResponse)
    async def search(request: SearchRequest) -> SearchResponse:
        """Run a query against a project.

        Raises:
            HTTPException: 400 for invalid queries, 502 for execution failures
        """
        try:
            service.validate(request.query, request.type)
            project_id = await service.resolve_project(request.project)
            result = await service.search(project_id, request.query, request.type)
        except QuerySyntaxError as e:
            raise HTTPException(status_code=400, detail=syntax_error_detail(e))
        except QueryExecutionError as e:
            raise HTTPException(status_code=502, detail=str(e))

        data = result.to_dict()
        return SearchResponse(
            query=request.query,
            type=request.type,
            results=data["results"],
            grouped=data["grouped"],
            total=data["total"],
            total_fetched=data["total_fetched"],
            total_matched=data["total_matched"],
            execution_time_ms=data["execution_time_ms"],
            executed_at=data["executed_at"],
        )

    @app.post("/api/validate", response_model=ValidateResponse)
    async def validate(request: ValidateRequest) -> ValidateResponse:
        """Validate a query and report its parsed form and statistics."""
        try:
            spec = service.validate(request.query, request.type)
        except QuerySyntaxError as e:
            raise HTTPException(status_code=400, detail=syntax_error_detail(e))

        data = spec.to_dict()
        return ValidateResponse(
            valid=True,
            type=request.type,
            logic=data["logic"],
            filters=[FilterModel(**clause) for clause in data["filters"]],
            order_by=OrderByModel(**data["order_by"]) if data["order_by"] else None,
            limit=data["limit"],
            group_by=data["group_by"],
            stats=StatsModel(**service.stats(spec).to_dict()),
        )

    @app.get("/api/help", response_model=HelpResponse)
    async def query_help(topic: Optional[str] = Query(None)) -> HelpResponse:
        """Return query language help."""
        try:
            content = get_query_help(topic)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return HelpResponse(topic=topic, content=content)

    @app.get("/health")
    async def health_check() -> Dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app
