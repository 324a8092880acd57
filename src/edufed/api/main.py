"""
EduFed - Coordination API

FastAPI application exposing the federated training coordinator to the
e-learning dashboards:
- Current metrics and coordinator status
- Node registration, lookup and deactivation
- On-demand training rounds and round history
- Simulation start/stop controls
- Prometheus metrics

Accuracies are reported as 0-1 fractions everywhere.

OpenAPI documentation available at /docs (Swagger UI) and /redoc (ReDoc).
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from edufed import __version__
from edufed.config import CoordinatorConfig, load_coordinator_config
from edufed.federated import (
    FederatedCoordinator,
    InvalidArgument,
    Node,
    NotFound,
    RoundFailed,
    RoundMetrics,
    create_coordinator,
)
from edufed.monitoring import MetricsExporter

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Models for API
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status", examples=["healthy"])
    version: str = Field(..., description="API version", examples=["1.0.0"])
    timestamp: str = Field(..., description="Current timestamp in ISO format")


class MetricsResponse(BaseModel):
    """Round metrics snapshot."""

    round: int = Field(..., description="Completed round number")
    local_accuracy: float = Field(..., description="Mean participant accuracy (0-1)")
    global_accuracy: float = Field(..., description="Estimated global accuracy (0-1)")
    participating_nodes: int = Field(..., description="Nodes aggregated in the round")
    privacy_budget_remaining: float = Field(..., description="Remaining epsilon budget")
    training_time_seconds: float = Field(..., description="Round duration in seconds")
    timestamp: str = Field(..., description="Snapshot timestamp in ISO format")

    @classmethod
    def from_metrics(cls, metrics: RoundMetrics) -> "MetricsResponse":
        return cls(**metrics.to_dict())


class NodeResponse(BaseModel):
    """Node state."""

    node_id: str = Field(..., description="Node identifier")
    status: str = Field(..., description="idle, active, training or inactive")
    local_accuracy: float = Field(..., description="Local accuracy estimate (0-1)")
    data_weight: int = Field(..., description="Aggregation weight (local sample count)")
    last_update: str = Field(..., description="Last state change in ISO format")
    rounds_participated: int = Field(..., description="Rounds in which the node was aggregated")
    last_training_step: int = Field(..., description="Round of the last aggregated update")

    @classmethod
    def from_node(cls, node: Node) -> "NodeResponse":
        return cls(**node.to_dict())


class NodeRequest(BaseModel):
    """Request model for node registration."""

    node_id: str = Field(..., description="Node identifier", min_length=1, examples=["student-42"])
    data_weight: int | None = Field(
        default=None,
        description="Local sample count (random in [50, 200] if omitted)",
        gt=0,
    )


class TrainingRoundRequest(BaseModel):
    """Request model for an on-demand training round."""

    node_id: str | None = Field(
        default=None,
        description="Node guaranteed to participate (registered if unknown)",
        min_length=1,
    )


class SimulationResponse(BaseModel):
    """Simulation control response."""

    running: bool = Field(..., description="Whether the scheduler is running")
    changed: bool = Field(..., description="False if the call was a no-op")


# =============================================================================
# Application Factory
# =============================================================================


def _load_config() -> CoordinatorConfig:
    config_path = os.getenv("EDUFED_CONFIG")
    if config_path:
        return load_coordinator_config(config_path)
    return CoordinatorConfig()


def get_coordinator(request: Request) -> FederatedCoordinator:
    """Dependency returning the coordinator owned by the application."""
    coordinator: FederatedCoordinator = request.app.state.coordinator
    return coordinator


def create_app(
    coordinator: FederatedCoordinator | None = None,
    config: CoordinatorConfig | None = None,
) -> FastAPI:
    """
    Create the API application.

    Args:
        coordinator: Coordinator to serve (built from config if None)
        config: Configuration (read from EDUFED_CONFIG if None)

    Returns:
        FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifecycle manager."""
        logger.info("Starting EduFed coordination API...")
        app.state.coordinator = coordinator or create_coordinator(config or _load_config())
        app.state.exporter = MetricsExporter(federation=app.state.coordinator.config.name)

        yield

        logger.info("Shutting down EduFed coordination API...")
        app.state.coordinator.stop_simulation()

    app = FastAPI(
        title="EduFed Coordination API",
        description="""
## Federated Learning Coordinator for E-Learning Platforms

Coordinates privacy-preserving training rounds across student devices.

### Features

- **Metrics**: Current round, accuracy (0-1 fractions), privacy budget
- **Nodes**: Register, inspect and deactivate participants
- **Rounds**: Trigger a training round on demand, browse history
- **Simulation**: Start and stop periodic rounds
        """,
        version=__version__,
        openapi_tags=[
            {"name": "Health", "description": "Service health endpoints"},
            {"name": "Metrics", "description": "Round metrics and coordinator status"},
            {"name": "Nodes", "description": "Federated participants"},
            {"name": "Rounds", "description": "Training rounds"},
            {"name": "Simulation", "description": "Periodic round scheduling"},
        ],
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_routes(app)
    _register_error_handlers(app)
    return app


# =============================================================================
# Routes
# =============================================================================


def _register_routes(app: FastAPI) -> None:
    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Check if the service is healthy."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    @app.get(
        "/metrics",
        response_class=PlainTextResponse,
        tags=["Health"],
        summary="Prometheus metrics",
    )
    def prometheus_metrics(
        request: Request,
        coordinator: FederatedCoordinator = Depends(get_coordinator),
    ) -> str:
        """Return Prometheus metrics."""
        exporter: MetricsExporter = request.app.state.exporter
        exporter.record_round(coordinator.get_current_metrics())
        exporter.set_node_counts(coordinator.registry.count_by_status())
        return exporter.export()

    @app.get(
        "/api/v1/fl/metrics",
        response_model=MetricsResponse,
        tags=["Metrics"],
        summary="Current round metrics",
    )
    def get_metrics(
        coordinator: FederatedCoordinator = Depends(get_coordinator),
    ) -> MetricsResponse:
        """Latest published metrics; never blocks on a round in progress."""
        return MetricsResponse.from_metrics(coordinator.get_current_metrics())

    @app.get(
        "/api/v1/fl/status",
        tags=["Metrics"],
        summary="Coordinator status",
    )
    def get_status(
        coordinator: FederatedCoordinator = Depends(get_coordinator),
    ) -> dict[str, Any]:
        return coordinator.get_status()

    @app.get(
        "/api/v1/fl/nodes",
        response_model=list[NodeResponse],
        tags=["Nodes"],
        summary="List nodes",
    )
    def list_nodes(
        coordinator: FederatedCoordinator = Depends(get_coordinator),
    ) -> list[NodeResponse]:
        return [NodeResponse.from_node(node) for node in coordinator.get_nodes()]

    @app.post(
        "/api/v1/fl/nodes",
        response_model=NodeResponse,
        tags=["Nodes"],
        summary="Register node",
        description="Registers a node if absent; an existing node is returned unchanged.",
    )
    def register_node(
        request: NodeRequest,
        coordinator: FederatedCoordinator = Depends(get_coordinator),
    ) -> NodeResponse:
        node = coordinator.register_node(request.node_id, request.data_weight)
        return NodeResponse.from_node(node)

    @app.get(
        "/api/v1/fl/nodes/{node_id}",
        response_model=NodeResponse,
        tags=["Nodes"],
        summary="Get node",
    )
    def get_node(
        node_id: str,
        coordinator: FederatedCoordinator = Depends(get_coordinator),
    ) -> NodeResponse:
        return NodeResponse.from_node(coordinator.get_node(node_id))

    @app.post(
        "/api/v1/fl/nodes/{node_id}/deactivate",
        response_model=NodeResponse,
        tags=["Nodes"],
        summary="Deactivate node",
    )
    def deactivate_node(
        node_id: str,
        coordinator: FederatedCoordinator = Depends(get_coordinator),
    ) -> NodeResponse:
        return NodeResponse.from_node(coordinator.deactivate_node(node_id))

    @app.post(
        "/api/v1/fl/rounds",
        response_model=MetricsResponse,
        tags=["Rounds"],
        summary="Run training round",
        description="Runs one round now. A supplied node_id is guaranteed to participate.",
    )
    def run_training_round(
        request: TrainingRoundRequest | None = None,
        coordinator: FederatedCoordinator = Depends(get_coordinator),
    ) -> MetricsResponse:
        node_id = request.node_id if request else None
        return MetricsResponse.from_metrics(coordinator.run_training_round(node_id))

    @app.get(
        "/api/v1/fl/rounds",
        response_model=list[MetricsResponse],
        tags=["Rounds"],
        summary="Round history",
    )
    def round_history(
        limit: int = 100,
        coordinator: FederatedCoordinator = Depends(get_coordinator),
    ) -> list[MetricsResponse]:
        return [MetricsResponse.from_metrics(m) for m in coordinator.get_round_history(limit)]

    @app.post(
        "/api/v1/fl/simulation/start",
        response_model=SimulationResponse,
        tags=["Simulation"],
        summary="Start periodic rounds",
    )
    def start_simulation(
        coordinator: FederatedCoordinator = Depends(get_coordinator),
    ) -> SimulationResponse:
        changed = coordinator.start_simulation()
        return SimulationResponse(running=coordinator.is_running, changed=changed)

    @app.post(
        "/api/v1/fl/simulation/stop",
        response_model=SimulationResponse,
        tags=["Simulation"],
        summary="Stop periodic rounds",
    )
    def stop_simulation(
        coordinator: FederatedCoordinator = Depends(get_coordinator),
    ) -> SimulationResponse:
        changed = coordinator.stop_simulation()
        return SimulationResponse(running=coordinator.is_running, changed=changed)


# =============================================================================
# Error Handlers
# =============================================================================


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc), **exc.details},
        )

    @app.exception_handler(InvalidArgument)
    async def invalid_argument_handler(request: Request, exc: InvalidArgument) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc)},
        )

    @app.exception_handler(RoundFailed)
    async def round_failed_handler(request: Request, exc: RoundFailed) -> JSONResponse:
        # Dashboards keep showing the last good metrics
        logger.error(f"Training round failed: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": str(exc), "round": exc.round_number},
        )


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================


def main() -> None:
    """Run the API server."""
    import uvicorn

    port = int(os.getenv("PORT", "8080"))
    host = os.getenv("HOST", "0.0.0.0")  # nosec B104 - Intentional for container deployment

    uvicorn.run(
        "edufed.api.main:app",
        host=host,
        port=port,
        reload=os.getenv("ENVIRONMENT") == "development",
    )


if __name__ == "__main__":
    main()
