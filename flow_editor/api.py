"""FastAPI tooling service for flow documents.

Stateless wrappers around the core so non-Python tools can use it:

  GET  /health
  POST /api/v1/validate       both validator passes, never fails the request
  POST /api/v1/presentation   document → canvas graph (validated first)
  POST /api/v1/document       canvas graph → document (validated after)
  POST /api/v1/compile        document → Python scaffold, 422 on refusal

FLOW_EDITOR_SERVICE_KEY, when set, requires 'Authorization: Bearer <key>'.
"""

import logging
import os
from typing import Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from flow_editor.codegen import compile_flow
from flow_editor.graph import (
    CompileRefusal,
    FlowEditorError,
    PresentationGraph,
    export_document,
    find_dangling_references,
    import_document,
    to_document,
    validate_graph,
    validate_presentation_structure,
    validate_structure,
)

load_dotenv()

logger = logging.getLogger("flow_editor.api")

# ---------------------------------------------------------------------------
# API key authentication (enabled when FLOW_EDITOR_SERVICE_KEY is set)
# ---------------------------------------------------------------------------

_bearer = HTTPBearer(auto_error=False)


def _verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> None:
    """Open access when FLOW_EDITOR_SERVICE_KEY is unset; Bearer check otherwise."""
    api_key = os.getenv("FLOW_EDITOR_SERVICE_KEY")
    if not api_key:
        return
    if not credentials or credentials.credentials != api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class DocumentRequest(BaseModel):
    """Request body carrying a flow document."""

    document: dict[str, Any] = Field(
        ...,
        description="FlowDocument JSON: meta, nodes, optional edges/global_functions/context.",
    )


class GraphRequest(BaseModel):
    """Request body carrying a canvas graph."""

    graph: dict[str, Any] = Field(
        ...,
        description="PresentationGraph JSON as returned by /api/v1/presentation.",
    )


class ValidationIssueModel(BaseModel):
    path: str
    message: str


class ValidateResponse(BaseModel):
    valid: bool
    structural_errors: list[ValidationIssueModel] = Field(default_factory=list)
    graph_errors: list[str] = Field(default_factory=list)


class CompileResponse(BaseModel):
    source: str


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

_rate_limit = os.getenv("FLOW_EDITOR_RATE_LIMIT_PER_MIN", "60")
limiter = Limiter(key_func=get_remote_address)

app = FastAPI(
    title="Flow Editor API",
    description=(
        "Validation, canvas conversion and code generation for "
        "conversational-agent flow documents."
    ),
    version="0.1.0",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

_CORS_ORIGINS: list[str] = [
    o.strip()
    for o in os.environ.get("CORS_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _refusal(e: FlowEditorError) -> HTTPException:
    return HTTPException(status_code=422, detail={"errors": e.errors})


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health", tags=["system"])
async def health() -> dict:
    return {"api": "ok"}


@app.post("/api/v1/validate", response_model=ValidateResponse, tags=["flows"],
          dependencies=[Depends(_verify_api_key)])
async def validate(body: DocumentRequest) -> ValidateResponse:
    """Run both passes. The graph pass is skipped when the structure is invalid."""
    structure = validate_structure(body.document)
    if not structure.valid:
        return ValidateResponse(
            valid=False,
            structural_errors=[
                ValidationIssueModel(path=e.path, message=e.message) for e in structure.errors
            ],
        )
    issues = validate_graph(body.document)
    return ValidateResponse(valid=not issues, graph_errors=[i.message for i in issues])


@app.post("/api/v1/presentation", tags=["flows"], dependencies=[Depends(_verify_api_key)])
async def presentation(body: DocumentRequest) -> dict:
    """Canvas graph for a document, plus inline dangling-reference warnings."""
    try:
        graph = import_document(body.document)
    except FlowEditorError as e:
        raise _refusal(e)
    warnings = find_dangling_references(graph.nodes)
    return {
        "graph": graph.to_dict(),
        "warnings": [
            {"node_id": w.node_id, "function_name": w.function_name,
             "field": w.field, "target": w.target, "message": str(w)}
            for w in warnings
        ],
    }


@app.post("/api/v1/document", tags=["flows"], dependencies=[Depends(_verify_api_key)])
async def document(body: GraphRequest, strict: bool = True) -> dict:
    """Document for a canvas graph. ``strict=false`` skips the graph gates.

    The canvas shape is checked in both modes; a malformed graph is a 422.
    """
    shape = validate_presentation_structure(body.graph)
    if not shape.valid:
        raise HTTPException(status_code=422, detail={"errors": [str(e) for e in shape.errors]})
    graph = PresentationGraph.from_dict(body.graph)
    if not strict:
        return {"document": to_document(graph).to_dict()}
    try:
        doc = export_document(graph)
    except FlowEditorError as e:
        raise _refusal(e)
    return {"document": doc.to_dict()}


@app.post("/api/v1/compile", response_model=CompileResponse, tags=["flows"],
          dependencies=[Depends(_verify_api_key)])
@limiter.limit(f"{_rate_limit}/minute")
async def compile_document(request: Request, body: DocumentRequest) -> CompileResponse:
    """Generate the Python scaffold; 422 with the first error on refusal."""
    try:
        source = compile_flow(body.document)
    except CompileRefusal as e:
        logger.info("Compile refused: %s", e.first_error)
        raise HTTPException(
            status_code=422,
            detail={"error": e.first_error, "errors": e.errors},
        )
    return CompileResponse(source=source)


# ---------------------------------------------------------------------------
# Entry point (for uvicorn programmatic launch)
# ---------------------------------------------------------------------------


def serve(host: str = "127.0.0.1", port: int = 8000, reload: bool = False) -> None:
    """Launch the FastAPI server via uvicorn."""
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        "flow_editor.api:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    serve()
