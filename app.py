"""
RagWeave FastAPI Application

REST API for datasets, documents, chunks, indexing tasks, retrieval and
agent memories. Every response is an envelope: {"code": 0, "data": ...} on
success, {"code": <error code>, "message": "..."} on failure.
"""

from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import quote

from fastapi import APIRouter, Depends, FastAPI, File, Header, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from ragweave import __version__
from ragweave.config import Config
from ragweave.models import (
    Caller,
    Chunk,
    ChunkCreate,
    ChunkUpdate,
    DatasetCreate,
    DatasetUpdate,
    DocumentUpdate,
    IndexingTask,
    MemorySearchRequest,
    MemorySpaceCreate,
    MemorySpaceUpdate,
    MemoryType,
    MemoryUnit,
    MemoryUnitUpdate,
    MessageCreate,
    RetrievalRequest,
    TaskStatus,
    UnitStatus,
)
from ragweave.services.container import ServiceContainer
from ragweave.utils.exceptions import ErrorCode, RagWeaveError, ValidationError
from ragweave.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


# Request bodies not covered by the service models
class IdsRequest(BaseModel):
    ids: list[str] | None = Field(default=None, description="IDs to delete; all when omitted")


class DocumentIdsRequest(BaseModel):
    document_ids: list[str] = Field(default_factory=list)


class ChunkIdsRequest(BaseModel):
    chunk_ids: list[str] | None = Field(default=None, description="Chunk IDs; all when omitted")


def ok(data: Any = None, **extra: Any) -> dict:
    return {"code": ErrorCode.SUCCESS.value, "data": data, **extra}


def error(code: int, message: str) -> JSONResponse:
    return JSONResponse(content={"code": int(code), "message": message})


def _dump(model: BaseModel | None, **kwargs) -> dict | None:
    return model.model_dump(mode="json", **kwargs) if model is not None else None


def _chunk(chunk: Chunk) -> dict:
    return chunk.model_dump(mode="json", exclude={"embedding"})


def _unit(unit: MemoryUnit) -> dict:
    return unit.model_dump(mode="json", exclude={"embedding"})


def _task(task: IndexingTask | None) -> dict:
    return _dump(task) or {}


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_caller(
    x_tenant_id: str | None = Header(default=None),
    x_team_ids: str | None = Header(default=None),
) -> Caller:
    """Caller identity from the X-Tenant-ID / X-Team-IDs headers."""
    if not x_tenant_id or not x_tenant_id.strip():
        raise ValidationError("X-Tenant-ID header is required")
    team_ids = [t.strip() for t in (x_team_ids or "").split(",") if t.strip()]
    return Caller(tenant_id=x_tenant_id.strip(), team_ids=team_ids)


router = APIRouter(prefix="/api/v1")


# ═══════════════════════════════════════════════════════════
# DATASETS
# ═══════════════════════════════════════════════════════════


@router.post("/datasets")
async def create_dataset(
    request: DatasetCreate,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    dataset = await services.knowledge_base.create_dataset(caller, request)
    return ok(_dump(dataset))


@router.get("/datasets")
async def list_datasets(
    name: str | None = None,
    id: str | None = None,
    page: int = 1,
    page_size: int = 30,
    orderby: str = "create_time",
    desc: bool = True,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    datasets, total = await services.knowledge_base.list_datasets(
        caller, name=name, dataset_id=id, page=page, page_size=page_size, orderby=orderby, desc=desc
    )
    return ok([_dump(d) for d in datasets], total=total)


@router.delete("/datasets")
async def delete_datasets(
    request: IdsRequest,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    deleted = await services.knowledge_base.delete_datasets(caller, request.ids or [])
    return ok({"deleted": deleted})


@router.get("/datasets/{dataset_id}")
async def get_dataset(
    dataset_id: str,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    return ok(_dump(await services.knowledge_base.get_dataset(caller, dataset_id)))


@router.put("/datasets/{dataset_id}")
async def update_dataset(
    dataset_id: str,
    request: DatasetUpdate,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    dataset = await services.knowledge_base.update_dataset(caller, dataset_id, request)
    return ok(_dump(dataset))


# ═══════════════════════════════════════════════════════════
# DOCUMENTS
# ═══════════════════════════════════════════════════════════


@router.post("/datasets/{dataset_id}/documents")
async def upload_documents(
    dataset_id: str,
    file: list[UploadFile] = File(...),
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    documents = []
    for upload in file:
        data = await upload.read()
        document = await services.knowledge_base.upload_document(
            caller, dataset_id, upload.filename or "", data
        )
        documents.append(_dump(document))
    return ok(documents)


@router.get("/datasets/{dataset_id}/documents")
async def list_documents(
    dataset_id: str,
    keywords: str | None = None,
    id: str | None = None,
    run: list[TaskStatus] | None = Query(default=None),
    page: int = 1,
    page_size: int = 30,
    orderby: str = "create_time",
    desc: bool = True,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    documents, total = await services.knowledge_base.list_documents(
        caller,
        dataset_id,
        name=keywords,
        run=run,
        document_id=id,
        page=page,
        page_size=page_size,
        orderby=orderby,
        desc=desc,
    )
    return ok([_dump(d) for d in documents], total=total)


@router.delete("/datasets/{dataset_id}/documents")
async def delete_documents(
    dataset_id: str,
    request: IdsRequest,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    deleted = await services.knowledge_base.delete_documents(caller, dataset_id, request.ids)
    return ok({"deleted": deleted})


@router.get("/datasets/{dataset_id}/documents/{document_id}")
async def download_document(
    dataset_id: str,
    document_id: str,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    document, data = await services.knowledge_base.download_document(caller, dataset_id, document_id)
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(document.name)}"},
    )


@router.put("/datasets/{dataset_id}/documents/{document_id}")
async def update_document(
    dataset_id: str,
    document_id: str,
    request: DocumentUpdate,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    document = await services.knowledge_base.update_document(caller, dataset_id, document_id, request)
    return ok(_dump(document))


# ═══════════════════════════════════════════════════════════
# PARSING AND CHUNKS
# ═══════════════════════════════════════════════════════════


@router.post("/datasets/{dataset_id}/chunks")
async def parse_documents(
    dataset_id: str,
    request: DocumentIdsRequest,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    tasks = await services.knowledge_base.parse_documents(caller, dataset_id, request.document_ids)
    return ok([_task(t) for t in tasks])


@router.delete("/datasets/{dataset_id}/chunks")
async def stop_parsing(
    dataset_id: str,
    request: DocumentIdsRequest,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    stopped = await services.knowledge_base.stop_parsing(caller, dataset_id, request.document_ids)
    return ok({"stopped": stopped})


@router.get("/datasets/{dataset_id}/documents/{document_id}/chunks")
async def list_chunks(
    dataset_id: str,
    document_id: str,
    keywords: str | None = None,
    page: int = 1,
    page_size: int = 30,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    document, chunks, total = await services.knowledge_base.list_chunks(
        caller, dataset_id, document_id, keywords=keywords, page=page, page_size=page_size
    )
    return ok({"doc": _dump(document), "chunks": [_chunk(c) for c in chunks], "total": total})


@router.post("/datasets/{dataset_id}/documents/{document_id}/chunks")
async def add_chunk(
    dataset_id: str,
    document_id: str,
    request: ChunkCreate,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    chunk = await services.knowledge_base.add_chunk(caller, dataset_id, document_id, request)
    return ok(_chunk(chunk))


@router.delete("/datasets/{dataset_id}/documents/{document_id}/chunks")
async def delete_chunks(
    dataset_id: str,
    document_id: str,
    request: ChunkIdsRequest,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    deleted = await services.knowledge_base.delete_chunks(
        caller, dataset_id, document_id, request.chunk_ids
    )
    return ok({"deleted": deleted})


@router.put("/datasets/{dataset_id}/documents/{document_id}/chunks/{chunk_id}")
async def update_chunk(
    dataset_id: str,
    document_id: str,
    chunk_id: str,
    request: ChunkUpdate,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    chunk = await services.knowledge_base.update_chunk(
        caller, dataset_id, document_id, chunk_id, request
    )
    return ok(_chunk(chunk))


# ═══════════════════════════════════════════════════════════
# KNOWLEDGE GRAPH, RAPTOR AND TASKS
# ═══════════════════════════════════════════════════════════


@router.post("/datasets/{dataset_id}/run_graphrag")
async def run_graphrag(
    dataset_id: str,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    task = await services.knowledge_base.run_graphrag(caller, dataset_id)
    return ok({"graphrag_task_id": task.id})


@router.get("/datasets/{dataset_id}/trace_graphrag")
async def trace_graphrag(
    dataset_id: str,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    return ok(_task(await services.knowledge_base.trace_graphrag(caller, dataset_id)))


@router.get("/datasets/{dataset_id}/knowledge_graph")
async def get_knowledge_graph(
    dataset_id: str,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    graph = await services.knowledge_base.get_knowledge_graph(caller, dataset_id)
    return ok({"graph": graph.to_payload()})


@router.delete("/datasets/{dataset_id}/knowledge_graph")
async def delete_knowledge_graph(
    dataset_id: str,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    return ok(await services.knowledge_base.delete_knowledge_graph(caller, dataset_id))


@router.post("/datasets/{dataset_id}/run_raptor")
async def run_raptor(
    dataset_id: str,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    task = await services.knowledge_base.run_raptor(caller, dataset_id)
    return ok({"raptor_task_id": task.id})


@router.get("/datasets/{dataset_id}/trace_raptor")
async def trace_raptor(
    dataset_id: str,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    return ok(_task(await services.knowledge_base.trace_raptor(caller, dataset_id)))


@router.get("/tasks/{task_id}")
async def get_task(
    task_id: str,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    return ok(_task(await services.knowledge_base.get_task(caller, task_id)))


# ═══════════════════════════════════════════════════════════
# RETRIEVAL
# ═══════════════════════════════════════════════════════════


@router.post("/retrieval")
async def retrieval(
    request: RetrievalRequest,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    """
    Rank chunks of the given datasets / documents for a question.

    Combined score = w * vector similarity + (1 - w) * term similarity, plus
    keyword, TOC and dataset pagerank bonuses. Chunks found through the
    knowledge graph (`use_kg`) are ranked after direct hits.
    """
    result = await services.retrieval.retrieve(request, caller)
    return ok(_dump(result))


# ═══════════════════════════════════════════════════════════
# MEMORIES
# ═══════════════════════════════════════════════════════════


@router.post("/memories")
async def create_memory(
    request: MemorySpaceCreate,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    return ok(_dump(await services.memory.create_space(caller, request)))


@router.get("/memories")
async def list_memories(
    page: int = 1,
    page_size: int = 30,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    spaces, total = await services.memory.list_spaces(caller, page=page, page_size=page_size)
    return ok([_dump(s) for s in spaces], total=total)


@router.get("/memories/{memory_id}")
async def get_memory(
    memory_id: str,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    return ok(_dump(await services.memory.get_space(caller, memory_id)))


@router.put("/memories/{memory_id}")
async def update_memory(
    memory_id: str,
    request: MemorySpaceUpdate,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    return ok(_dump(await services.memory.update_space(caller, memory_id, request)))


@router.delete("/memories/{memory_id}")
async def delete_memory(
    memory_id: str,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    return ok(await services.memory.delete_space(caller, memory_id))


@router.post("/memories/{memory_id}/messages")
async def add_message(
    memory_id: str,
    request: MessageCreate,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    """Store a message; derived memories are extracted in the background."""
    return ok(_unit(await services.memory.add_message(caller, memory_id, request)))


@router.post("/memories/{memory_id}/search")
async def search_memory(
    memory_id: str,
    request: MemorySearchRequest,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    hits = await services.memory.search(caller, memory_id, request)
    return ok([{"unit": _unit(hit.unit), "similarity": hit.similarity} for hit in hits])


@router.get("/memories/{memory_id}/units")
async def list_memory_units(
    memory_id: str,
    memory_type: list[MemoryType] | None = Query(default=None),
    status: UnitStatus | None = None,
    agent_id: str | None = None,
    session_id: str | None = None,
    page: int = 1,
    page_size: int = 30,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    units, total = await services.memory.list_units(
        caller,
        memory_id,
        memory_types=memory_type,
        status=status,
        agent_id=agent_id,
        session_id=session_id,
        page=page,
        page_size=page_size,
    )
    return ok([_unit(u) for u in units], total=total)


@router.get("/memories/{memory_id}/units/{unit_id}")
async def get_memory_unit(
    memory_id: str,
    unit_id: str,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    return ok(_unit(await services.memory.get_unit(caller, memory_id, unit_id)))


@router.put("/memories/{memory_id}/units/{unit_id}")
async def update_memory_unit(
    memory_id: str,
    unit_id: str,
    request: MemoryUnitUpdate,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    unit = await services.memory.update_unit(caller, memory_id, unit_id, request)
    return ok(_unit(unit))


@router.delete("/memories/{memory_id}/units/{unit_id}")
async def forget_memory_unit(
    memory_id: str,
    unit_id: str,
    caller: Caller = Depends(get_caller),
    services: ServiceContainer = Depends(get_container),
):
    return ok(await services.memory.forget_unit(caller, memory_id, unit_id))


# ═══════════════════════════════════════════════════════════
# APPLICATION
# ═══════════════════════════════════════════════════════════


def create_app(config: Config | None = None, container: ServiceContainer | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Configuration; loaded from env / YAML at startup when omitted
        container: Optional pre-built services (initialized on startup)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup/shutdown."""
        services = container
        if services is None:
            loaded = config or Config.from_env_or_yaml("config.yaml")
            setup_logging(loaded.logging)
            logger.info(
                f"Configuration: LLM={loaded.llm.provider}/{loaded.llm.model}, "
                f"Embedder={loaded.embedder.reference}, Workers={loaded.tasks.num_workers}"
            )
            services = ServiceContainer(loaded)

        await services.initialize()
        app.state.container = services
        logger.info("RagWeave server started")

        yield

        logger.info("Shutting down RagWeave server")
        await services.close()
        logger.info("Cleanup complete")

    app = FastAPI(
        title="RagWeave API",
        description="Document indexing, hybrid retrieval and agent memory",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RagWeaveError)
    async def ragweave_error_handler(request: Request, exc: RagWeaveError):
        if exc.code == ErrorCode.SERVER_ERROR:
            logger.error(
                f"Error handling {request.method} {request.url.path}: {exc.message}",
                extra={"error_type": type(exc).__name__, **exc.context},
            )
        return error(exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return error(ErrorCode.ARGUMENT_ERROR, details or "Invalid request")

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unexpected error on {request.method} {request.url.path}: {exc}")
        return error(ErrorCode.SERVER_ERROR, str(exc))

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        services: ServiceContainer | None = getattr(request.app.state, "container", None)
        return ok(
            {
                "status": "healthy" if services else "initializing",
                "scheduler_running": bool(services and services.scheduler.running),
                "embedding_model": services.config.embedder.reference if services else None,
                "version": __version__,
            }
        )

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=9380, reload=True, log_level="info")
