"""
Workflow Runner API Server

FastAPI server for validating, generating, storing and running browser
workflows over HTTP, so n8n, other LLMs or any HTTP client can drive the
browser.

Usage:
    python -m uvicorn api_server:app --host 0.0.0.0 --port 8080
"""

import asyncio
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

import workflow_config
from intent_parser import parse_intent
from playwright_target import open_tab
from workflow_errors import IntentParseError, WorkflowError, WorkflowLoadError
from workflow_executor import WorkflowExecutor
from workflow_loader import dump_workflow, lint_workflow, load_workflow, parse_workflow, validate_document
from workflow_models import Workflow

app = FastAPI(
    title="Workflow Runner API",
    description="HTTP API for running declarative browser workflows",
    version="1.0.0",
)

# --- Configuration ---

WORKFLOWS_DIR = Path(workflow_config.WORKFLOWS_DIR)
MAX_LLM_TIMEOUT = 600  # 10 minutes

# --- In-memory storage ---

workflow_runs: dict[str, dict] = {}
_run_tasks: dict[str, asyncio.Task] = {}


# --- Request/Response models ---


class ValidateRequest(BaseModel):
    document: dict[str, Any]


class ValidationIssue(BaseModel):
    path: str
    message: str


class ValidateResponse(BaseModel):
    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ParseRequest(BaseModel):
    prompt: str
    timeout: int = Field(default=workflow_config.LLM_TIMEOUT, le=MAX_LLM_TIMEOUT)


class WorkflowCreate(BaseModel):
    name: str
    document: dict[str, Any]


class RunRequest(BaseModel):
    document: Optional[dict[str, Any]] = None
    workflow_path: Optional[str] = None
    prompt: Optional[str] = None
    start_url: Optional[str] = None
    headless: bool = True
    wait: bool = False  # block until the run finishes


# --- Helpers ---


def _resolve_workflow_path(path: str) -> Path:
    file_path = WORKFLOWS_DIR / path
    if not file_path.resolve().is_relative_to(WORKFLOWS_DIR.resolve()):
        raise HTTPException(status_code=400, detail="Invalid path")
    return file_path


def _load_document(document: dict[str, Any]) -> Workflow:
    try:
        return parse_workflow(document)
    except WorkflowLoadError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _run_summary(run: dict, tail: Optional[int] = None) -> dict:
    summary = {k: v for k, v in run.items() if k != "log_lines"}
    summary["log_count"] = len(run["log_lines"])
    if tail is not None:
        summary["log_tail"] = run["log_lines"][-tail:] if tail > 0 else []
    return summary


async def _run_workflow(run_id: str, workflow: Workflow, start_url: Optional[str], headless: bool):
    """Background coroutine: runs the workflow in a fresh browser tab."""
    run = workflow_runs[run_id]
    executor = WorkflowExecutor()

    try:
        async with open_tab(headless=headless, start_url=start_url) as tab:
            run["target_id"] = tab.target_id
            await executor.execute(tab, workflow)
        run["status"] = "completed"
    except WorkflowError as e:
        run["status"] = "failed"
        run["error"] = str(e)
        run["failed_step"] = e.path
    except Exception as e:
        run["status"] = "failed"
        run["error"] = f"Runner error: {e}"
    finally:
        run["log_lines"] = executor.log_lines
        run["finished_at"] = datetime.now(timezone.utc).isoformat()
        _run_tasks.pop(run_id, None)


# --- Endpoints ---


@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post("/api/workflows/validate", response_model=ValidateResponse)
async def validate_workflow(req: ValidateRequest):
    """Check a workflow document against the schema and lint it."""
    errors = validate_document(req.document)
    if errors:
        return ValidateResponse(
            valid=False,
            errors=[ValidationIssue(path=p, message=m) for p, m in errors],
        )
    try:
        workflow = parse_workflow(req.document)
    except WorkflowLoadError as e:
        return ValidateResponse(
            valid=False,
            errors=[ValidationIssue(path=p, message=m) for p, m in e.errors],
        )
    return ValidateResponse(valid=True, warnings=lint_workflow(workflow))


@app.post("/api/workflows/parse")
async def parse_prompt(req: ParseRequest):
    """Turn a natural-language prompt into a workflow document."""
    try:
        workflow = await parse_intent(req.prompt, timeout=req.timeout)
    except IntentParseError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"document": workflow.to_document(), "warnings": lint_workflow(workflow)}


# --- Workflow CRUD ---


@app.get("/api/workflows")
async def list_workflows():
    """List all saved workflows."""
    workflows = []
    if not WORKFLOWS_DIR.exists():
        return workflows
    for path in sorted(WORKFLOWS_DIR.rglob("*.yaml")):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError):
            continue
        if not isinstance(data, dict):
            continue
        workflows.append({
            "name": data.get("name") or path.stem,
            "path": str(path.relative_to(WORKFLOWS_DIR)),
            "description": data.get("description", ""),
            "step_count": len(data.get("steps") or []),
        })
    return workflows


@app.get("/api/workflows/{path:path}")
async def get_workflow(path: str):
    """Get full workflow content."""
    file_path = _resolve_workflow_path(path)
    if not file_path.exists():
        raise HTTPException(status_code=404, detail="Workflow not found")
    with open(file_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return {"path": path, "content": data}


@app.post("/api/workflows")
async def create_workflow(req: WorkflowCreate):
    """Validate and save a workflow document."""
    workflow = _load_document(req.document)

    safe_name = req.name.replace("/", "_").replace("..", "_")
    file_path = WORKFLOWS_DIR / f"{safe_name}.yaml"
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(dump_workflow(workflow), encoding="utf-8")

    return {"status": "created", "path": str(file_path.relative_to(WORKFLOWS_DIR))}


@app.delete("/api/workflows/{path:path}")
async def delete_workflow(path: str):
    """Delete a saved workflow."""
    file_path = _resolve_workflow_path(path)
    if not file_path.exists():
        raise HTTPException(status_code=404, detail="Workflow not found")
    file_path.unlink()
    return {"status": "deleted", "path": path}


# --- Run Management ---


@app.post("/api/runs")
async def start_run(req: RunRequest):
    """Start a workflow run from a document, a saved workflow or a prompt."""
    sources = [s for s in (req.document, req.workflow_path, req.prompt) if s is not None]
    if len(sources) != 1:
        raise HTTPException(
            status_code=400,
            detail="Provide exactly one of 'document', 'workflow_path' or 'prompt'",
        )

    if req.document is not None:
        workflow = _load_document(req.document)
    elif req.workflow_path is not None:
        file_path = _resolve_workflow_path(req.workflow_path)
        if not file_path.exists():
            raise HTTPException(status_code=404, detail="Workflow not found")
        try:
            workflow = load_workflow(str(file_path))
        except WorkflowLoadError as e:
            raise HTTPException(status_code=422, detail=str(e))
    else:
        try:
            workflow = await parse_intent(req.prompt)
        except IntentParseError as e:
            raise HTTPException(status_code=422, detail=str(e))

    run_id = str(uuid.uuid4())[:8]
    workflow_runs[run_id] = {
        "run_id": run_id,
        "workflow_name": workflow.name,
        "status": "running",
        "started_at": datetime.now(timezone.utc).isoformat(),
        "finished_at": None,
        "target_id": None,
        "error": None,
        "failed_step": None,
        "log_lines": [],
    }

    if req.wait:
        await _run_workflow(run_id, workflow, req.start_url, req.headless)
        return _run_summary(workflow_runs[run_id], tail=50)

    _run_tasks[run_id] = asyncio.create_task(
        _run_workflow(run_id, workflow, req.start_url, req.headless)
    )
    return {"run_id": run_id, "status": "running"}


@app.get("/api/runs")
async def list_runs():
    """List all workflow runs."""
    return [_run_summary(r) for r in workflow_runs.values()]


@app.get("/api/runs/{run_id}")
async def get_run(run_id: str, tail: int = 50):
    """Get run status, error and log tail."""
    if run_id not in workflow_runs:
        raise HTTPException(status_code=404, detail="Run not found")
    return _run_summary(workflow_runs[run_id], tail=tail)


if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("WORKFLOW_API_PORT", "8080"))
    uvicorn.run(app, host="0.0.0.0", port=port)
