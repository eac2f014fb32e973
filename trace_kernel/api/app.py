"""
Trace Kernel API: FastAPI endpoints.

Exposes the kernel to the graph editor front end:
- Guardrail rules and edge evaluation
- Graph nodes and edges
- Approval of proposed edges
- Decision ledger inspection, verification and export
- Commits and rollback
"""

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from trace_kernel.approval.workflow import ApprovalWorkflow
from trace_kernel.errors import TraceKernelError
from trace_kernel.governance.engine import GuardrailEngine
from trace_kernel.governance.rules import rule_table
from trace_kernel.graph.store import GraphStore
from trace_kernel.lineage.chain import parse_export, verify_chain
from trace_kernel.lineage.store import LedgerStore
from trace_kernel.models.approval import ApprovalData
from trace_kernel.models.config import KernelConfig
from trace_kernel.models.graph import EdgeType, KnowledgeNode, NodeType
from trace_kernel.models.purpose import Purpose

logger = logging.getLogger(__name__)


# --- Request/Response Models ---

class EvaluateRequest(BaseModel):
    source_type: NodeType
    target_type: NodeType
    source_label: str
    target_label: str
    source_id: Optional[str] = None
    target_id: Optional[str] = None


class ProposeEdgeRequest(BaseModel):
    source_id: str
    target_id: str
    purpose: Purpose
    edge_type: Optional[EdgeType] = None


class RejectRequest(BaseModel):
    reason: str


class VerifyRequest(BaseModel):
    entries: List[Any]


class CommitRequest(BaseModel):
    message: str
    author: str


# --- Application Factory ---

def create_app(
    engine: Optional[GuardrailEngine] = None,
    ledger_store: Optional[LedgerStore] = None,
    graph_store: Optional[GraphStore] = None,
    config: Optional[KernelConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Trace Kernel API",
        description="Connection guardrails and hash-chained decision ledger",
        version="0.1.0",
    )

    # Initialize components
    cfg = config or KernelConfig()
    ge = engine or GuardrailEngine(
        rules=rule_table(cfg.rule_table),
        unmatched_verdict=cfg.unmatched_verdict,
    )
    ls = ledger_store or LedgerStore(
        db_path=cfg.ledger_db_path,
        signer_fingerprint=cfg.signer_fingerprint,
    )
    gs = graph_store or GraphStore(project_name=cfg.project_name)
    workflow = ApprovalWorkflow(
        engine=ge,
        ledger_store=ls,
        graph_store=gs,
        config=cfg,
    )

    # Store components on app state for access in endpoints
    app.state.config = cfg
    app.state.engine = ge
    app.state.ledger_store = ls
    app.state.graph_store = gs
    app.state.workflow = workflow

    @app.exception_handler(TraceKernelError)
    async def _kernel_error(request: Request, exc: TraceKernelError):
        logger.info("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.http_status, content=exc.as_dict())

    # === GUARDRAILS ===

    @app.get("/guardrails/rules")
    def list_rules():
        """The active rule table, in precedence order."""
        return [r.model_dump(mode="json") for r in ge.get_rules()]

    @app.get("/guardrails/rules/{rule_id}")
    def get_rule(rule_id: str):
        rule = ge.get_rule(rule_id)
        if not rule:
            raise HTTPException(404, "Rule not found")
        return rule.model_dump(mode="json")

    @app.post("/guardrails/evaluate")
    def evaluate_edge(req: EvaluateRequest):
        """Evaluate a proposed edge without queuing it."""
        evaluation = ge.evaluate(
            req.source_type, req.target_type,
            req.source_label, req.target_label,
            source_id=req.source_id, target_id=req.target_id,
        )
        return evaluation.model_dump(mode="json")

    # === GRAPH ===

    @app.get("/graph")
    def get_graph():
        return gs.graph.model_dump(mode="json")

    @app.post("/graph/nodes")
    def add_node(node: KnowledgeNode):
        gs.add_node(node)
        return {"status": "added", "node_id": node.id}

    @app.get("/graph/nodes/{node_id}/connected")
    def get_connected(node_id: str):
        if not gs.get_node(node_id):
            raise HTTPException(404, "Node not found")
        return [n.model_dump(mode="json") for n in gs.get_connected_nodes(node_id)]

    @app.delete("/graph/nodes/{node_id}")
    def remove_node(node_id: str):
        if not gs.remove_node(node_id):
            raise HTTPException(404, "Node not found")
        return {"status": "removed", "node_id": node_id}

    # === APPROVALS ===

    @app.post("/approvals")
    def propose_edge(req: ProposeEdgeRequest):
        """Evaluate an edge and queue it for human approval."""
        approval = workflow.propose_edge(
            req.source_id, req.target_id, req.purpose, edge_type=req.edge_type
        )
        return approval.model_dump(mode="json")

    @app.get("/approvals/pending")
    def list_pending():
        return [a.model_dump(mode="json") for a in workflow.pending()]

    @app.post("/approvals/{approval_id}/approve")
    def approve(approval_id: str, data: ApprovalData):
        """Human signs off; the decision is appended to the ledger."""
        entry = workflow.approve(approval_id, data)
        return entry.model_dump(mode="json", by_alias=True)

    @app.post("/approvals/{approval_id}/reject")
    def reject(approval_id: str, req: RejectRequest):
        return workflow.reject(approval_id, req.reason).model_dump(mode="json")

    # === LEDGER ===

    @app.get("/ledger")
    def get_ledger(limit: int = 50):
        """Recent ledger entries, oldest first."""
        return [e.model_dump(mode="json", by_alias=True) for e in ls.query_recent(limit=limit)]

    @app.get("/ledger/verify")
    def verify_ledger():
        """Verify the stored chain."""
        result = ls.verify()
        return {
            **result.model_dump(mode="json", by_alias=True),
            "totalEntries": ls.count(),
        }

    @app.post("/ledger/verify")
    def verify_external(req: VerifyRequest):
        """Verify entries supplied by the caller, e.g. from a received export."""
        return verify_chain(req.entries).model_dump(mode="json", by_alias=True)

    @app.get("/ledger/export")
    def export_ledger(exported_by: str, project_name: Optional[str] = None):
        body = ls.export(project_name or cfg.project_name, exported_by)
        return Response(content=body, media_type="application/json")

    @app.post("/ledger/import/verify")
    async def verify_export(request: Request):
        """Parse an export bundle and re-verify its entries."""
        bundle = parse_export(await request.body())
        result = verify_chain(bundle.entries)
        return {
            **result.model_dump(mode="json", by_alias=True),
            "claimedValid": bundle.chain_valid,
            "version": bundle.version,
        }

    @app.get("/ledger/{commit_id}")
    def get_entry(commit_id: str):
        entry = ls.get_by_commit_id(commit_id)
        if not entry:
            raise HTTPException(404, "Ledger entry not found")
        return entry.model_dump(mode="json", by_alias=True)

    # === COMMITS ===

    @app.post("/commits")
    def create_commit(req: CommitRequest):
        commit = workflow.commit(req.message, req.author)
        return commit.model_dump(mode="json", by_alias=True)

    @app.get("/commits")
    def list_commits():
        return [
            {
                "commitId": c.commit_id,
                "message": c.message,
                "author": c.author,
                "timestamp": c.timestamp.isoformat(),
                "parentCommitId": c.parent_commit_id,
                "entries": len(c.decision_ledger_entries),
            }
            for c in workflow.history.list_commits()
        ]

    @app.post("/commits/{commit_id}/rollback")
    def rollback(commit_id: str):
        commit = workflow.rollback(commit_id)
        return {
            "status": "restored",
            "commitId": commit.commit_id,
            "restoredAt": datetime.now(timezone.utc).isoformat(),
        }

    return app


# Default application instance
app = create_app()
