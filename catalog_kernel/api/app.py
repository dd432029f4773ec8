"""
Catalog Kernel API — FastAPI endpoints.

Exposes the kernel's functionality via a REST API for:
- Role and unit inspection
- Node classification
- Catalog compilation
- Agent runs
- Data lookups
- Run report queries
- Actual-state inspection
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from catalog_kernel.agent.loop import Agent
from catalog_kernel.apply.engine import ApplyEngine
from catalog_kernel.classifier.classifier import NodeClassifier
from catalog_kernel.compiler.compiler import CatalogCompiler
from catalog_kernel.config.logging_config import configure_logging
from catalog_kernel.config.settings import KernelSettings, get_settings
from catalog_kernel.config.site import load_site
from catalog_kernel.errors import (
    CatalogError,
    LookupKeyError,
    UnclassifiedNodeError,
    UnknownRoleError,
    UnknownUnitError,
)
from catalog_kernel.lookup.backends import DictDataSource, YamlDataSource
from catalog_kernel.lookup.service import Hierarchy, MergeStrategy
from catalog_kernel.models.agent import AgentConfig
from catalog_kernel.models.node import Node
from catalog_kernel.reports.store import ReportStore
from catalog_kernel.roles.resolver import RoleResolver
from catalog_kernel.units.registry import UnitRegistry


# --- Request/Response Models ---

class NodeRequest(BaseModel):
    certname: str
    facts: Dict[str, Any] = {}

    def to_node(self) -> Node:
        return Node(certname=self.certname, facts=self.facts)


class RunRequest(NodeRequest):
    noop: Optional[bool] = None


class LookupRequest(NodeRequest):
    key: str
    merge: MergeStrategy = MergeStrategy.FIRST
    explain: bool = False


_NOT_FOUND = (LookupKeyError, UnclassifiedNodeError, UnknownRoleError, UnknownUnitError)


def build_compiler(settings: KernelSettings, registry: UnitRegistry) -> CatalogCompiler:
    """A compiler assembled from settings: site file, datadir, hierarchy."""
    if settings.site_file:
        resolver, classifier = load_site(settings.site_file)
    else:
        resolver = RoleResolver()
        classifier = NodeClassifier(resolver)
    source = YamlDataSource(settings.datadir) if settings.datadir else DictDataSource()
    return CatalogCompiler(
        classifier=classifier,
        resolver=resolver,
        registry=registry,
        hierarchy=Hierarchy(source, settings.hierarchy),
        timeout_seconds=settings.run_timeout_seconds,
    )


# --- Application Factory ---

def create_app(
    compiler: Optional[CatalogCompiler] = None,
    engine: Optional[ApplyEngine] = None,
    report_store: Optional[ReportStore] = None,
    agent_config: Optional[AgentConfig] = None,
    settings: Optional[KernelSettings] = None,
    registry: Optional[UnitRegistry] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Catalog Kernel API",
        description="Roles and profiles catalog compiler",
        version="0.1.0",
    )

    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    cc = compiler or build_compiler(settings, registry or UnitRegistry())
    ae = engine or ApplyEngine()
    rs = report_store or ReportStore(settings.report_db_path)
    agent = Agent(cc, ae, rs, agent_config or settings.agent_config())

    app.state.compiler = cc
    app.state.engine = ae
    app.state.report_store = rs
    app.state.agent = agent

    @app.exception_handler(CatalogError)
    async def catalog_error_handler(request: Request, exc: CatalogError):
        status = 404 if isinstance(exc, _NOT_FOUND) else 409
        return JSONResponse(status_code=status, content=exc.to_dict())

    # === DEFINITIONS ===

    @app.get("/roles")
    def list_roles():
        """All role definitions."""
        return [r.model_dump(mode="json") for r in cc.resolver.roles()]

    @app.get("/roles/{role_name}/units")
    def resolve_role(role_name: str):
        """A role's expanded unit list."""
        refs = cc.resolver.resolve(cc.resolver.get(role_name))
        return [ref.model_dump(mode="json") for ref in refs]

    @app.get("/units")
    def list_units():
        """All registered unit names."""
        return cc.registry.names()

    # === COMPILATION ===

    @app.post("/classify")
    def classify(req: NodeRequest):
        """The role a node classifies into."""
        role = cc.classifier.classify(req.to_node())
        return {"certname": req.certname, "role": role.name}

    @app.post("/catalog")
    def compile_catalog(req: NodeRequest):
        """Compile a catalog without applying it."""
        return cc.compile(req.to_node()).model_dump(mode="json")

    @app.post("/lookup")
    def lookup(req: LookupRequest):
        """Hierarchical lookup for a node."""
        service = cc.hierarchy.for_node(req.to_node())
        result = {
            "key": req.key,
            "value": service.get(req.key, merge=req.merge),
        }
        if req.explain:
            result["explanation"] = service.explain(req.key)
        return result

    # === RUNS ===

    @app.post("/runs")
    def run(req: RunRequest):
        """Compile, apply and report for a node."""
        report = agent.run_once(req.to_node(), noop=req.noop)
        return report.model_dump(mode="json")

    @app.get("/state")
    def get_state():
        """Actual state as recorded by the apply engine."""
        return ae.state.snapshot()

    # === REPORTS ===

    @app.get("/reports")
    def get_reports(limit: int = 50):
        """Recent run reports."""
        return [r.model_dump(mode="json") for r in rs.query_recent(limit=limit)]

    @app.get("/reports/verify")
    def verify_reports():
        """Verify chain integrity."""
        return {
            "integrity_valid": rs.verify_chain_integrity(),
            "total_reports": rs.count(),
        }

    @app.get("/reports/failed")
    def get_failed_reports():
        return [r.model_dump(mode="json") for r in rs.query_failed()]

    @app.get("/reports/{report_id}")
    def get_report(report_id: str):
        report = rs.get_by_id(report_id)
        if not report:
            raise HTTPException(404, "Report not found")
        return report.model_dump(mode="json")

    @app.get("/nodes/{certname}/reports")
    def get_node_reports(certname: str):
        """All runs of one node."""
        return [r.model_dump(mode="json") for r in rs.query_by_certname(certname)]

    return app


# Default application instance
app = create_app()
