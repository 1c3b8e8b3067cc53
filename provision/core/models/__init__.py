"""
Domain models for the provisioning engine.

All models are re-exported here for convenient access:

    from provision.core.models import FactCollection, Resource, Report
"""

from provision.core.models.facts import FactCollection
from provision.core.models.manifest import (
    Catalog,
    CatalogContext,
    Manifest,
    ManifestContext,
)
from provision.core.models.plan import ExecutionPlan, ExecutionPlanItem
from provision.core.models.report import Report, ReportItem
from provision.core.models.resource import (
    ErrorHandling,
    Resource,
    ResourceBuilder,
    ResourceRef,
    ResourceState,
)

__all__ = [
    # manifest.py
    "Catalog",
    "CatalogContext",
    # resource.py
    "ErrorHandling",
    # plan.py
    "ExecutionPlan",
    "ExecutionPlanItem",
    # facts.py
    "FactCollection",
    "Manifest",
    "ManifestContext",
    # report.py
    "Report",
    "ReportItem",
    "Resource",
    "ResourceBuilder",
    "ResourceRef",
    "ResourceState",
]
