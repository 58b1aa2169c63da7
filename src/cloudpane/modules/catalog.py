"""Built-in resource types and their registration.

Each entry is a ``ResourceSpec`` for one Google Cloud list API. The order of
``RESOURCE_SPECS`` is the order modules appear in the sidebar and palette.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from cloudpane.config.schema import CloudpaneConfig
from cloudpane.core.gateway import Gateway
from cloudpane.core.registry import ModuleRegistry
from cloudpane.modules.overview import overview_factory
from cloudpane.modules.resource import Column, ResourceAction, ResourceSpec, resource_factory

logger = logging.getLogger(__name__)

COMPUTE = "https://compute.googleapis.com/compute/v1/projects/{project}"

CATEGORY_COMPUTE = "Compute"
CATEGORY_DATA = "Data & Storage"
CATEGORY_MESSAGING = "Messaging & Processing"
CATEGORY_MANAGEMENT = "Management"


def _snapshot_body(disk: Dict[str, Any]) -> Dict[str, Any]:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return {"name": f"{disk['name']}-snap-{stamp}"[:63]}


def _activation(policy: str) -> Dict[str, Any]:
    return {"settings": {"activationPolicy": policy}}


SQL_INSTANCE = "https://sqladmin.googleapis.com/v1/projects/{project}/instances/{name}"

BIGQUERY = "https://bigquery.googleapis.com/bigquery/v2/projects"

GCS_OBJECTS = ResourceSpec(
    key="gcs.objects",
    name="Objects",
    list_url="https://storage.googleapis.com/storage/v1/b/{item[name]}/o",
    items_path="items",
    columns=(
        Column("Name", "name", 40),
        Column("Size", "size", 12),
        Column("Class", "storageClass", 12),
        Column("Updated", "updated", 26),
    ),
)

# tables.get, not a list call: the schema fields are the rows
BQ_SCHEMA = ResourceSpec(
    key="bq.schema",
    name="Schema",
    list_url=BIGQUERY
    + "/{item[tableReference][projectId]}/datasets/{item[tableReference][datasetId]}"
    + "/tables/{item[tableReference][tableId]}",
    items_path="schema.fields",
    columns=(
        Column("Field", "name", 28),
        Column("Type", "type", 12),
        Column("Mode", "mode", 10),
        Column("Description", "description", 40),
    ),
)

BQ_TABLES = ResourceSpec(
    key="bq.tables",
    name="Tables",
    list_url=BIGQUERY + "/{project}/datasets/{item[datasetReference][datasetId]}/tables",
    items_path="tables",
    name_path="tableReference.tableId",
    columns=(
        Column("Table", "tableReference.tableId", 32),
        Column("Type", "type", 12),
        Column("Created", "creationTime", 16),
    ),
    child=BQ_SCHEMA,
)

RESOURCE_SPECS: Tuple[ResourceSpec, ...] = (
    # Compute
    ResourceSpec(
        key="gce",
        name="Compute Engine",
        category=CATEGORY_COMPUTE,
        description="List Google Compute Engine VM instances",
        list_url=COMPUTE + "/aggregated/instances",
        items_path="items",
        aggregated_key="instances",
        columns=(
            Column("Name", "name", 28),
            Column("Zone", "zone", 16, basename=True),
            Column("Machine Type", "machineType", 16, basename=True),
            Column("Status", "status", 12),
        ),
        actions=(
            ResourceAction("s", "Start", "POST", "{selfLink}/start"),
            ResourceAction("x", "Stop", "POST", "{selfLink}/stop"),
        ),
    ),
    ResourceSpec(
        key="gke",
        name="Kubernetes Engine",
        category=CATEGORY_COMPUTE,
        description="List Kubernetes Engine clusters",
        list_url="https://container.googleapis.com/v1/projects/{project}/locations/-/clusters",
        items_path="clusters",
        columns=(
            Column("Name", "name", 28),
            Column("Location", "location", 16),
            Column("Version", "currentMasterVersion", 20),
            Column("Nodes", "currentNodeCount", 6),
            Column("Status", "status", 12),
        ),
    ),
    ResourceSpec(
        key="disks",
        name="Persistent Disks",
        category=CATEGORY_COMPUTE,
        description="List persistent disks (block storage)",
        list_url=COMPUTE + "/aggregated/disks",
        items_path="items",
        aggregated_key="disks",
        columns=(
            Column("Name", "name", 28),
            Column("Zone", "zone", 16, basename=True),
            Column("Size (GB)", "sizeGb", 10),
            Column("Type", "type", 14, basename=True),
            Column("Status", "status", 10),
        ),
        actions=(
            ResourceAction("s", "Snapshot", "POST", "{selfLink}/createSnapshot", body=_snapshot_body),
        ),
    ),
    ResourceSpec(
        key="run",
        name="Cloud Run",
        category=CATEGORY_COMPUTE,
        description="List Cloud Run services",
        list_url="https://run.googleapis.com/v2/projects/{project}/locations/-/services",
        items_path="services",
        columns=(
            Column("Name", "name", 28, basename=True),
            Column("URL", "uri", 40),
            Column("Updated", "updateTime", 22),
        ),
    ),
    # Data & Storage
    ResourceSpec(
        key="sql",
        name="Cloud SQL",
        category=CATEGORY_DATA,
        description="List Cloud SQL instances",
        list_url="https://sqladmin.googleapis.com/v1/projects/{project}/instances",
        items_path="items",
        columns=(
            Column("Name", "name", 24),
            Column("Version", "databaseVersion", 14),
            Column("Region", "region", 14),
            Column("Tier", "settings.tier", 16),
            Column("State", "state", 10),
        ),
        actions=(
            ResourceAction("s", "Start", "PATCH", SQL_INSTANCE, body=_activation("ALWAYS")),
            ResourceAction("x", "Stop", "PATCH", SQL_INSTANCE, body=_activation("NEVER")),
        ),
    ),
    ResourceSpec(
        key="gcs",
        name="Cloud Storage",
        category=CATEGORY_DATA,
        description="Browse Cloud Storage buckets and objects",
        list_url="https://storage.googleapis.com/storage/v1/b?project={project}",
        items_path="items",
        columns=(
            Column("Name", "name", 32),
            Column("Location", "location", 14),
            Column("Class", "storageClass", 12),
            Column("Created", "timeCreated", 26),
        ),
        child=GCS_OBJECTS,
    ),
    ResourceSpec(
        key="bq",
        name="BigQuery",
        category=CATEGORY_DATA,
        description="Browse BigQuery datasets, tables and schemas",
        list_url="https://bigquery.googleapis.com/bigquery/v2/projects/{project}/datasets",
        items_path="datasets",
        name_path="datasetReference.datasetId",
        columns=(
            Column("Dataset", "datasetReference.datasetId", 32),
            Column("Location", "location", 14),
        ),
        child=BQ_TABLES,
    ),
    ResourceSpec(
        key="redis",
        name="Memorystore (Redis)",
        category=CATEGORY_DATA,
        description="List Memorystore (Redis) instances",
        list_url="https://redis.googleapis.com/v1/projects/{project}/locations/-/instances",
        items_path="instances",
        columns=(
            Column("Name", "name", 28, basename=True),
            Column("Location", "locationId", 16),
            Column("Tier", "tier", 12),
            Column("Memory (GB)", "memorySizeGb", 11),
            Column("State", "state", 10),
        ),
    ),
    ResourceSpec(
        key="spanner",
        name="Spanner",
        category=CATEGORY_DATA,
        description="List Spanner instances",
        list_url="https://spanner.googleapis.com/v1/projects/{project}/instances",
        items_path="instances",
        columns=(
            Column("Name", "name", 28, basename=True),
            Column("Config", "config", 20, basename=True),
            Column("Nodes", "nodeCount", 6),
            Column("State", "state", 10),
        ),
    ),
    ResourceSpec(
        key="bigtable",
        name="Bigtable",
        category=CATEGORY_DATA,
        description="List Bigtable instances",
        list_url="https://bigtableadmin.googleapis.com/v2/projects/{project}/instances",
        items_path="instances",
        columns=(
            Column("Name", "name", 28, basename=True),
            Column("Display Name", "displayName", 24),
            Column("Type", "type", 12),
            Column("State", "state", 10),
        ),
    ),
    ResourceSpec(
        key="firestore",
        name="Firestore",
        category=CATEGORY_DATA,
        description="List Firestore databases",
        list_url="https://firestore.googleapis.com/v1/projects/{project}/databases",
        items_path="databases",
        columns=(
            Column("Name", "name", 28, basename=True),
            Column("Location", "locationId", 16),
            Column("Type", "type", 20),
        ),
    ),
    # Messaging & Processing
    ResourceSpec(
        key="pubsub",
        name="Pub/Sub",
        category=CATEGORY_MESSAGING,
        description="List Pub/Sub topics",
        list_url="https://pubsub.googleapis.com/v1/projects/{project}/topics",
        items_path="topics",
        columns=(
            Column("Topic", "name", 48, basename=True),
            Column("KMS Key", "kmsKeyName", 30, basename=True),
        ),
    ),
    ResourceSpec(
        key="dataflow",
        name="Dataflow",
        category=CATEGORY_MESSAGING,
        description="List Dataflow jobs",
        list_url="https://dataflow.googleapis.com/v1b3/projects/{project}/jobs:aggregated",
        items_path="jobs",
        columns=(
            Column("Name", "name", 28),
            Column("Type", "type", 20),
            Column("State", "currentState", 22),
            Column("Created", "createTime", 22),
        ),
    ),
    ResourceSpec(
        key="dataproc",
        name="Dataproc",
        category=CATEGORY_MESSAGING,
        description="List Dataproc clusters",
        list_url="https://dataproc.googleapis.com/v1/projects/{project}/regions/{region}/clusters",
        items_path="clusters",
        name_path="clusterName",
        columns=(
            Column("Name", "clusterName", 28),
            Column("State", "status.state", 12),
            Column("Workers", "config.workerConfig.numInstances", 8),
        ),
    ),
    # Management
    ResourceSpec(
        key="iam",
        name="IAM Service Accounts",
        category=CATEGORY_MANAGEMENT,
        description="List IAM service accounts",
        list_url="https://iam.googleapis.com/v1/projects/{project}/serviceAccounts",
        items_path="accounts",
        name_path="email",
        columns=(
            Column("Email", "email", 48),
            Column("Display Name", "displayName", 24),
            Column("Disabled", "disabled", 8),
        ),
    ),
    ResourceSpec(
        key="secrets",
        name="Secret Manager",
        category=CATEGORY_MANAGEMENT,
        description="List Secret Manager secrets (metadata only)",
        list_url="https://secretmanager.googleapis.com/v1/projects/{project}/secrets",
        items_path="secrets",
        columns=(
            Column("Name", "name", 36, basename=True),
            Column("Created", "createTime", 24),
            Column("Expires", "expireTime", 24),
        ),
    ),
    ResourceSpec(
        key="net",
        name="VPC Networks",
        category=CATEGORY_MANAGEMENT,
        description="List VPC networks",
        list_url=COMPUTE + "/global/networks",
        items_path="items",
        columns=(
            Column("Name", "name", 28),
            Column("Routing", "routingConfig.routingMode", 10),
            Column("MTU", "mtu", 6),
            Column("Subnets", "subnetworks", 40, basename=True),
        ),
    ),
)


def register_builtin_modules(
    registry: ModuleRegistry,
    gateway: Gateway,
    config: CloudpaneConfig,
) -> None:
    """Register the overview plus every catalog resource type.

    Modules missing from a non-empty ``config.modules.enabled`` are skipped.
    """
    if config.modules.is_enabled("overview"):
        registry.register(
            "overview",
            overview_factory(
                gateway,
                ttl=config.cache.overview_ttl,
                poll_interval=config.cache.overview_ttl,
                region=config.region,
                zone=config.zone,
            ),
            name="Overview",
            category="Dashboard",
            description="Resource counts across the project",
        )

    for spec in RESOURCE_SPECS:
        if not config.modules.is_enabled(spec.key):
            continue
        registry.register(
            spec.key,
            resource_factory(
                gateway,
                spec,
                poll_interval=config.ui.refresh_interval,
                ttl=config.cache.default_ttl,
                region=config.region,
            ),
            name=spec.name,
            category=spec.category,
            description=spec.description,
        )

    logger.info(f"Registered {len(registry.keys())} modules")
