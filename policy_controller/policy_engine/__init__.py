from policy_controller.policy_engine.backrefs import (
    BackReferencePlan,
    ClaimResult,
    LocalBackReferences,
    claim,
    plan_back_references,
    release,
)
from policy_controller.policy_engine.cluster import (
    ClusterBackReferences,
    ClusterClient,
    InMemoryCluster,
    read_snapshot,
)
from policy_controller.policy_engine.config import (
    EngineConfig,
    load_config,
)
from policy_controller.policy_engine.errors import (
    ClusterClientError,
    ConfigLoadError,
    ConflictError,
    PolicyError,
    SnapshotLoadError,
    StatusWriteError,
    UnknownPolicyKind,
)
from policy_controller.policy_engine.hierarchy import (
    EffectivePolicySet,
    HierarchyResolver,
)
from policy_controller.policy_engine.mapper import (
    affected_policies,
)
from policy_controller.policy_engine.report import (
    resolution_report,
    write_resolution_artifact,
)
from policy_controller.policy_engine.resolve import (
    Resolution,
    resolve,
    resolve_snapshot,
)
from policy_controller.policy_engine.snapshot_loader import (
    load_snapshot,
    snapshot_from_objects,
)
from policy_controller.policy_engine.status import (
    calculate,
)
from policy_controller.policy_engine.status_writer import (
    merge_conditions,
    write_policy_status,
    write_target_status,
)
from policy_controller.policy_engine.target_status import (
    target_conditions,
)
from policy_controller.policy_engine.topology import (
    Topology,
    build_topology,
)

__all__ = [
    "BackReferencePlan",
    "ClaimResult",
    "ClusterBackReferences",
    "ClusterClient",
    "ClusterClientError",
    "ConfigLoadError",
    "ConflictError",
    "EffectivePolicySet",
    "EngineConfig",
    "HierarchyResolver",
    "InMemoryCluster",
    "LocalBackReferences",
    "PolicyError",
    "Resolution",
    "SnapshotLoadError",
    "StatusWriteError",
    "Topology",
    "UnknownPolicyKind",
    "affected_policies",
    "build_topology",
    "calculate",
    "claim",
    "load_config",
    "load_snapshot",
    "merge_conditions",
    "plan_back_references",
    "read_snapshot",
    "release",
    "resolution_report",
    "resolve",
    "resolve_snapshot",
    "snapshot_from_objects",
    "target_conditions",
    "write_policy_status",
    "write_resolution_artifact",
    "write_target_status",
]
