"""Gateway policy controller: topology, effective-policy resolution and status."""

from policy_controller.reconciler import PassResult, reconcile, run_resolution_pass

__all__ = ["PassResult", "reconcile", "run_resolution_pass"]
