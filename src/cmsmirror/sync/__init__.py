"""Synchronization engine: fingerprints, manifests, fetching, reconciliation and orchestration."""

from cmsmirror.sync.fetcher import FetchPolicy, FetchResult, FetchStats, Fetcher
from cmsmirror.sync.fingerprint import config_fingerprint, fingerprint, fingerprint_bytes
from cmsmirror.sync.orchestrator import SyncContext, classify, open_context, run_domain, run_domains
from cmsmirror.sync.reconcile import Reconciler, detect_key_collisions, strip_suffix_key
from cmsmirror.sync.state import ManifestStore
from cmsmirror.sync.storage import write_atomic

__all__ = [
    "FetchPolicy",
    "FetchResult",
    "FetchStats",
    "Fetcher",
    "config_fingerprint",
    "fingerprint",
    "fingerprint_bytes",
    "SyncContext",
    "classify",
    "open_context",
    "run_domain",
    "run_domains",
    "Reconciler",
    "detect_key_collisions",
    "strip_suffix_key",
    "ManifestStore",
    "write_atomic",
]
