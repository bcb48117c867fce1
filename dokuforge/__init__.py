"""dokuforge: signed preview -> certify -> compile pipeline for agent artifacts.

Mutable agent sources (identity, plan, criteria, conventions, BYO data)
are versioned on disk and turned into tamper-evident bundles:

  - preview: merge the active versions into one read-only snapshot
  - certify: re-check the snapshot, attach the certifier and a validity window
  - compile: seal certificates into numbered, immutable bundles

Each stage signs what it produces with an Ed25519 identity and appends
to a hash-chained audit ledger.
"""

__version__ = "0.3.0"
__description__ = "Signed preview, certify and compile pipeline for agent artifacts"

__all__ = ["__version__"]
