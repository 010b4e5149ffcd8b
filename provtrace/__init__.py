"""provtrace: product-provenance coordination between a content-addressed
store and an append-only ledger.

  - Three-tier storage space bootstrap (configured > account > local)
  - Single-flight uploads with timeout and permission retry
  - Product / trace-event ledger client with pre-flight estimation
  - Gateway resolver re-hydrating metadata by CID
"""

__version__ = "0.1.0"
__description__ = "Product provenance over content-addressed storage and an append-only ledger"

from provtrace.service import ProvenanceService

__all__ = ["ProvenanceService", "__version__"]
