"""Production configuration guard: enforces hard constraints in production.

The guard validates that production-critical settings are configured before
the service starts.  It runs once at service construction and fails hard
(raises ``ProductionConfigError``) if any constraint is violated.  Other
code should not scatter ``if is_production`` checks.
"""

from __future__ import annotations

import logging
import re

from provtrace.config import ProdConfig

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

# Values shipped in example env files for the contract address.
PLACEHOLDER_ADDRESSES: frozenset[str] = frozenset(
    {
        "",
        "0x0000000000000000000000000000000000000000",
        "your_contract_address_here",
    }
)


class ProductionConfigError(RuntimeError):
    """Raised when production configuration constraints are violated.

    The service cannot safely start in production mode with the current
    configuration.  It must not be caught and ignored.
    """


def enforce_production_constraints(config: ProdConfig) -> None:
    """Validate all production-critical configuration constraints.

    Constraints enforced
    --------------------
    1. Debug mode must be disabled.
    2. The metadata gateway must be reached over HTTPS.
    3. The local gateway shortcut must be off.
    4. The ledger contract address must be a real 20-byte address.

    Parameters
    ----------
    config:
        The active ``ProdConfig`` instance.

    Raises
    ------
    ProductionConfigError
        Listing every violated constraint.
    """
    if not config.is_production:
        return

    violations: list[str] = []

    if config.debug:
        violations.append(
            "debug=True is not allowed in production. Set PROVTRACE_DEBUG=false."
        )

    if not config.gateway_url.startswith("https://"):
        violations.append(
            f"gateway_url must use https in production (got {config.gateway_url!r}). "
            "Set PROVTRACE_GATEWAY_URL."
        )

    if config.use_local_gateway:
        violations.append(
            "use_local_gateway=True is not allowed in production. "
            "Set PROVTRACE_USE_LOCAL_GATEWAY=false."
        )

    address = config.ledger_contract_address.strip()
    if address in PLACEHOLDER_ADDRESSES or not _ADDRESS_RE.match(address):
        violations.append(
            "ledger_contract_address must be a deployed contract address in production. "
            "Set PROVTRACE_LEDGER_CONTRACT_ADDRESS."
        )

    if violations:
        msg = "Production configuration guard failed.\n" + "\n".join(
            f"  - {v}" for v in violations
        )
        logger.critical(msg)
        raise ProductionConfigError(msg)

    logger.info("Production configuration guard passed.")
