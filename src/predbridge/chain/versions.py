"""Contract version resolver - probe each escrow address once and remember its interface."""

from __future__ import annotations

import structlog
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, Web3Exception

from predbridge.chain.abi import LEGACY_ESCROW_ABI, LEGACY_PROBE_ARGS, LEGACY_PROBE_FUNCTION
from predbridge.chain.providers import ProviderPool, is_transport_error
from predbridge.chain.validation import is_valid_address, normalize_address
from predbridge.errors import NetworkUnavailableError
from predbridge.models import ContractBinding, ContractVersion

log = structlog.get_logger(__name__)


def _is_node_failure(exc: BaseException) -> bool:
    """Transport failures and JSON-RPC error responses (rate limits, node faults)."""
    return is_transport_error(exc) or isinstance(exc, Web3Exception)


# Process-wide: normalized address -> binding. Only legacy/current are ever stored.
_VERSION_CACHE: dict[str, ContractBinding] = {}


def clear_version_cache(address: str | None = None) -> None:
    if address is None:
        _VERSION_CACHE.clear()
    else:
        _VERSION_CACHE.pop(normalize_address(address), None)


def _parse_hint(hint: ContractVersion | str | None) -> ContractVersion | None:
    if hint is None:
        return None
    try:
        version = ContractVersion(hint)
    except ValueError:
        return None
    return None if version is ContractVersion.INVALID else version


class ContractVersionResolver:
    """Decides legacy / current / invalid for an address.

    A cached answer is returned without network I/O. Two first lookups of the
    same address may both probe; the second write simply repeats the first.
    """

    def __init__(self, pool: ProviderPool, *, cache: dict[str, ContractBinding] | None = None) -> None:
        self._pool = pool
        self._cache = _VERSION_CACHE if cache is None else cache

    def cached(self, address: str) -> ContractBinding | None:
        if not is_valid_address(address):
            return None
        return self._cache.get(normalize_address(address))

    def clear(self, address: str | None = None) -> None:
        """Drop one binding, or all of them."""
        if address is None:
            self._cache.clear()
            log.info("version_cache_cleared")
        else:
            self._cache.pop(normalize_address(address), None)
            log.info("version_binding_cleared", address=normalize_address(address))

    def resolve_version(
        self, address: str, hint: ContractVersion | str | None = None
    ) -> ContractVersion:
        if not is_valid_address(address):
            return ContractVersion.INVALID
        key = normalize_address(address)
        binding = self._cache.get(key)
        if binding is not None:
            return binding.version

        conn = self._pool.get_read_connection()
        try:
            code = conn.get_code(address)
        except Exception as e:
            if _is_node_failure(e):
                raise NetworkUnavailableError(
                    "Settlement chain unreachable while checking contract",
                    details={"address": key, "endpoint": conn.endpoint, "reason": str(e)[:100]},
                ) from e
            raise
        if not code:
            log.warning("contract_not_found", address=key)
            return ContractVersion.INVALID

        version = _parse_hint(hint)
        if version is None:
            version = self._probe(conn, address)
        else:
            log.debug("contract_version_from_hint", address=key, version=version.value)
        self._cache[key] = ContractBinding(address=key, version=version)
        log.info("contract_version_resolved", address=key, version=version.value)
        return version

    def _probe(self, conn, address: str) -> ContractVersion:
        try:
            conn.call(address, LEGACY_ESCROW_ABI, LEGACY_PROBE_FUNCTION, *LEGACY_PROBE_ARGS)
        except (ContractLogicError, BadFunctionCallOutput):
            # the legacy-only view is missing
            return ContractVersion.CURRENT
        except Exception as e:
            if _is_node_failure(e):
                raise NetworkUnavailableError(
                    "Settlement chain unreachable while probing contract",
                    details={
                        "address": normalize_address(address),
                        "endpoint": conn.endpoint,
                        "reason": str(e)[:100],
                    },
                ) from e
            raise
        return ContractVersion.LEGACY
