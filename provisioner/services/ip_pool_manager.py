"""
IP Address Pool Manager

Manages exclusive address allocation for WireGuard peers.
Implements thread-safe sequential allocation with exhaustion detection.

Allocation model:
- Addresses are handed out in numeric order from a cursor
- The cursor always points past the last address returned
- Network and broadcast addresses are ordinary members of the block
- The forward scan never wraps; released addresses below the cursor are
  handed out again only once the top of the block has been reached

Security considerations:
- Thread-safe allocation to prevent two peers receiving one address
- No I/O while the pool lock is held
"""

import ipaddress
import threading
from typing import Set, Optional, Dict, Union
import logging

logger = logging.getLogger(__name__)

Address = Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]


class IPPoolExhaustedError(Exception):
    """Raised when every address of the pool is allocated"""

    def __init__(self, pool_range: str, allocated_count: int):
        self.pool_range = pool_range
        self.allocated_count = allocated_count
        super().__init__(
            f"IP pool exhausted: {allocated_count} addresses allocated "
            f"from range {pool_range}"
        )


class IPPoolManager:
    """
    Thread-safe address pool for WireGuard peers

    Attributes:
        network: IPv4Network/IPv6Network representing the address block
        allocated: Set of allocated addresses (integer form)
        _cursor: Integer value of the next candidate address
        _lock: Thread lock guarding allocated and _cursor
    """

    def __init__(self, network: str):
        """
        Initialize IP pool manager

        Args:
            network: Network CIDR (e.g., "10.0.0.0/24")

        Raises:
            ValueError: If network CIDR is invalid
        """
        try:
            self.network = ipaddress.ip_network(network, strict=False)
        except ValueError as e:
            raise ValueError(f"Invalid network CIDR: {e}")

        self._first = int(self.network.network_address)
        self._last = int(self.network.broadcast_address)

        self.allocated: Set[int] = set()
        self._cursor = self._first

        self._lock = threading.Lock()

        logger.info(
            f"Initialized IP pool: network={self.network}, "
            f"size={self.network.num_addresses}"
        )

    def _to_int(self, address: Address) -> int:
        try:
            ip = ipaddress.ip_address(str(address).split("/")[0])
        except ValueError as e:
            raise ValueError(f"Invalid IP address {address}: {e}")

        if ip not in self.network:
            raise ValueError(f"IP {ip} is not in network {self.network}")

        return int(ip)

    def _to_str(self, value: int) -> str:
        return str(ipaddress.ip_address(value))

    def _scan(self, start: int, stop: int) -> Optional[int]:
        for candidate in range(start, stop + 1):
            if candidate not in self.allocated:
                return candidate
        return None

    def allocate(self) -> str:
        """
        Allocate the next free address

        Scans forward from the cursor. When the forward scan reaches the
        top of the block, the lowest released address below the cursor is
        used instead.

        Returns:
            Allocated IP address as string

        Raises:
            IPPoolExhaustedError: If no address is free
        """
        with self._lock:
            candidate = None
            if self._cursor <= self._last:
                candidate = self._scan(self._cursor, self._last)
            if candidate is None:
                candidate = self._scan(self._first, min(self._cursor, self._last + 1) - 1)

            if candidate is None:
                raise IPPoolExhaustedError(
                    pool_range=str(self.network),
                    allocated_count=len(self.allocated)
                )

            self.allocated.add(candidate)
            if candidate >= self._cursor:
                self._cursor = candidate + 1

            ip_str = self._to_str(candidate)

        logger.info(f"Allocated IP {ip_str} from {self.network}")
        return ip_str

    def release(self, address: Address) -> None:
        """
        Return an address to the pool

        Releasing an address that is not allocated is a no-op.

        Args:
            address: Address to release (CIDR suffix is ignored)
        """
        value = self._to_int(address)
        with self._lock:
            if value not in self.allocated:
                return
            self.allocated.discard(value)

        logger.info(f"Released IP {self._to_str(value)}")

    def reserve(self, address: Address) -> str:
        """
        Mark a specific address as allocated

        Used to replay persisted assignments and to hold the interface's
        own address. Reserving an allocated address is a no-op.

        Args:
            address: Address to reserve (CIDR suffix is ignored)

        Returns:
            Reserved IP address as string

        Raises:
            ValueError: If the address is outside the network
        """
        value = self._to_int(address)
        with self._lock:
            self.allocated.add(value)
        return self._to_str(value)

    def reset(self) -> None:
        """Forget every allocation and move the cursor back to the start"""
        with self._lock:
            self.allocated.clear()
            self._cursor = self._first

    def is_allocated(self, address: Address) -> bool:
        """
        Check if an IP address is allocated

        Args:
            address: IP address to check

        Returns:
            True if the address is held
        """
        try:
            value = self._to_int(address)
        except ValueError:
            return False
        with self._lock:
            return value in self.allocated

    def available_count(self) -> int:
        """
        Get count of available IP addresses

        Returns:
            Number of unallocated addresses in the block
        """
        with self._lock:
            return self.network.num_addresses - len(self.allocated)

    @property
    def cursor(self) -> Optional[str]:
        """Next candidate address, or None once past the top of the block"""
        with self._lock:
            if self._cursor > self._last:
                return None
            return self._to_str(self._cursor)

    def get_pool_stats(self) -> Dict[str, int]:
        """
        Get pool statistics

        Returns:
            Dictionary with pool statistics
        """
        with self._lock:
            total = self.network.num_addresses
            allocated = len(self.allocated)

        return {
            "total_addresses": total,
            "allocated_addresses": allocated,
            "available_addresses": total - allocated,
            "utilization_percent": int((allocated / total) * 100) if total > 0 else 0
        }
