"""Dead Man's Snitch client and snitch provisioning."""

from dms_integration.snitch.client import (
    ClientFactory,
    DeadMansSnitchClient,
    MonitorClient,
    default_client_factory,
)
from dms_integration.snitch.provisioner import SnitchProvisioner, canonical_snitch

__all__ = [
    "ClientFactory",
    "DeadMansSnitchClient",
    "MonitorClient",
    "SnitchProvisioner",
    "canonical_snitch",
    "default_client_factory",
]
