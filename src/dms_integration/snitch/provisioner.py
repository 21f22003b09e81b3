"""Snitch provisioning — find-or-create, check in, and delete snitches.

A snitch is looked up by its derived name before anything is created,
so repeated passes never create a second one. When several snitches
share a name, the earliest-created is canonical and a warning is logged;
deletion removes all of them.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from dms_integration.errors import MonitorServiceError
from dms_integration.models import IntentRecord, ManagedResource, Snitch, SnitchSpec
from dms_integration.naming import NamingStrategy
from dms_integration.snitch.client import MonitorClient

logger = logging.getLogger(__name__)

DEFAULT_RUNBOOK_URL = (
    "https://github.com/openshift/ops-sop/blob/master/v4/alerts/cluster_has_gone_missing.md"
)

_EPOCH = datetime.min.replace(tzinfo=UTC)


def canonical_snitch(snitches: list[Snitch]) -> Snitch:
    """Pick the earliest-created snitch; ties keep API order."""
    if len(snitches) > 1:
        logger.warning(
            "Found %d snitches named %s, using the earliest created",
            len(snitches), snitches[0].name,
        )
    return min(snitches, key=_created_at)


def _created_at(snitch: Snitch) -> datetime:
    if snitch.created_at is None:
        return _EPOCH
    if snitch.created_at.tzinfo is None:
        return snitch.created_at.replace(tzinfo=UTC)
    return snitch.created_at


def snitch_notes(cluster_id: str, runbook_url: str = DEFAULT_RUNBOOK_URL) -> str:
    # fenced so the service renders underscores literally
    return f"```cluster_id: {cluster_id}\\nrunbook: {runbook_url}```"


class SnitchProvisioner:
    """Drives the snitch for one (intent, cluster) pair."""

    def __init__(
        self,
        naming: NamingStrategy,
        interval: str = "15_minute",
        alert_type: str = "basic",
        runbook_url: str = DEFAULT_RUNBOOK_URL,
    ) -> None:
        self._naming = naming
        self._interval = interval
        self._alert_type = alert_type
        self._runbook_url = runbook_url

    def ensure_monitor(
        self,
        intent: IntentRecord,
        resource: ManagedResource,
        client: MonitorClient,
    ) -> Snitch:
        """Find or create the snitch, checking it in while still pending."""
        # both derivations happen up front so a missing cluster ID fails
        # before anything is created
        cluster_id = self._naming.cluster_id(resource)
        name = self._naming.monitor_name(resource, intent.snitch_name_postfix)

        existing = client.find_by_name(name)
        if existing:
            snitch = canonical_snitch(existing)
        else:
            logger.info("Creating snitch %s for cluster %s", name, cluster_id)
            snitch = client.create(SnitchSpec(
                name=name,
                interval=self._interval,
                alert_type=self._alert_type,
                tags=list(intent.tags),
                notes=snitch_notes(cluster_id, self._runbook_url),
            ))

        if snitch.pending:
            logger.info("Checking in snitch %s", name)
            client.check_in(snitch)
        return snitch

    def delete_monitors(
        self,
        intent: IntentRecord,
        resource: ManagedResource,
        client: MonitorClient,
    ) -> int:
        """Delete every snitch carrying the derived name; return the count."""
        name = self._naming.monitor_name(resource, intent.snitch_name_postfix)
        deleted = 0
        for snitch in client.find_by_name(name):
            if not client.delete(snitch.token):
                raise MonitorServiceError(f"Failed to delete snitch {name} ({snitch.token})")
            logger.info("Deleted snitch %s", name)
            deleted += 1
        return deleted
