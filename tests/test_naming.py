"""Tests for snitch and artifact naming."""

import pytest
from conftest import cluster_object

from dms_integration.errors import ClusterIDError
from dms_integration.models import ManagedResource
from dms_integration.naming import (
    RestrictedNaming,
    StandardNaming,
    artifact_name,
    internal_cluster_id,
    naming_strategy,
)


def _resource(**kwargs) -> ManagedResource:
    return ManagedResource.from_object(cluster_object(**kwargs))


class TestStandardNaming:
    def test_monitor_name(self):
        assert StandardNaming().monitor_name(_resource(name="a")) == "a.example.com"

    def test_monitor_name_with_postfix(self):
        name = StandardNaming().monitor_name(_resource(name="a"), "osd")
        assert name == "a.example.com-osd"

    def test_cluster_id(self):
        assert StandardNaming().cluster_id(_resource(cluster_id="cid-9")) == "cid-9"

    def test_missing_cluster_id(self):
        with pytest.raises(ClusterIDError, match="uhc-production-a123/a"):
            StandardNaming().cluster_id(_resource(cluster_id=None))


class TestRestrictedNaming:
    def test_monitor_name_is_internal_id(self):
        r = _resource(namespace="uhc-production-1a2b3c")
        assert RestrictedNaming().monitor_name(r, "osd") == "1a2b3c"

    def test_cluster_id_is_internal_id(self):
        r = _resource(namespace="uhc-production-1a2b3c")
        assert RestrictedNaming().cluster_id(r) == "1a2b3c"

    def test_still_requires_external_id(self):
        with pytest.raises(ClusterIDError):
            RestrictedNaming().cluster_id(_resource(cluster_id=None))


class TestHelpers:
    def test_naming_strategy(self):
        assert isinstance(naming_strategy(False), StandardNaming)
        assert isinstance(naming_strategy(True), RestrictedNaming)

    def test_internal_id_without_dash(self):
        assert internal_cluster_id(_resource(namespace="plain")) == "plain"

    def test_artifact_name(self):
        assert artifact_name("a") == "a-dms-secret"
        assert artifact_name("a", "osd") == "a-osd-dms-secret"
