import pytest
from pydantic import ValidationError

from monodeploy.schemas import (
    ServiceChangeSet,
    VersionRecord,
    version_info,
)
from tests.fakes import make_event


class TestServiceChangeSet:
    def test_services_are_sorted_and_unique(self):
        changes = ServiceChangeSet(services=('svc-b', 'svc-a', 'svc-b'))

        assert changes.services == ('svc-a', 'svc-b')

    def test_outputs(self):
        changes = ServiceChangeSet(services=('svc-a', 'svc-b'), should_deploy=True)

        assert changes.outputs() == {
            'changed-services': 'svc-a,svc-b',
            'changed-services-json': '["svc-a", "svc-b"]',
            'should-deploy': 'true',
        }

    def test_empty_outputs(self):
        assert ServiceChangeSet().outputs() == {
            'changed-services': '',
            'changed-services-json': '[]',
            'should-deploy': 'false',
        }

    def test_from_outputs(self):
        changes = ServiceChangeSet.from_outputs(
            {'changed-services-json': '["svc-a"]', 'should-deploy': 'true'}
        )

        assert changes == ServiceChangeSet(services=('svc-a',), should_deploy=True)


class TestVersionRecord:
    def test_requires_at_least_one_tag(self):
        with pytest.raises(ValidationError):
            VersionRecord(service='a', semantic_version='1.0.0', tags=(), primary_tag='x')

    def test_version_info(self):
        records = [
            VersionRecord(
                service=name, semantic_version=version, tags=('t',), primary_tag='t'
            )
            for name, version in (('svc-a', '1.0.0'), ('svc-b', '0.3.1'))
        ]

        assert version_info(records) == 'svc-a:1.0.0,svc-b:0.3.1'
        assert version_info([]) == ''


class TestEventContext:
    @pytest.mark.parametrize(
        'ref,name',
        [
            ('refs/heads/main', 'main'),
            ('refs/heads/feature/x', 'feature/x'),
            ('refs/tags/v1.0.0', 'v1.0.0'),
            ('refs/pull/3/merge', 'refs/pull/3/merge'),
        ],
    )
    def test_ref_name(self, ref, name):
        assert make_event(ref=ref).ref_name == name
