import pytest
from datetime import timedelta
from django.core.cache import cache
from django.utils import timezone
from organization.services import (
    ApprovalRoutingService,
    HierarchicalApproverService,
    routing_cache_key,
)
from tests.conftest import DesignationFactory, PositionFactory, UnitFactory, UserFactory

pytestmark = pytest.mark.django_db


class TestFindNextApprover:
    def test_same_unit_lowest_sufficient_level(self, org):
        approver = ApprovalRoutingService.find_next_approver(org["staff"])
        assert approver == org["head"]

    def test_walks_up_to_parent_unit(self, org):
        approver = ApprovalRoutingService.find_next_approver(org["head"])
        assert approver == org["dean"]

    def test_explicit_minimum_level(self, org):
        approver = ApprovalRoutingService.find_next_approver(org["staff"], 4)
        assert approver == org["dean"]

    def test_system_wide_position(self, org):
        president_position = PositionFactory(pos_name="President", authority_level=9, sector=None)
        office = UnitFactory(unit_type="office", name="Office of the President", code="OP")
        president = UserFactory(employee_code="PRES-001")
        DesignationFactory(employee=president, unit=office, position=president_position)

        assert ApprovalRoutingService.find_next_approver(org["dean"]) == president

    def test_sector_fallback(self, org):
        other_unit = UnitFactory(
            sector=org["sector"], unit_type="office", name="Registrar", code="REG"
        )
        vp_position = PositionFactory(
            pos_name="Vice President", authority_level=7, sector=org["sector"]
        )
        vp = UserFactory(employee_code="VP-001")
        DesignationFactory(employee=vp, unit=other_unit, position=vp_position)

        assert ApprovalRoutingService.find_next_approver(org["dean"]) == vp

    def test_no_designation_returns_none(self, db):
        assert ApprovalRoutingService.find_next_approver(UserFactory()) is None

    def test_nobody_above_returns_none(self, org):
        assert ApprovalRoutingService.find_next_approver(org["dean"]) is None

    def test_result_is_cached(self, org):
        approver = ApprovalRoutingService.find_next_approver(org["staff"])
        assert cache.get(routing_cache_key(org["staff"].id)) == approver.id

    def test_designation_change_invalidates_cache(self, org):
        assert ApprovalRoutingService.find_next_approver(org["staff"]) == org["head"]

        designation = org["head"].primary_designation
        designation.end_date = timezone.localdate() - timedelta(days=1)
        designation.save()

        assert cache.get(routing_cache_key(org["staff"].id)) is None
        assert ApprovalRoutingService.find_next_approver(org["staff"]) == org["dean"]

    def test_cached_miss_is_remembered(self, org):
        assert ApprovalRoutingService.find_next_approver(org["dean"]) is None
        assert routing_cache_key(org["dean"].id) in cache


class TestApproverLists:
    def test_find_approvers_is_unique_union(self, org):
        approvers = ApprovalRoutingService.find_approvers(org["staff"])
        assert approvers == [org["head"], org["dean"]]

    def test_approval_chain_ascending(self, org):
        chain = ApprovalRoutingService.get_approval_chain(org["staff"])
        levels = [user.primary_position.authority_level for user in chain]
        assert levels == sorted(levels)
        assert chain[0] == org["head"]


class TestHierarchicalApproverService:
    def test_self_approval_escalates(self, org):
        resolved = HierarchicalApproverService.resolve_approver(org["staff"].id, org["staff"])
        assert resolved == org["head"].id

    def test_peer_at_same_level_different_position_escalates(self, org):
        peer_position = PositionFactory(
            pos_name="Lab Technician", authority_level=1, sector=org["sector"]
        )
        peer = UserFactory(employee_code="LAB-001")
        DesignationFactory(employee=peer, unit=org["department"], position=peer_position)

        resolved = HierarchicalApproverService.resolve_approver(peer.id, org["staff"])
        assert resolved == org["head"].id

    def test_higher_approver_kept(self, org):
        resolved = HierarchicalApproverService.resolve_approver(org["dean"].id, org["staff"])
        assert resolved == org["dean"].id

    def test_missing_approver_id(self, org):
        assert HierarchicalApproverService.resolve_approver(None, org["staff"]) is None

    def test_user_entry_records_escalation(self, org):
        [entry] = HierarchicalApproverService.resolve_approvers(
            [{"approver_type": "user", "approver_id": org["staff"].id}], org["staff"]
        )
        assert entry["approver_id"] == org["head"].id
        assert entry["original_approver_id"] == org["staff"].id
        assert entry["was_escalated"] is True

    def test_role_resolves_to_unit_holders(self, org, role):
        org["head"].role = role
        org["head"].save()

        [entry] = HierarchicalApproverService.resolve_approvers(
            [{"approver_type": "role", "approver_role_id": role.id}], org["staff"]
        )
        assert entry["approver_type"] == "user"
        assert entry["approver_id"] == org["head"].id
        assert entry["approver_role_id"] == role.id
        assert entry["was_resolved_from_role"] is True

    def test_role_without_holders_keeps_raw_entry(self, org, role):
        raw = {"approver_type": "role", "approver_role_id": role.id}
        assert HierarchicalApproverService.resolve_approvers([raw], org["staff"]) == [raw]

    def test_position_resolves_to_first_holder(self, org):
        [entry] = HierarchicalApproverService.resolve_approvers(
            [{"approver_type": "position", "approver_position_id": org["head_position"].id}],
            org["staff"],
        )
        assert entry["approver_id"] == org["head"].id
        assert entry["was_resolved_from_position"] is True

    def test_hierarchical_entry(self, org):
        [entry] = HierarchicalApproverService.resolve_approvers(
            [{"approver_type": "hierarchical", "min_authority_level": None}], org["staff"]
        )
        assert entry["approver_type"] == "user"
        assert entry["approver_id"] == org["head"].id
        assert entry["was_resolved_from_hierarchical"] is True
        assert entry["resolved_authority_level"] == 3
        assert entry["resolved_unit"] == "Department of Physics"

    def test_duplicates_removed(self, org):
        entry = {"approver_type": "user", "approver_id": org["dean"].id}
        resolved = HierarchicalApproverService.resolve_approvers([entry, dict(entry)], org["staff"])
        assert len(resolved) == 1
