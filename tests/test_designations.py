import pytest
from django.core.exceptions import ValidationError
from accounts.models import AuditLog
from organization.models import EmployeeDesignation, EmployeeDesignationHistory, UnitPosition
from organization.services import DesignationService
from tests.conftest import DesignationFactory, PositionFactory, SectorFactory, UnitFactory

pytestmark = pytest.mark.django_db


class TestPrimaryDesignationSync:
    def test_new_primary_replaces_old(self, org):
        staff = org["staff"]
        old = staff.primary_designation

        new = DesignationFactory(
            employee=staff, unit=org["department"], position=org["head_position"]
        )

        old.refresh_from_db()
        staff.refresh_from_db()
        assert old.is_primary is False
        assert staff.primary_designation_id == new.id

    def test_unsetting_primary_clears_pointer(self, org):
        staff = org["staff"]
        designation = staff.primary_designation
        designation.is_primary = False
        designation.save()

        staff.refresh_from_db()
        assert staff.primary_designation_id is None

    def test_deleting_primary_promotes_another(self, org):
        staff = org["staff"]
        primary = staff.primary_designation
        secondary = DesignationFactory(
            employee=staff, unit=org["faculty"], position=org["staff_position"], is_primary=False
        )

        primary.delete()

        secondary.refresh_from_db()
        staff.refresh_from_db()
        assert secondary.is_primary is True
        assert staff.primary_designation_id == secondary.id

    def test_deleting_only_designation_clears_pointer(self, org):
        staff = org["staff"]
        staff.primary_designation.delete()

        staff.refresh_from_db()
        assert staff.primary_designation_id is None


class TestDesignationHistory:
    def test_changed_fields_are_recorded(self, org):
        designation = org["staff"].primary_designation
        designation.staff_grade = "SG-11"
        designation.position = org["head_position"]
        designation.save()

        changes = set(
            EmployeeDesignationHistory.objects.filter(designation=designation).values_list(
                "field_changed", flat=True
            )
        )
        assert changes == {"staff_grade", "position"}

    def test_no_history_on_create(self, org):
        assert not EmployeeDesignationHistory.objects.exists()

    def test_history_values(self, org):
        designation = org["staff"].primary_designation
        designation.academic_rank = "Assistant Professor I"
        designation.save()

        entry = EmployeeDesignationHistory.objects.get(designation=designation)
        assert entry.old_value is None
        assert entry.new_value == "Assistant Professor I"


class TestDesignationService:
    def test_assign_creates_primary_and_audits(self, org):
        designation = DesignationService.assign(
            org["colleague"], org["head_position"], org["department"], is_primary=True
        )

        assert designation.is_primary
        assert EmployeeDesignation.objects.filter(
            employee=org["colleague"], is_primary=True
        ).count() == 1
        assert AuditLog.objects.filter(
            entity_type="EmployeeDesignation", entity_id=str(designation.id)
        ).exists()

    def test_sector_mismatch_rejected(self, org):
        other_sector = SectorFactory()
        position = PositionFactory(sector=other_sector)

        with pytest.raises(ValidationError, match="different sector"):
            DesignationService.assign(org["staff"], position, org["department"])

    def test_whitelisted_unit_type_rejects_unlisted_position(self, org):
        UnitPosition.objects.create(unit_type="department", position=org["head_position"])

        with pytest.raises(ValidationError, match="not allowed for department"):
            DesignationService.assign(org["colleague"], org["dean_position"], org["department"])

    def test_strict_mode_requires_whitelist(self, org, settings):
        settings.HR_SETTINGS = {**settings.HR_SETTINGS, "WHITELIST_STRICT_MODE": True}

        with pytest.raises(ValidationError):
            DesignationService.assign(org["colleague"], org["head_position"], org["department"])

    def test_lenient_mode_without_whitelist(self, org):
        designation = DesignationService.assign(
            org["colleague"], org["head_position"], org["department"]
        )
        assert designation.pk

    def test_sector_position_requires_unit(self, org):
        with pytest.raises(ValidationError, match="requires a unit"):
            DesignationService.assign(org["colleague"], org["head_position"])

    def test_system_wide_position_without_unit(self, org):
        position = PositionFactory(pos_name="University Adviser", sector=None)
        designation = DesignationService.assign(org["colleague"], position)
        assert designation.unit is None

    def test_unit_cannot_be_its_own_parent(self, org):
        unit = UnitFactory(sector=org["sector"])
        unit.parent_unit = unit

        with pytest.raises(ValidationError):
            unit.save()
