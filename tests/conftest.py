import factory
import pytest
from datetime import date, timedelta
from django.core.cache import cache
from django.utils import timezone
from accounts.models import CustomUser, Role
from organization.models import EmployeeDesignation, Position, Sector, Unit
from leaves.models import LeaveBalance, LeaveType
from approvals.models import RequestType


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = CustomUser
        django_get_or_create = ("employee_code",)

    employee_code = factory.Sequence(lambda n: f"EMP-{n:04d}")
    username = factory.SelfAttribute("employee_code")
    email = factory.LazyAttribute(lambda o: f"{o.employee_code.lower()}@unihr.test")
    first_name = factory.Sequence(lambda n: f"Employee{n}")
    last_name = "Tester"
    gender = "F"
    hire_date = date(2020, 1, 6)
    status = "ACTIVE"
    is_active = True


class SectorFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Sector

    name = factory.Sequence(lambda n: f"Sector {n}")
    code = factory.Sequence(lambda n: f"SEC{n}")


class UnitFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Unit

    sector = factory.SubFactory(SectorFactory)
    unit_type = "department"
    name = factory.Sequence(lambda n: f"Unit {n}")
    code = factory.Sequence(lambda n: f"U{n:03d}")


class PositionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Position

    pos_code = factory.Sequence(lambda n: f"POS{n:03d}")
    pos_name = factory.Sequence(lambda n: f"Position {n}")
    authority_level = 1
    sector = None


class DesignationFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = EmployeeDesignation

    employee = factory.SubFactory(UserFactory)
    unit = factory.SubFactory(UnitFactory)
    position = factory.SubFactory(PositionFactory)
    is_primary = True
    start_date = date(2020, 1, 6)


class LeaveTypeFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = LeaveType
        django_get_or_create = ("code",)

    name = factory.LazyAttribute(lambda o: f"{o.code} Leave")
    code = "VL"
    is_active = True


class RequestTypeFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = RequestType
        django_get_or_create = ("name",)

    name = factory.Sequence(lambda n: f"Request Type {n}")
    is_published = True
    approval_steps = factory.LazyFunction(
        lambda: [{"name": "Supervisor", "sort_order": 1, "approvers": [{"approver_type": "hierarchical"}]}]
    )


def next_weekday(weekday=0):
    """Next date (after today) falling on ``weekday``; Monday is 0."""
    today = timezone.localdate()
    ahead = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=ahead)


def set_balance(employee, leave_type, entitled, year=None):
    balance = LeaveBalance.get_or_create_balance(employee, leave_type, year)
    balance.entitled = entitled
    balance.recalculate_balance()
    return balance


@pytest.fixture(autouse=True)
def hr_settings(settings):
    settings.HR_SETTINGS = {
        **settings.HR_SETTINGS,
        "TWO_FACTOR_REQUIRED_FOR_APPROVALS": False,
        "WHITELIST_STRICT_MODE": False,
        "APPROVAL_EMAIL_NOTIFICATIONS": False,
    }
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def org(db):
    """
    A faculty with one department below it.

    staff (L1) and head (L3) sit in the department, dean (L5) in the
    faculty. Positions belong to the same sector as both units.
    """
    sector = SectorFactory(name="Academic Affairs", code="ACAD")
    faculty = UnitFactory(sector=sector, unit_type="faculty", name="Faculty of Science", code="FSCI")
    department = UnitFactory(
        sector=sector, unit_type="department", name="Department of Physics", code="PHYS",
        parent_unit=faculty,
    )

    staff_position = PositionFactory(pos_name="Instructor", authority_level=1, sector=sector)
    head_position = PositionFactory(pos_name="Department Head", authority_level=3, sector=sector)
    dean_position = PositionFactory(pos_name="Dean", authority_level=5, sector=sector)

    staff = UserFactory(employee_code="STAFF-001", first_name="Ana", last_name="Reyes")
    colleague = UserFactory(employee_code="STAFF-002", first_name="Ben", last_name="Cruz")
    head = UserFactory(employee_code="HEAD-001", first_name="Carla", last_name="Santos")
    dean = UserFactory(employee_code="DEAN-001", first_name="Dario", last_name="Lim")

    DesignationFactory(employee=staff, unit=department, position=staff_position)
    DesignationFactory(employee=colleague, unit=department, position=staff_position)
    DesignationFactory(employee=head, unit=department, position=head_position)
    DesignationFactory(employee=dean, unit=faculty, position=dean_position)

    return {
        "sector": sector,
        "faculty": faculty,
        "department": department,
        "staff_position": staff_position,
        "head_position": head_position,
        "dean_position": dean_position,
        "staff": staff,
        "colleague": colleague,
        "head": head,
        "dean": dean,
    }


@pytest.fixture
def leave_types(db):
    return {
        "VL": LeaveTypeFactory(
            code="VL", name="Vacation Leave", can_carry_over=True, sort_order=1
        ),
        "SL": LeaveTypeFactory(code="SL", name="Sick Leave", can_carry_over=True, sort_order=2),
        "FL": LeaveTypeFactory(
            code="FL", name="Mandatory/Forced Leave", uses_credits_from="VL", sort_order=3
        ),
        "SPL": LeaveTypeFactory(
            code="SPL",
            name="Special Privilege Leave",
            is_special_leave=True,
            max_days_per_request=3,
            max_days_per_year=3,
            sort_order=4,
        ),
    }


@pytest.fixture
def leave_request_type(db):
    return RequestTypeFactory(
        name="Leave Request",
        approval_steps=[
            {
                "name": "Department Head",
                "sort_order": 1,
                "approvers": [{"approver_type": "hierarchical"}],
                "sla_hours": 48,
            }
        ],
    )


@pytest.fixture
def role(db):
    role, _ = Role.objects.get_or_create(
        name="DEPARTMENT_HEAD",
        defaults={"display_name": "Department Head", "level": 5, "can_approve_leave": True},
    )
    return role
