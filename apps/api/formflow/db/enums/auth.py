"""Auth-related enums."""

from enum import Enum


class Role(str, Enum):
    """
    Roles carried by the identity context.

    - ADMINISTRATOR: Configures the form hierarchy
    - SERVICE_COORDINATOR: Fills in and submits instances
    - UM_NURSE / QM_STAFF: Clinical reviewers
    - COMMUNICATIONS_TEAM: Outreach, read-mostly
    - MANAGER: Supervises reviewers
    """

    ADMINISTRATOR = "administrator"
    SERVICE_COORDINATOR = "service_coordinator"
    UM_NURSE = "um_nurse"
    QM_STAFF = "qm_staff"
    COMMUNICATIONS_TEAM = "communications_team"
    MANAGER = "manager"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_
