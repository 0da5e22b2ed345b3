"""Role permission helper sets."""

from formflow.db.enums.auth import Role

# Roles that can approve, reject or complete submitted instances
ROLES_CAN_REVIEW = {Role.ADMINISTRATOR, Role.MANAGER, Role.UM_NURSE, Role.QM_STAFF}
