"""String enums persisted as plain VARCHAR columns."""

import enum


class Role(str, enum.Enum):
    USER = "USER"
    MANAGER = "MANAGER"
    APPROVER = "APPROVER"
    ADMIN = "ADMIN"


class RequestStatus(str, enum.Enum):
    OPEN = "OPEN"
    PENDING_MANAGER_APPROVAL = "PENDING_MANAGER_APPROVAL"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REOPENED = "REOPENED"
    # Reserved for fulfilment tracking; no workflow action reaches it.
    COMPLETED = "COMPLETED"


class ManagerStatus(str, enum.Enum):
    PENDING_AUTHORIZATION = "PENDING_AUTHORIZATION"
    AUTHORIZE = "AUTHORIZE"
    DENY = "DENY"
    RETURN = "RETURN"


class ApproverStatus(str, enum.Enum):
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    RETURN = "RETURN"


class NotificationType(str, enum.Enum):
    REQUEST_CREATED = "REQUEST_CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    REQUEST_APPROVED = "REQUEST_APPROVED"
    REQUEST_REJECTED = "REQUEST_REJECTED"


class AcquisitionKind(str, enum.Enum):
    PURCHASE = "PURCHASE"
    RENEWAL = "RENEWAL"
    SERVICE = "SERVICE"
    LEASE = "LEASE"


class ParameterType(str, enum.Enum):
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    COLOR = "COLOR"
    IMAGE = "IMAGE"
