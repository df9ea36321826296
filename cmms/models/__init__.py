from cmms.models.activity import Alert, AuditLog, Notification, PeriodLock
from cmms.models.asset import Asset, FailureType
from cmms.models.downtime import DowntimeLog
from cmms.models.employee import Employee
from cmms.models.job import Job, JobEvent
from cmms.models.job_cost_log import JobCostLog
from cmms.models.pm_schedule import MeterReading, PMSchedule
from cmms.models.snapshot import DocumentHash, JobCostSnapshot
from cmms.models.stores import FuelIssue, Item, ItemRequest, ItemRequestLine

__all__ = [
    "Alert",
    "Asset",
    "AuditLog",
    "DocumentHash",
    "DowntimeLog",
    "Employee",
    "FailureType",
    "FuelIssue",
    "Item",
    "ItemRequest",
    "ItemRequestLine",
    "Job",
    "JobCostLog",
    "JobCostSnapshot",
    "JobEvent",
    "MeterReading",
    "Notification",
    "PMSchedule",
    "PeriodLock",
]
