import enum


class JobStatus(str, enum.Enum):
    CREATED = "CREATED"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class JobType(str, enum.Enum):
    BREAKDOWN = "BREAKDOWN"
    PREVENTIVE = "PREVENTIVE"
    CORRECTIVE = "CORRECTIVE"


class JobPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class CostType(str, enum.Enum):
    MATERIAL = "MATERIAL"
    LABOR = "LABOR"
    FUEL = "FUEL"
    SERVICE = "SERVICE"
    OTHER = "OTHER"


class DowntimeCategory(str, enum.Enum):
    BREAKDOWN = "BREAKDOWN"
    WAITING_PARTS = "WAITING_PARTS"
    WAITING_LABOR = "WAITING_LABOR"
    SUPPLY_CHAIN_DELAY = "SUPPLY_CHAIN_DELAY"
    SCHEDULED_MAINTENANCE = "SCHEDULED_MAINTENANCE"
    WEATHER = "WEATHER"
    OPERATOR_UNAVAILABLE = "OPERATOR_UNAVAILABLE"
    OTHER = "OTHER"


class IntervalType(str, enum.Enum):
    HOURS = "HOURS"
    DAYS = "DAYS"
    KILOMETERS = "KILOMETERS"
    MILES = "MILES"


class AlertType(str, enum.Enum):
    METER_ROLLBACK = "METER_ROLLBACK"
    ABNORMAL_CONSUMPTION = "ABNORMAL_CONSUMPTION"
    ZERO_CONSUMPTION = "ZERO_CONSUMPTION"
    SNAPSHOT_INTEGRITY = "SNAPSHOT_INTEGRITY"


class AlertSeverity(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AssetStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
