from datetime import datetime, timezone

from app.domain.scheduling.schemas import ResourceSnapshot, ServiceSpec


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


# Monday 1 March 2027, before working hours
MONDAY_MORNING = utc(2027, 3, 1, 8, 0)


def make_resource(resource_id="pro-1", **fields) -> ResourceSnapshot:
    data = {"id": resource_id, "timezone": "UTC"}
    data.update(fields)
    return ResourceSnapshot(**data)


def days_spec(execution, buffer=None, preparation=None, **fields) -> ServiceSpec:
    return ServiceSpec(
        execution={"value": execution, "unit": "days"},
        buffer={"value": buffer, "unit": "days"} if buffer is not None else None,
        preparation={"value": preparation, "unit": "days"} if preparation is not None else None,
        **fields,
    )


def hours_spec(execution, buffer=None, preparation=None, **fields) -> ServiceSpec:
    return ServiceSpec(
        execution={"value": execution, "unit": "hours"},
        buffer={"value": buffer, "unit": "hours"} if buffer is not None else None,
        preparation={"value": preparation, "unit": "hours"} if preparation is not None else None,
        **fields,
    )
