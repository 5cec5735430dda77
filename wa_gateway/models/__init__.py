from wa_gateway.models.instance import (
    ConnectionEvent,
    EventSource,
    InstanceRecord,
    InstanceStatus,
)

__all__ = [
    "ConnectionEvent",
    "EventSource",
    "InstanceRecord",
    "InstanceStatus",
]
