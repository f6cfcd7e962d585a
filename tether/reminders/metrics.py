from prometheus_client import Counter


reminders_created_total = Counter(
    "reminders_created_total",
    "Total reminders created via authoring",
)

reminder_instances_enqueued_total = Counter(
    "reminder_instances_enqueued_total",
    "Total scheduled instances enqueued (initial and rescheduled)",
)

dispatcher_ticks_total = Counter(
    "reminder_dispatcher_ticks_total",
    "Total dispatcher tick cycles",
)

reminders_delivery_success_total = Counter(
    "reminders_delivery_success_total",
    "Total successful reminder deliveries",
)

reminders_delivery_failed_total = Counter(
    "reminders_delivery_failed_total",
    "Total failed reminder deliveries",
)

notification_channels_disabled_total = Counter(
    "notification_channels_disabled_total",
    "Total channels auto-disabled after repeated failures",
)
