"""Ride statuses and the groupings the services rely on."""

STATUS_WAITING = 'waiting'
STATUS_IN_PROGRESS = 'in_progress'
STATUS_COMPLETED = 'completed'
STATUS_CANCELLED = 'cancelled'
STATUS_ARCHIVED = 'archived'

STATUS_CHOICES = [
    (STATUS_WAITING, 'Waiting'),
    (STATUS_IN_PROGRESS, 'In Progress'),
    (STATUS_COMPLETED, 'Completed'),
    (STATUS_CANCELLED, 'Cancelled'),
    (STATUS_ARCHIVED, 'Archived'),
]

# Rides that still block deletion of the locations they reference
ACTIVE_STATUSES = (STATUS_WAITING, STATUS_IN_PROGRESS)
HISTORICAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED, STATUS_ARCHIVED)

# Transitions a caller may request explicitly; archiving only happens by sweep
ALLOWED_TRANSITIONS = {
    STATUS_WAITING: (STATUS_IN_PROGRESS, STATUS_CANCELLED),
    STATUS_IN_PROGRESS: (STATUS_COMPLETED, STATUS_CANCELLED),
    STATUS_COMPLETED: (),
    STATUS_CANCELLED: (),
    STATUS_ARCHIVED: (),
}

MIN_SEATS = 1
MAX_SEATS = 8
