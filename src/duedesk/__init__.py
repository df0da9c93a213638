"""duedesk - recurring compliance task desk."""
