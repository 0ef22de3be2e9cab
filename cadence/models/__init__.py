"""SQLModel tables and the recurrence rule value object."""
