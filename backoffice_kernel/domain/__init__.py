"""Pure domain layer: DTOs, clock, session context, workflows, command results."""
