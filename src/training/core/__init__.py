"""Core business logic module.

Modules:
- models: TrainingSession / Exercise records
- validator: answer checking per answer type
- scorer: performance assessment of a completed session
- promotion: pure promotion evaluation
- promotion_service: promotion records, approval and execution
- session_manager: live session lifecycle
- timers, side_effects, events, notifications: lifecycle plumbing
- ports: collaborator interfaces
- exercise_bank: file-backed exercise generator
"""

__all__ = [
    "models",
    "validator",
    "scorer",
    "promotion",
    "promotion_service",
    "session_manager",
    "timers",
    "side_effects",
    "events",
    "notifications",
    "ports",
    "exercise_bank",
]
