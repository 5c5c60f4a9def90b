"""
Operations Layer

Business logic that composes database methods and services into workflows.

Architecture:
- Database layer: data access, the fight source and the snapshot store
- Services layer: standings, streaks, completion and ranking units of work
- Operations layer: recording results and wiring the services to events

Each operations module focuses on a specific workflow:
- ResultOperations: record a fight result and announce it on the event bus
- LeaguePipeline: event handlers and direct trigger entry points
"""
