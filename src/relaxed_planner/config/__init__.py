"""Configuration for relaxed-planner.

- paths: data directory and file layout
- settings: environment-driven settings (pydantic-settings)
- planner: YAML-backed PlannerConfig dataclasses
- messages: user-facing message strings
"""
