"""
Configuration management for the timetable generation API.
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = "Timetable Generation API"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 5000
    reload: bool = False

    # Time grid defaults (a request may override them)
    grid_days: List[str] = ["monday", "tuesday", "wednesday", "thursday", "friday"]
    grid_slots_per_day: int = 8
    grid_day_start: str = "09:00"
    grid_slot_minutes: int = 60

    # Solver
    solver_strategy: str = "backtracking"
    solver_time_limit_seconds: float = 10.0
    solver_backtrack_budget: int = 20000
    solver_max_alternatives: int = 3
    solver_attempts_per_alternative: int = 2
    solver_random_seed: int = 42
    solver_num_workers: int = 4

    # Soft objective weights
    weight_faculty_clustering: int = 2
    weight_batch_gaps: int = 3
    weight_subject_same_day: int = 5
    weight_preferred_slot: int = 4

    # Logging
    log_level: str = "INFO"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
