"""
Configuration management using Pydantic models loaded from YAML.

The YAML file describes one or more tenants: weekly hours, date exceptions,
booking policy and, optionally, already-booked appointments used to seed the
in-memory store.
"""

from dataclasses import replace
from datetime import date, datetime, time
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.exceptions import ConfigNotFoundError
from .domain.models import (
    BUFFER_MAX_MINUTES,
    DURATION_MAX_MINUTES,
    DURATION_MIN_MINUTES,
    MAX_ADVANCE_DAYS_LIMIT,
    MIN_ADVANCE_HOURS_LIMIT,
    Appointment,
    AppointmentStatus,
    BookingPolicy,
    CalendarConfig,
    DateException,
    WeeklyHours,
    default_weekly_hours,
)


def _check_window(is_open: bool, open_time: Optional[time], close_time: Optional[time]) -> None:
    if not is_open:
        return
    if open_time is None or close_time is None:
        raise ValueError("open_time and close_time are required when is_open is true")
    if open_time >= close_time:
        raise ValueError(f"open_time {open_time:%H:%M} must be before close_time {close_time:%H:%M}")


class WeeklyHoursConfig(BaseModel):
    """Opening hours for one weekday (0=Sunday, 6=Saturday)."""
    weekday: int
    is_open: bool = True
    open_time: Optional[time] = None
    close_time: Optional[time] = None

    @field_validator("weekday")
    @classmethod
    def validate_weekday(cls, v: int) -> int:
        """Validate weekday is between 0 and 6."""
        if not 0 <= v <= 6:
            raise ValueError(f"Weekday must be between 0 and 6, got {v}")
        return v

    @model_validator(mode="after")
    def validate_window(self) -> "WeeklyHoursConfig":
        _check_window(self.is_open, self.open_time, self.close_time)
        return self

    @classmethod
    def from_domain(cls, hours: WeeklyHours) -> "WeeklyHoursConfig":
        return cls(
            weekday=hours.weekday,
            is_open=hours.is_open,
            open_time=hours.open_time,
            close_time=hours.close_time,
        )

    def to_domain(self) -> WeeklyHours:
        if not self.is_open:
            return WeeklyHours.closed(self.weekday)
        return WeeklyHours(
            weekday=self.weekday,
            is_open=True,
            open_time=self.open_time,
            close_time=self.close_time,
        )


class DateExceptionConfig(BaseModel):
    """Special hours for a single date."""
    date: date
    is_open: bool = False
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    reason: Optional[str] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def validate_window(self) -> "DateExceptionConfig":
        _check_window(self.is_open, self.open_time, self.close_time)
        return self

    def to_domain(self) -> DateException:
        return DateException(
            date=self.date,
            is_open=self.is_open,
            open_time=self.open_time if self.is_open else None,
            close_time=self.close_time if self.is_open else None,
            reason=self.reason,
            description=self.description,
        )


class PolicyConfig(BaseModel):
    """Booking policy of a tenant."""
    default_duration_minutes: int = Field(default=30, ge=DURATION_MIN_MINUTES, le=DURATION_MAX_MINUTES)
    buffer_minutes: int = Field(default=5, ge=0, le=BUFFER_MAX_MINUTES)
    max_advance_booking_days: int = Field(default=30, ge=1, le=MAX_ADVANCE_DAYS_LIMIT)
    min_advance_booking_hours: float = Field(default=2, ge=0, le=MIN_ADVANCE_HOURS_LIMIT)
    allow_same_day_booking: bool = True

    def to_domain(self) -> BookingPolicy:
        return BookingPolicy(**self.model_dump())


class AppointmentConfig(BaseModel):
    """An already-booked appointment used to seed the store."""
    id: str
    start: datetime
    duration_minutes: int = Field(gt=0)
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    client_id: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None


class TenantConfig(BaseModel):
    """Calendar configuration of one tenant."""
    tenant_id: str
    policy: Optional[PolicyConfig] = None
    weekly_hours: List[WeeklyHoursConfig] = Field(
        default_factory=lambda: [WeeklyHoursConfig.from_domain(h) for h in default_weekly_hours()]
    )
    exceptions: List[DateExceptionConfig] = Field(default_factory=list)
    appointments: List[AppointmentConfig] = Field(default_factory=list)

    @field_validator("weekly_hours")
    @classmethod
    def validate_unique_weekdays(cls, value: List[WeeklyHoursConfig]) -> List[WeeklyHoursConfig]:
        """Ensure each weekday is configured at most once."""
        seen: set[int] = set()
        for entry in value:
            if entry.weekday in seen:
                raise ValueError(f"Duplicate weekly hours for weekday {entry.weekday}")
            seen.add(entry.weekday)
        return value

    @field_validator("exceptions")
    @classmethod
    def validate_unique_dates(cls, value: List[DateExceptionConfig]) -> List[DateExceptionConfig]:
        """Ensure at most one exception per date."""
        seen: set[date] = set()
        for entry in value:
            if entry.date in seen:
                raise ValueError(f"Duplicate date exception for {entry.date.isoformat()}")
            seen.add(entry.date)
        return value

    def to_calendar_config(self) -> CalendarConfig:
        """
        Build the domain snapshot for this tenant.

        Raises:
            ConfigNotFoundError: If no policy is configured
        """
        if self.policy is None:
            raise ConfigNotFoundError(self.tenant_id)
        return CalendarConfig.build(
            tenant_id=self.tenant_id,
            policy=self.policy.to_domain(),
            weekly_hours=[entry.to_domain() for entry in self.weekly_hours],
            exceptions=[entry.to_domain() for entry in self.exceptions],
        )

    def to_appointments(self) -> List[Appointment]:
        appointments = []
        for entry in self.appointments:
            booked = Appointment.book(
                tenant_id=self.tenant_id,
                start=entry.start,
                duration_minutes=entry.duration_minutes,
                client_id=entry.client_id,
                notes=entry.notes,
                created_by=entry.created_by,
                appointment_id=entry.id,
            )
            # Seed data reflects stored state and bypasses the lifecycle
            appointments.append(replace(booked, status=entry.status))
        return appointments


class AppConfig(BaseModel):
    """Application configuration."""
    default_tenant: Optional[str] = None
    tenants: List[TenantConfig] = Field(default_factory=list)

    @field_validator("tenants")
    @classmethod
    def validate_tenants(cls, value: List[TenantConfig]) -> List[TenantConfig]:
        """Ensure tenant ids are unique."""
        seen: set[str] = set()
        for tenant in value:
            if tenant.tenant_id in seen:
                raise ValueError(f"Duplicate tenant detected: {tenant.tenant_id}")
            seen.add(tenant.tenant_id)
        return value

    def find_tenant(self, tenant_id: Optional[str] = None) -> TenantConfig:
        """
        Look up a tenant, falling back to ``default_tenant``.

        Raises:
            ConfigNotFoundError: If the tenant is not configured
        """
        wanted = tenant_id or self.default_tenant
        for tenant in self.tenants:
            if tenant.tenant_id == wanted:
                return tenant
        raise ConfigNotFoundError(wanted or "<none>", missing="calendar")

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of bookingcore/)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
