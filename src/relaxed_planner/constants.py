"""Constants for relaxed-planner.

Key names, table names, remote endpoints and defaults shared across the
storage, service and calendar layers. Key-value names are the persisted
namespace and must not change between releases.
"""

from typing import Final

# =============================================================================
# Application
# =============================================================================

APP_NAME: Final[str] = "relaxed-planner"
APP_DISPLAY_NAME: Final[str] = "Relaxed Point Planner"
APP_URL: Final[str] = "https://relaxed-point-planner.app"
LOGGER_NAMESPACE: Final[str] = "relaxed_planner"

# =============================================================================
# Files and directories
# =============================================================================

DEFAULT_DATA_DIR_NAME: Final[str] = ".relaxed-planner"
DATABASE_FILE_NAME: Final[str] = "planner.db"
PREFERENCES_FILE_NAME: Final[str] = "preferences.json"
CONFIG_FILE_NAME: Final[str] = "config.yaml"
LOG_FILE_NAME: Final[str] = "planner.log"
CONFIG_SECTION_KEY: Final[str] = "planner"

# =============================================================================
# Key-value store keys
# =============================================================================

KV_KEY_ACTIVITIES: Final[str] = "activities"
KV_KEY_PRESETS: Final[str] = "presets"
KV_KEY_TOTAL_POINTS: Final[str] = "totalPoints"
KV_KEY_DAILY_POINTS: Final[str] = "dailyPoints"
KV_KEY_COMPLETED_TASKS: Final[str] = "completedTasks"
KV_KEY_LOADED_PRESET_ID: Final[str] = "loadedPresetId"
KV_KEY_LAST_ACTIVITY_DATE: Final[str] = "lastActivityDate"
KV_KEY_CALENDAR_SYNC_DATA: Final[str] = "calendarSyncData"
KV_KEY_CALENDAR_SYNC_STATUS: Final[str] = "calendar_sync_status"
KV_KEY_GOOGLE_CREDENTIALS: Final[str] = "google_calendar_credentials"
# Entity kinds whose latest write only reached the key-value store
KV_KEY_STORAGE_STATE: Final[str] = "storageState"

# Keys wiped by a full data clear. Credentials belong to the calendar
# coordinator and are removed through disconnect instead.
KV_APP_DATA_KEYS: Final[tuple[str, ...]] = (
    KV_KEY_STORAGE_STATE,
    KV_KEY_ACTIVITIES,
    KV_KEY_PRESETS,
    KV_KEY_TOTAL_POINTS,
    KV_KEY_DAILY_POINTS,
    KV_KEY_COMPLETED_TASKS,
    KV_KEY_LOADED_PRESET_ID,
    KV_KEY_LAST_ACTIVITY_DATE,
    KV_KEY_CALENDAR_SYNC_DATA,
)

# Legacy flat keys written by the first storage generation
LEGACY_KEY_ACTIVITIES: Final[str] = "relaxed-scheduler-activities"
LEGACY_KEY_PRESETS: Final[str] = "relaxed-scheduler-presets"
LEGACY_KEY_POINTS: Final[str] = "relaxed-scheduler-points"
LEGACY_KEY_COMPLETED: Final[str] = "relaxed-scheduler-completed"

# =============================================================================
# Structured store
# =============================================================================

TABLE_PRESETS: Final[str] = "presets"
TABLE_PRESET_ACTIVITIES: Final[str] = "preset_activities"
TABLE_COMPLETED_TASKS: Final[str] = "completed_tasks"
TABLE_POINTS_TRACKING: Final[str] = "points_tracking"
POINTS_ROW_ID: Final[str] = "main"
SQLITE_TIMEOUT_SECONDS: Final[float] = 30.0
OPERATION_QUEUE_THREAD_NAME: Final[str] = "planner-sqlite"

# =============================================================================
# Schedule
# =============================================================================

# Day strings match the format the mobile app stored ("Sat Oct 17 2026")
DAY_FORMAT: Final[str] = "%a %b %d %Y"
TIME_FORMAT: Final[str] = "%H:%M"

CATEGORY_FITNESS: Final[str] = "Fitness"
CATEGORY_WORK: Final[str] = "Work"
CATEGORY_LEISURE: Final[str] = "Leisure"
CATEGORY_RECOVERY: Final[str] = "Recovery"

# =============================================================================
# Google Calendar
# =============================================================================

GOOGLE_CALENDAR_BASE_URL: Final[str] = "https://www.googleapis.com/calendar/v3"
GOOGLE_TOKEN_URL: Final[str] = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_LIST_PATH: Final[str] = "/users/me/calendarList"
GOOGLE_EVENTS_PATH_TEMPLATE: Final[str] = "/calendars/{calendar_id}/events"
GOOGLE_GRANT_TYPE_REFRESH: Final[str] = "refresh_token"
DEFAULT_CALENDAR_ID: Final[str] = "primary"
AUTH_SCHEME_BEARER: Final[str] = "Bearer"

REMINDER_LEAD_MINUTES: Final[int] = 15
DEFAULT_EVENT_DURATION_MINUTES: Final[int] = 60
REMINDER_METHOD_POPUP: Final[str] = "popup"
EVENT_CREATED_BY_FOOTER: Final[str] = f"Created by {APP_DISPLAY_NAME}"

NOTIFICATION_TITLE_TEMPLATE: Final[str] = "Upcoming: {title}"
NOTIFICATION_BODY_TEMPLATE: Final[str] = "Starting in {minutes} minutes. Points: {points}"
NOTIFICATION_ID_MASK: Final[int] = 0x7FFFFFFF

# =============================================================================
# Logging
# =============================================================================

DEFAULT_LOG_LEVEL: Final[str] = "INFO"
VALID_LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
DEFAULT_LOG_ROTATION_ENABLED: Final[bool] = True
DEFAULT_LOG_MAX_SIZE_MB: Final[int] = 5
DEFAULT_LOG_BACKUP_COUNT: Final[int] = 3
MIN_LOG_MAX_SIZE_MB: Final[int] = 1
MAX_LOG_MAX_SIZE_MB: Final[int] = 100
MAX_LOG_BACKUP_COUNT: Final[int] = 10
TOKEN_LOG_PREFIX_LENGTH: Final[int] = 6

# =============================================================================
# HTTP
# =============================================================================

DEFAULT_HTTP_TIMEOUT_SECONDS: Final[float] = 30.0
MIN_HTTP_TIMEOUT_SECONDS: Final[float] = 1.0
MAX_HTTP_TIMEOUT_SECONDS: Final[float] = 300.0
