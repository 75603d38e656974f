"""User-facing messages for relaxed-planner.

Every failure that reaches the CLI is rendered from one of these
templates, never from a raw traceback.
"""

# =============================================================================
# Success Messages
# =============================================================================

SUCCESS_MESSAGES = {
    "exported": "Exported planner data to {path}",
    "imported": "Imported planner data from {path}",
    "cleared": "All planner data cleared",
    "preset_deleted": "Deleted preset {preset_id}",
    "completed": "Completed '{title}' (+{points} points)",
    "uncompleted": "Marked '{title}' as not done (-{points} points)",
    "calendar_connected": "Connected to Google Calendar ({count} calendars)",
    "calendar_synced": "Synced {succeeded}/{attempted} activities to Google Calendar",
    "calendar_disconnected": "Disconnected from Google Calendar",
}

# =============================================================================
# Error Messages
# =============================================================================

ERROR_MESSAGES = {
    "generic_error": "An error occurred: {error}",
    "preset_not_found": "Preset not found: {preset_id}",
    "activity_not_found": "Activity {activity_id} is not part of preset {preset_id}",
    "export_failed": "Could not write export file: {error}",
    "import_failed": "Could not read import file: {error}",
    "import_invalid": "Import file is not a valid planner backup: {error}",
    "token_invalid": "Token file is not a valid OAuth token response: {error}",
    "save_failed": "Could not save your data: {error}",
    "clear_failed": "Could not clear planner data: {error}",
    "invalid_date": "Invalid date '{value}'. Use YYYY-MM-DD.",
    "calendar_not_connected": "Google Calendar is not connected.",
    "calendar_test_failed": "Google Calendar connection failed: {error}",
    "calendar_sync_failed": "No activities could be synced to Google Calendar.",
    "credentials_not_saved": "Connected, but credentials could not be saved for next time.",
}

# =============================================================================
# Info / Warning Messages
# =============================================================================

INFO_MESSAGES = {
    "already_completed": "'{title}' is already completed for {day}",
    "not_completed": "'{title}' is not completed for {day}",
    "no_presets": "No presets saved yet.",
    "no_matches": "No presets match '{term}'.",
    "clear_aborted": "Nothing was cleared.",
}

WARNING_MESSAGES = {
    "fallback_mode": "Structured storage is unavailable; using the preferences file only.",
    "diverged": "{entity} was last written to the preferences file only.",
    "sync_partial": "{failed} activities failed to sync: {errors}",
}
