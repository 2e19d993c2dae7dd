class SettingsKeys:
    """
    Keys of the flat settings store, grouped by their single writer.
    """

    # operator (admin router); run self-healing re-enables BOT_ENABLED
    BOT_ENABLED = "bot_enabled"
    EXPECTED_STATUS = "expected_status"

    # run orchestration
    LAST_HEARTBEAT = "last_heartbeat"

    # auto-tuner
    LAST_ADVISORY_CONSULT_AM = "last_advisory_consult_am"
    LAST_ADVISORY_CONSULT_PM = "last_advisory_consult_pm"
    ECONOMIC_CALENDAR = "economic_calendar"
    ECONOMIC_CALENDAR_UPDATED_AT = "economic_calendar_updated_at"

    # auto-tuner or manual override
    STRATEGY_CONFIG = "strategy_config"
