"""
Configuration settings for the gradebook app.

These values can be overridden in Django settings by prefixing with GRADEBOOK_.
For example, to move the D cutoff to 33:
    GRADEBOOK_GRADE_BOUNDARIES = [(90, 'A+'), (80, 'A'), (70, 'B+'), (60, 'B'),
                                  (50, 'C+'), (40, 'C'), (33, 'D')]

All configuration values are lazily loaded to avoid Django setup issues.
"""


def _get_setting(name, default):
    """Get a gradebook setting from Django settings or use default."""
    from django.conf import settings
    return getattr(settings, f'GRADEBOOK_{name}', default)


# Define defaults as constants for direct use when Django settings are not needed
_DEFAULTS = {
    # Grading policy: (minimum percentage, grade), highest first; below the
    # last threshold is F
    'GRADE_BOUNDARIES': (
        (90, 'A+'),
        (80, 'A'),
        (70, 'B+'),
        (60, 'B'),
        (50, 'C+'),
        (40, 'C'),
        (35, 'D'),
    ),
    # 'marks': marks_obtained >= passing_marks
    # 'percentage': percentage >= PASS_PERCENTAGE
    'PASS_RULE': 'marks',
    'PASS_PERCENTAGE': 40,

    # File upload limits
    'MAX_FILE_SIZE': 5 * 1024 * 1024,  # 5 MB

    # Bulk operation settings
    'BULK_UPDATE_BATCH_SIZE': 500,

    # Analytics and display limits
    'TOP_PERFORMERS_LIMIT': 5,
    'RECENT_ITEMS_LIMIT': 5,
    'UPCOMING_TESTS_LIMIT': 3,
    'TREND_LIMIT': 10,

    # Export settings
    'EXCEL_HEADER_COLOR': '4F46E5',
}


class _ConfigProxy:
    """
    Lazy configuration proxy that loads settings only when accessed.
    This avoids Django setup issues during module import.
    """

    def __getattr__(self, name):
        if name in _DEFAULTS:
            return _get_setting(name, _DEFAULTS[name])
        raise AttributeError(f"Unknown config setting: {name}")


# Module-level proxy object for attribute access
_config = _ConfigProxy()


def __getattr__(name):
    """Enable module-level attribute access via the config proxy."""
    return getattr(_config, name)
