"""
Text shown by the applet for a device snapshot.
"""

from datetime import timedelta

from device_sync import StateSnapshot


def format_duration(duration: timedelta) -> str:
    """
    Convert a duration to a short human-readable form.

    Converts 2.5 hours to '2 hr 30 min', 45 minutes to '45 min', etc.
    """
    minutes_total = max(0, int(duration.total_seconds())) // 60
    hours, minutes = divmod(minutes_total, 60)

    if hours > 0 and minutes > 0:
        return f"{hours} hr {minutes} min"
    elif hours > 0:
        return f"{hours} hr"
    else:
        return f"{minutes} min"


def percentage_label(snapshot: StateSnapshot) -> str:
    return f"{snapshot.battery_percent:.0f}%"


def battery_summary(snapshot: StateSnapshot) -> str:
    """Describe the time left and charge, e.g. '2 hr 30 min until empty (50%)'."""
    return f"{format_duration(snapshot.time_remaining)} until empty ({percentage_label(snapshot)})"
