"""
Configuration options for the Battery Applet.

This module contains all configurable settings for the battery applet.
Modify these values to customize the behavior.
"""

import logging

# Application identifier used for the tray indicator
APP_ID: str = "battery-applet"

# Icon shown until the power service reports one
DEFAULT_ICON_NAME: str = "battery-symbolic"

# Icon shown when the power service cannot be reached
UNAVAILABLE_ICON_NAME: str = "battery-missing-symbolic"

# Display options
SHOW_PERCENTAGE_LABEL: bool = True  # Show percentage text next to tray icon

# UPower D-Bus names
UPOWER_BUS_NAME: str = "org.freedesktop.UPower"
UPOWER_OBJECT_PATH: str = "/org/freedesktop/UPower"
UPOWER_DEVICE_INTERFACE: str = "org.freedesktop.UPower.Device"

# Timeout for D-Bus method calls in milliseconds (-1 = bus default)
DBUS_CALL_TIMEOUT_MS: int = 5000

# Brightness sliders start at this value until a backend reports one
DEFAULT_BRIGHTNESS: float = 100.0

# Settings launcher tried before the per-desktop commands
PREFERRED_SETTINGS_COMMAND: list = ["cosmic-settings", "power"]

# Power settings tools, keyed by desktop environment
SETTINGS_COMMANDS: dict = {
    "cosmic": ["cosmic-settings", "power"],
    "gnome": ["gnome-control-center", "power"],
    "kde": ["systemsettings", "kcm_powerdevilprofilesconfig"],
    "xfce": ["xfce4-power-manager-settings"],
    "cinnamon": ["cinnamon-settings", "power"],
    "mate": ["mate-power-preferences"],
}

# Logging
LOG_LEVEL: int = logging.INFO
LOG_FORMAT: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
