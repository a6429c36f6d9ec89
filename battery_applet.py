#!/usr/bin/env python3
"""
Battery Applet

A system tray battery applet for Linux using GTK3 and AppIndicator3.
Follows the UPower display device over D-Bus and shows its charge, time
remaining and icon, with brightness controls and a power settings shortcut.
"""

import asyncio
import logging
import os
import subprocess
import sys
from typing import Optional

import gi
gi.require_version('Gtk', '3.0')
gi.require_version('AppIndicator3', '0.1')
gi.require_version('Gdk', '3.0')
from gi.events import GLibEventLoopPolicy
from gi.repository import Gtk, AppIndicator3, Gdk

import config
import upower
from device_sync import ControlIntent, ControlTarget, DeviceSynchronizer, StateSnapshot
from status_text import battery_summary, percentage_label

logger = logging.getLogger(__name__)


# CSS for menu styling that respects system theme
MENU_CSS = """
.battery-header {
    font-weight: bold;
    font-size: 1.1em;
    padding: 8px 12px;
}
.battery-time {
    padding: 4px 12px;
    font-size: 0.9em;
    opacity: 0.8;
}
.brightness-value {
    min-width: 4em;
}
"""


class BrightnessDialog:
    """Dialog with display and keyboard brightness sliders."""

    def __init__(self, synchronizer: DeviceSynchronizer) -> None:
        self.synchronizer = synchronizer
        self.dialog = Gtk.Dialog(title="Brightness", transient_for=None, flags=0)
        self.dialog.add_button("Close", Gtk.ResponseType.CLOSE)
        self.dialog.set_default_size(360, 120)
        self.dialog.connect("response", lambda d, r: d.destroy())

        grid = Gtk.Grid(column_spacing=8, row_spacing=8)
        grid.set_margin_start(12)
        grid.set_margin_end(12)
        grid.set_margin_top(12)
        self.dialog.get_content_area().add(grid)

        self._add_slider(grid, 0, "display-brightness-symbolic",
                         ControlTarget.DISPLAY_BRIGHTNESS, synchronizer.display_brightness)
        self._add_slider(grid, 1, "keyboard-brightness-symbolic",
                         ControlTarget.KEYBOARD_BRIGHTNESS, synchronizer.keyboard_brightness)

    def _add_slider(self, grid: Gtk.Grid, row: int, icon_name: str,
                    target: ControlTarget, value: float) -> None:
        icon = Gtk.Image.new_from_icon_name(icon_name, Gtk.IconSize.SMALL_TOOLBAR)
        grid.attach(icon, 0, row, 1, 1)

        adjustment = Gtk.Adjustment(value=value, lower=0, upper=100,
                                    step_increment=1, page_increment=1, page_size=0)
        scale = Gtk.Scale(orientation=Gtk.Orientation.HORIZONTAL, adjustment=adjustment)
        scale.set_draw_value(False)
        scale.set_hexpand(True)
        grid.attach(scale, 1, row, 1, 1)

        label = Gtk.Label(label=f"{value:.0f}%")
        label.get_style_context().add_class("brightness-value")
        grid.attach(label, 2, row, 1, 1)

        scale.connect("change-value", self._on_change_value, target, label)

    def _on_change_value(self, scale: Gtk.Scale, scroll: Gtk.ScrollType,
                         value: float, target: ControlTarget, label: Gtk.Label) -> bool:
        intent = ControlIntent(target, value)
        self.synchronizer.apply(intent)
        label.set_text(f"{intent.value:.0f}%")
        return False

    def show(self) -> None:
        self.dialog.show_all()


class BatteryApplet:
    """
    System tray applet that renders the synchronizer's snapshot and provides
    a menu with battery information and controls.
    """

    def __init__(self, synchronizer: DeviceSynchronizer, loop: asyncio.AbstractEventLoop) -> None:
        """Initialize the battery applet."""
        self.synchronizer = synchronizer
        self.loop = loop
        self.brightness_dialog: Optional[BrightnessDialog] = None

        # Apply CSS styling
        self._apply_css()

        # Create the indicator
        self.indicator = AppIndicator3.Indicator.new(
            config.APP_ID,
            synchronizer.snapshot.icon_name,
            AppIndicator3.IndicatorCategory.HARDWARE
        )
        self.indicator.set_status(AppIndicator3.IndicatorStatus.ACTIVE)

        # Build the menu
        self.menu = self._build_menu()
        self.indicator.set_menu(self.menu)

        # Render the default snapshot and follow every new one
        self.render(synchronizer.snapshot)
        synchronizer.subscribe(self.render)

    def _apply_css(self) -> None:
        """Apply CSS styling to the application."""
        css_provider = Gtk.CssProvider()
        css_provider.load_from_data(MENU_CSS.encode())
        Gtk.StyleContext.add_provider_for_screen(
            Gdk.Screen.get_default(),
            css_provider,
            Gtk.STYLE_PROVIDER_PRIORITY_APPLICATION
        )

    def _add_label_item(self, menu: Gtk.Menu, text: str, style_class: str) -> Gtk.Label:
        item = Gtk.MenuItem()
        box = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=0)
        label = Gtk.Label(label=text)
        label.set_halign(Gtk.Align.START)
        label.get_style_context().add_class(style_class)
        box.pack_start(label, False, False, 0)
        item.add(box)
        item.set_sensitive(False)
        menu.append(item)
        return label

    def _build_menu(self) -> Gtk.Menu:
        """
        Build the dropdown menu for the indicator.

        Returns:
            A Gtk.Menu with battery information and controls.
        """
        menu = Gtk.Menu()

        self._add_label_item(menu, "Battery", "battery-header")
        self.time_label = self._add_label_item(menu, "Estimating...", "battery-time")

        menu.append(Gtk.SeparatorMenuItem())

        brightness_item = Gtk.MenuItem(label="Brightness…")
        brightness_item.connect("activate", self._on_brightness_clicked)
        menu.append(brightness_item)

        menu.append(Gtk.SeparatorMenuItem())

        settings_item = Gtk.MenuItem(label="Power Settings…")
        settings_item.connect("activate", self._on_power_settings_clicked)
        menu.append(settings_item)

        about_item = Gtk.MenuItem(label="About")
        about_item.connect("activate", self._on_about_clicked)
        menu.append(about_item)

        quit_item = Gtk.MenuItem(label="Quit")
        quit_item.connect("activate", self._on_quit_clicked)
        menu.append(quit_item)

        menu.show_all()
        return menu

    def render(self, snapshot: StateSnapshot) -> None:
        """Refresh the indicator and menu from a snapshot."""
        if self.synchronizer.error is not None:
            self.indicator.set_icon_full(config.UNAVAILABLE_ICON_NAME, "Battery")
            self.indicator.set_title("Power service unavailable")
            self.time_label.set_text("Power service unavailable")
            self.indicator.set_label("", "")
            return

        summary = battery_summary(snapshot)
        self.indicator.set_icon_full(snapshot.icon_name, "Battery")
        self.indicator.set_title(summary)
        self.time_label.set_text(summary)

        if config.SHOW_PERCENTAGE_LABEL:
            self.indicator.set_label(percentage_label(snapshot), "100%")
        else:
            self.indicator.set_label("", "")

    def on_sync_finished(self, task: asyncio.Task) -> None:
        """Re-render once the synchronizer gives up, so its error is shown."""
        if task.cancelled():
            return
        err = task.exception()
        if err is not None:
            logger.error("Device synchronizer stopped", exc_info=err)
        if self.synchronizer.error is not None:
            self.render(self.synchronizer.snapshot)

    def send_notification(self, title: str, message: str, urgency: str = "normal") -> None:
        """
        Send a desktop notification using notify-send.

        Args:
            title: Notification title.
            message: Notification body text.
            urgency: Notification urgency (low, normal, critical).
        """
        try:
            subprocess.run(
                ["notify-send", "-u", urgency, "-i", "battery", title, message],
                timeout=5
            )
        except (subprocess.SubprocessError, FileNotFoundError) as err:
            logger.warning("Could not send notification: %s", err)

    def _on_brightness_clicked(self, widget: Gtk.MenuItem) -> None:
        """Open the brightness dialog."""
        self.brightness_dialog = BrightnessDialog(self.synchronizer)
        self.brightness_dialog.show()

    def _on_power_settings_clicked(self, widget: Gtk.MenuItem) -> None:
        """Open the desktop's power settings."""
        desktop = detect_desktop_environment()

        candidates = [config.PREFERRED_SETTINGS_COMMAND]
        if desktop in config.SETTINGS_COMMANDS:
            candidates.append(config.SETTINGS_COMMANDS[desktop])
        candidates.extend(config.SETTINGS_COMMANDS.values())

        for cmd in candidates:
            try:
                subprocess.Popen(cmd, start_new_session=True)
                return
            except (FileNotFoundError, OSError):
                continue

        logger.warning("No power settings tool found")
        self.send_notification(
            "Power Settings",
            "Could not open system power settings.",
            "normal"
        )

    def _on_about_clicked(self, widget: Gtk.MenuItem) -> None:
        """Handle about button click."""
        about = Gtk.AboutDialog()
        about.set_program_name("Battery Applet")
        about.set_version("0.1.0")
        about.set_comments("Battery status and brightness controls backed by UPower.")
        about.set_logo_icon_name("battery-full-symbolic")
        about.set_license_type(Gtk.License.MIT_X11)
        about.connect("response", lambda d, r: d.destroy())
        about.show()

    def _on_quit_clicked(self, widget: Gtk.MenuItem) -> None:
        """Handle quit button click."""
        self.loop.stop()


def detect_desktop_environment() -> str:
    """
    Detect the current desktop environment.

    Returns:
        Desktop environment name (cosmic, gnome, kde, xfce, cinnamon, mate
        or unknown).
    """
    desktop = os.environ.get('XDG_CURRENT_DESKTOP', '').lower()
    session = os.environ.get('DESKTOP_SESSION', '').lower()

    if 'cosmic' in desktop or 'cosmic' in session:
        return 'cosmic'
    elif 'gnome' in desktop or 'gnome' in session or 'unity' in desktop:
        return 'gnome'
    elif 'kde' in desktop or 'plasma' in desktop or 'kde' in session:
        return 'kde'
    elif 'xfce' in desktop or 'xfce' in session:
        return 'xfce'
    elif 'cinnamon' in desktop or 'cinnamon' in session:
        return 'cinnamon'
    elif 'mate' in desktop or 'mate' in session:
        return 'mate'
    else:
        return 'unknown'


def _start_sync(applet: BatteryApplet) -> None:
    task = applet.synchronizer.start()
    task.add_done_callback(applet.on_sync_finished)


def main() -> None:
    """Main entry point for the battery applet."""
    # Check if running on a system with a display
    if not os.environ.get('DISPLAY') and not os.environ.get('WAYLAND_DISPLAY'):
        print("Error: No display server found. This application requires X11 or Wayland.")
        sys.exit(1)

    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)

    policy = GLibEventLoopPolicy()
    asyncio.set_event_loop_policy(policy)
    loop = policy.get_event_loop()

    synchronizer = DeviceSynchronizer(upower.connect, upower.resolve_display_device)
    applet = BatteryApplet(synchronizer, loop)
    loop.call_soon(_start_sync, applet)

    try:
        loop.run_forever()
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)


if __name__ == "__main__":
    main()
