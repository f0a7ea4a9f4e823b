from __future__ import annotations

from typing import Optional

from PySide6.QtCore import Qt, Signal
from PySide6.QtGui import QCloseEvent, QColor, QPalette
from PySide6.QtWidgets import (
    QApplication,
    QCheckBox,
    QComboBox,
    QFileDialog,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QProgressBar,
    QPushButton,
    QSpinBox,
    QVBoxLayout,
    QWidget,
)

from backuptool.app.controllers.backup_controller import BackupController
from backuptool.core.errors import UserFacingError
from backuptool.services.app_state import FREQUENCIES, BackupRun, BackupSettings, SystemPreferences
from backuptool.services.mysql_connection import ConnectionCheckResult, ConnectionProfile
from backuptool.ui import message_dialogs
from backuptool.ui.log_panel import LogPanel

_ENGINE_CHOICES = (("Automatic", None), ("mysqldump", "mysqldump"), ("Built-in", "builtin"))


class MainWindow(QMainWindow):
    """Connection form, backup controls, progress and the activity log.

    Closing the window hides it to the tray when ``minimize_to_tray`` is on;
    ``request_quit`` closes it for real.
    """

    quit_requested = Signal()

    def __init__(self, controller: BackupController, *, tray_available: bool = True) -> None:
        super().__init__()
        self.setWindowTitle("MySQL Backup Tool")
        self._controller = controller
        self._tray_available = tray_available
        self._quitting = False
        self._syncing = False

        central = QWidget(self)
        self.setCentralWidget(central)
        root = QVBoxLayout(central)
        root.addWidget(self._build_connection_group())
        root.addWidget(self._build_backup_group())
        root.addWidget(self._build_system_group())
        root.addWidget(QLabel("Activity"))
        self.log_panel = LogPanel(self)
        root.addWidget(self.log_panel, stretch=1)

        controller.profile_changed.connect(self.show_profile)
        controller.backup_settings_changed.connect(self.show_backup_settings)
        controller.preferences_changed.connect(self.show_preferences)
        controller.connection_changed.connect(self.show_connection_state)
        controller.connection_tested.connect(self._on_connection_tested)
        controller.run_changed.connect(self.show_run)
        controller.backup_succeeded.connect(self._on_backup_succeeded)
        controller.error_raised.connect(self.show_error)

        self.show_connection_state(controller.is_connected)
        self.show_run(controller.current_run)

    # Building ---------------------------------------------------------
    def _build_connection_group(self) -> QGroupBox:
        box = QGroupBox("Database connection", self)
        form = QFormLayout(box)
        self.host_edit = QLineEdit()
        self.port_spin = QSpinBox()
        self.port_spin.setRange(1, 65535)
        self.user_edit = QLineEdit()
        self.password_edit = QLineEdit()
        self.password_edit.setEchoMode(QLineEdit.Password)
        self.database_edit = QLineEdit()
        form.addRow("Host", self.host_edit)
        form.addRow("Port", self.port_spin)
        form.addRow("Username", self.user_edit)
        form.addRow("Password", self.password_edit)
        form.addRow("Database", self.database_edit)

        row = QHBoxLayout()
        self.connection_label = QLabel()
        self.btn_save_connection = QPushButton("Save")
        self.btn_test_connection = QPushButton("Test connection")
        row.addWidget(self.connection_label, stretch=1)
        row.addWidget(self.btn_save_connection)
        row.addWidget(self.btn_test_connection)
        form.addRow(row)

        self.btn_save_connection.clicked.connect(self._on_save_connection)
        self.btn_test_connection.clicked.connect(self._on_test_connection)
        return box

    def _build_backup_group(self) -> QGroupBox:
        box = QGroupBox("Backup", self)
        form = QFormLayout(box)

        path_row = QHBoxLayout()
        self.path_edit = QLineEdit()
        self.btn_browse = QPushButton("Browse...")
        path_row.addWidget(self.path_edit, stretch=1)
        path_row.addWidget(self.btn_browse)
        form.addRow("Directory", path_row)

        self.auto_check = QCheckBox("Back up automatically")
        self.frequency_combo = QComboBox()
        for frequency in FREQUENCIES:
            self.frequency_combo.addItem(frequency.capitalize(), frequency)
        self.retention_spin = QSpinBox()
        self.retention_spin.setRange(0, 3650)
        self.retention_spin.setSpecialValueText("Keep forever")
        self.retention_spin.setSuffix(" days")
        self.engine_combo = QComboBox()
        for label, value in _ENGINE_CHOICES:
            self.engine_combo.addItem(label, value)
        form.addRow(self.auto_check)
        form.addRow("Frequency", self.frequency_combo)
        form.addRow("Retention", self.retention_spin)
        form.addRow("Engine", self.engine_combo)

        self.progress_bar = QProgressBar()
        self.progress_bar.setRange(0, 100)
        self.status_label = QLabel()
        self.last_backup_label = QLabel()
        form.addRow(self.progress_bar)
        form.addRow("Status", self.status_label)
        form.addRow("Last backup", self.last_backup_label)

        buttons = QHBoxLayout()
        self.btn_save_backup = QPushButton("Save settings")
        self.btn_open_folder = QPushButton("Open folder")
        self.btn_backup = QPushButton("Back up now")
        buttons.addWidget(self.btn_save_backup)
        buttons.addStretch(1)
        buttons.addWidget(self.btn_open_folder)
        buttons.addWidget(self.btn_backup)
        form.addRow(buttons)

        self.btn_browse.clicked.connect(self._on_browse)
        self.btn_save_backup.clicked.connect(self._on_save_backup_settings)
        self.btn_open_folder.clicked.connect(self._controller.open_backup_folder)
        self.btn_backup.clicked.connect(self._controller.start_backup)
        return box

    def _build_system_group(self) -> QGroupBox:
        box = QGroupBox("System", self)
        row = QHBoxLayout(box)
        self.dark_mode_check = QCheckBox("Dark mode")
        self.auto_start_check = QCheckBox("Launch at login")
        self.tray_check = QCheckBox("Minimize to tray on close")
        row.addWidget(self.dark_mode_check)
        row.addWidget(self.auto_start_check)
        row.addWidget(self.tray_check)
        row.addStretch(1)
        self.dark_mode_check.toggled.connect(self._on_dark_mode_toggled)
        self.auto_start_check.toggled.connect(self._on_auto_start_toggled)
        self.tray_check.toggled.connect(self._on_tray_toggled)
        return box

    # State -> widgets -------------------------------------------------
    def show_profile(self, profile: ConnectionProfile) -> None:
        self.host_edit.setText(profile.host)
        self.port_spin.setValue(profile.port)
        self.user_edit.setText(profile.username)
        self.password_edit.setText(profile.password)
        self.database_edit.setText(profile.database)

    def show_backup_settings(self, settings: BackupSettings) -> None:
        self.path_edit.setText(settings.path)
        self.auto_check.setChecked(settings.auto)
        index = self.frequency_combo.findData(settings.frequency)
        self.frequency_combo.setCurrentIndex(index if index >= 0 else 0)
        self.retention_spin.setValue(max(0, settings.retention_days))
        index = self.engine_combo.findData(settings.engine)
        self.engine_combo.setCurrentIndex(index if index >= 0 else 0)
        self.last_backup_label.setText(settings.last_backup_time or "Never")

    def show_preferences(self, preferences: SystemPreferences) -> None:
        self._syncing = True
        try:
            self.dark_mode_check.setChecked(preferences.dark_mode)
            self.auto_start_check.setChecked(preferences.auto_start)
            self.tray_check.setChecked(preferences.minimize_to_tray)
        finally:
            self._syncing = False
        apply_theme(preferences.dark_mode)

    def show_connection_state(self, connected: bool) -> None:
        self.connection_label.setText("Connected" if connected else "Not connected")
        self.connection_label.setStyleSheet("color: #2e7d32;" if connected else "color: #9b1c1c;")
        self._refresh_backup_button()

    def show_run(self, run: BackupRun) -> None:
        self.progress_bar.setValue(run.progress)
        self.progress_bar.setVisible(run.is_backing_up and 0 < run.progress < 100)
        status = run.status
        if run.current_table:
            status = f"{status} ({run.current_table})"
        self.status_label.setText(status)
        self._refresh_backup_button()

    def show_error(self, error: UserFacingError) -> None:
        if self.isVisible():
            message_dialogs.show_user_error(self, error)

    # Close policy -------------------------------------------------------
    def request_quit(self) -> None:
        self._quitting = True
        self.close()
        self.quit_requested.emit()

    def restore(self) -> None:
        self.showNormal()
        self.raise_()
        self.activateWindow()

    def closeEvent(self, event: QCloseEvent) -> None:  # noqa: N802 - Qt override
        if not self._quitting and self._tray_available and self._controller.preferences.minimize_to_tray:
            event.ignore()
            self.hide()
            return
        event.accept()
        if not self._quitting:
            self._quitting = True
            self.quit_requested.emit()

    # Widgets -> commands ------------------------------------------------
    def current_profile(self) -> ConnectionProfile:
        return ConnectionProfile(
            host=self.host_edit.text().strip(),
            port=self.port_spin.value(),
            username=self.user_edit.text().strip(),
            password=self.password_edit.text(),
            database=self.database_edit.text().strip(),
        )

    def _on_save_connection(self) -> None:
        self._controller.update_connection(self.current_profile())

    def _on_test_connection(self) -> None:
        if not self._controller.update_connection(self.current_profile()):
            return
        self.btn_test_connection.setEnabled(False)
        if not self._controller.test_connection():
            # No result will arrive to re-enable it
            self.btn_test_connection.setEnabled(True)

    def _on_connection_tested(self, result: ConnectionCheckResult) -> None:
        self.btn_test_connection.setEnabled(True)
        if not self.isVisible():
            return
        if result.connected:
            message_dialogs.show_info(self, "Connection", "Connected and the database exists.")
        elif result.error is not None:
            message_dialogs.show_user_error(self, result.error)
        elif result.success:
            message_dialogs.show_error(self, "Connection", "Connected, but the database does not exist.")
        else:
            message_dialogs.show_error(self, "Connection", result.error_message or "Connection failed.")

    def _on_browse(self) -> None:  # pragma: no cover - native dialog
        directory = QFileDialog.getExistingDirectory(self, "Choose backup directory", self.path_edit.text())
        if directory:
            self.path_edit.setText(directory)

    def _on_save_backup_settings(self) -> None:
        self._controller.update_backup_settings(
            path=self.path_edit.text().strip(),
            auto=self.auto_check.isChecked(),
            frequency=self.frequency_combo.currentData(),
            retention_days=self.retention_spin.value(),
            engine=self.engine_combo.currentData(),
        )

    def _on_backup_succeeded(self, path: str) -> None:
        self.status_label.setText(f"Saved to {path}")

    def _on_dark_mode_toggled(self, checked: bool) -> None:
        if not self._syncing:
            self._controller.set_dark_mode(checked)

    def _on_auto_start_toggled(self, checked: bool) -> None:
        if not self._syncing:
            self._controller.set_auto_start(checked)

    def _on_tray_toggled(self, checked: bool) -> None:
        if not self._syncing:
            self._controller.set_minimize_to_tray(checked)

    def _refresh_backup_button(self) -> None:
        run = self._controller.current_run
        self.btn_backup.setEnabled(self._controller.is_connected and not run.is_backing_up)
        self.btn_backup.setText("Backing up..." if run.is_backing_up else "Back up now")


def apply_theme(dark: bool, app: Optional[QApplication] = None) -> None:
    app = app or QApplication.instance()
    if app is None:
        return
    if not dark:
        app.setPalette(app.style().standardPalette())
        return
    palette = QPalette()
    palette.setColor(QPalette.Window, QColor(45, 45, 48))
    palette.setColor(QPalette.WindowText, Qt.white)
    palette.setColor(QPalette.Base, QColor(30, 30, 30))
    palette.setColor(QPalette.AlternateBase, QColor(45, 45, 48))
    palette.setColor(QPalette.Text, Qt.white)
    palette.setColor(QPalette.Button, QColor(55, 55, 58))
    palette.setColor(QPalette.ButtonText, Qt.white)
    palette.setColor(QPalette.Highlight, QColor(38, 79, 120))
    palette.setColor(QPalette.HighlightedText, Qt.white)
    app.setPalette(palette)


__all__ = ["MainWindow", "apply_theme"]
