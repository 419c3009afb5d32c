"""Settings library for the session configuration.

Provides:
    - Schema validation and enforcement for the session.json structure.
    - Loading, saving, and reverting application settings.
"""

import json
import logging
import pathlib
import shutil
from typing import Dict, Any, Optional

from PySide6 import QtCore, QtWidgets

from ..status import status

app_name: str = 'FamilyLedger'

SESSION_SCHEMA: Dict[str, Any] = {
    'server': {
        'type': dict,
        'required': True,
        'item_schema': {
            'url': {'type': str, 'required': True},
            'timeout': {'type': int, 'required': True, 'min': 1},
        }
    },
    'auth': {
        'type': dict,
        'required': True,
        'item_schema': {
            'token': {'type': str, 'required': True},
        }
    },
    'sync': {
        'type': dict,
        'required': True,
        'item_schema': {
            'max_attempts': {'type': int, 'required': True, 'min': 1},
            'retry_delay_ms': {'type': int, 'required': True, 'min': 0},
            'stale_after_minutes': {'type': int, 'required': True, 'min': 0},
            'staleness_check_interval_minutes': {'type': int, 'required': True, 'min': 0},
            'sync_on_focus': {'type': bool, 'required': True},
            'force_sync_timeout': {'type': int, 'required': True, 'min': 0},
        }
    },
    'cache': {
        'type': dict,
        'required': True,
        'item_schema': {
            'recent_expenses_limit': {'type': int, 'required': True, 'min': 1},
        }
    },
}


def _validate_section(section_name: str, section: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    """Validate a single section of the session configuration.

    Args:
        section_name: Name of the section, used in error messages.
        section: The section's data.
        item_schema: Dict describing required fields, types, and lower bounds.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If a required field is missing or below its minimum.
    """
    logging.debug(f'Validating "{section_name}" section.')
    for field, field_specs in item_schema.items():
        if field not in section:
            if field_specs['required']:
                msg = f'Section "{section_name}" missing "{field}".'
                logging.error(msg)
                raise ValueError(msg)
            continue

        value = section[field]
        # bool is a subclass of int, reject it for numeric fields
        if (not isinstance(value, field_specs['type'])
                or (field_specs['type'] is int and isinstance(value, bool))):
            msg = (
                f'Section "{section_name}" field "{field}" must be {field_specs["type"]}, '
                f'got {type(value)}.'
            )
            logging.error(msg)
            raise TypeError(msg)

        if 'min' in field_specs and value < field_specs['min']:
            msg = f'Section "{section_name}" field "{field}" must be >= {field_specs["min"]}, got {value}.'
            logging.error(msg)
            raise ValueError(msg)


class ConfigPaths:
    """Manage application file paths and ensure the default template is in place.

    This class initializes paths for the configuration template and the user's
    session config, creating missing directories and copying the default template
    into the user data directory.
    """

    def __init__(self) -> None:
        QtWidgets.QApplication.setApplicationName(app_name)
        QtWidgets.QApplication.setOrganizationName('')
        logging.debug(f'Setting application name: {app_name}')

        # Get the app data directory
        p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.AppDataLocation)
        app_data_dir = pathlib.Path(p)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.template_dir: pathlib.Path = pathlib.Path(__file__).parent.parent / 'config'
        self.session_template: pathlib.Path = self.template_dir / 'session.json.template'

        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.session_path: pathlib.Path = self.config_dir / 'session.json'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Verify the template exists and prepare the configuration directory.

        Raises:
            FileNotFoundError: If the template directory or file is missing.
        """
        logging.debug(f'Verifying required directories and templates in {self.template_dir}')
        if not self.template_dir.exists():
            msg: str = f'Missing template directory: {self.template_dir}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        if not self.session_template.exists():
            msg = f'Missing session template: {self.session_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)

        if not self.config_dir.exists():
            logging.debug(f'Creating config directory: {self.config_dir}')
            self.config_dir.mkdir(parents=True, exist_ok=True)

        # Ensure a valid config exists even if we haven't yet set it up
        if not self.session_path.exists():
            logging.debug(f'Copying default session config from template to {self.session_path}')
            shutil.copy(self.session_template, self.session_path)

    def revert_session_to_template(self) -> None:
        """Restore session.json from the default template file.

        Raises:
            FileNotFoundError: If the session template file is missing.
        """
        logging.debug(f'Reverting session config to template: {self.session_template}')
        if not self.session_template.exists():
            msg: str = f'Session template not found: {self.session_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        shutil.copy(self.session_template, self.session_path)


class SettingsAPI(ConfigPaths):
    """
    Provides an interface to get/set/revert/save session.json sections.
    """

    def __init__(self, session_path: Optional[str] = None) -> None:
        """Initialize SettingsAPI and load the session data.

        Args:
            session_path: Optional path to a custom session.json file.
        """
        super().__init__()

        self.session_path: pathlib.Path = pathlib.Path(session_path) if session_path else self.session_path

        self.session_data: Dict[str, Any] = {}
        for k in SESSION_SCHEMA.keys():
            self.session_data[k] = {}

        self.init_data()

    @QtCore.Slot()
    def init_data(self) -> None:
        """Reload the session data, emitting config change signals."""
        self.load_session()

        from ..ui.actions import signals
        for section in SESSION_SCHEMA.keys():
            signals.configSectionChanged.emit(section)

    def load_session(self) -> Dict[str, Any]:
        """Load session.json from disk and validate against schema.

        Returns:
            The loaded session data dictionary.

        Raises:
            status.SessionConfigNotFoundException: If session.json is missing.
            status.SessionConfigInvalidException: If JSON parsing or validation fails.
        """
        logging.debug(f'Loading session config from "{self.session_path}"')
        if not self.session_path.exists():
            raise status.SessionConfigNotFoundException(str(self.session_path))

        try:
            with self.session_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
            self.validate_session_data(data=data)
        except status.SessionConfigInvalidException:
            raise
        except (ValueError, TypeError) as ex:
            raise status.SessionConfigInvalidException(str(ex)) from ex

        self.session_data = data
        return self.session_data

    def validate_session_data(self, data: Dict[str, Any] = None) -> None:
        """Validate session data against the defined SESSION_SCHEMA.

        Args:
            data (dict, optional): Session data to validate. Defaults to self.session_data.

        Raises:
            status.SessionConfigInvalidException: If a required section is missing or has the wrong type.
            TypeError, ValueError: If a field inside a section is invalid.
        """
        if data is None:
            data = self.session_data
        if not data:
            raise status.SessionConfigInvalidException('Session data is empty.')

        logging.debug('Validating session data against schema.')
        for field, specs in SESSION_SCHEMA.items():
            if specs.get('required') and field not in data:
                raise status.SessionConfigInvalidException(f'Missing required field: {field}')

            if field not in data:
                continue

            if not isinstance(data[field], specs['type']):
                msg = f'Field "{field}" must be {specs["type"]}, got {type(data[field])}.'
                raise status.SessionConfigInvalidException(msg)

            _validate_section(field, data[field], specs['item_schema'])

        logging.debug('Session data is valid.')

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of a configuration section.

        Args:
            section_name: Section name (key from the session schema).

        Returns:
            A copied dict of the requested section data.

        Raises:
            KeyError: If section_name is not in session_data.
        """
        return self.session_data[section_name].copy()

    def set_section(self, section_name: str, new_data: Dict[str, Any]) -> None:
        """Replace and persist a configuration section.

        Args:
            section_name: Section to update.
            new_data: New data dict for the section.

        Raises:
            ValueError: If section_name is unrecognized or new_data is invalid.
            TypeError: If a field in new_data has the wrong type.
        """
        from ..ui.actions import signals

        if section_name not in SESSION_SCHEMA:
            msg: str = f'Unknown section_name for set: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        _validate_section(section_name, new_data, SESSION_SCHEMA[section_name]['item_schema'])

        logging.debug(f'Setting section "{section_name}".')
        self.session_data[section_name] = dict(new_data)
        self.save_section(section_name)

        signals.configSectionChanged.emit(section_name)

    def revert_section(self, section_name: str) -> None:
        """Revert a configuration section to its template default and save.

        Args:
            section_name: Section to revert.

        Raises:
            ValueError: If section_name is invalid or not present in the template.
        """
        from ..ui.actions import signals

        if section_name not in self.session_data:
            msg: str = f'Unknown section_name for revert: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.session_template.open('r', encoding='utf-8') as f:
            template_data: Dict[str, Any] = json.load(f)

        if section_name not in template_data:
            msg = f'No template-based revert logic for section "{section_name}".'
            logging.error(msg)
            raise ValueError(msg)

        self.session_data[section_name] = template_data[section_name]
        self.save_section(section_name)

        signals.configSectionChanged.emit(section_name)

    def save_section(self, section_name: str) -> None:
        """Persist a single configuration section to session.json.

        Args:
            section_name: The section to save.

        Raises:
            ValueError: If section_name is not recognized.
        """
        if section_name not in self.session_data:
            msg: str = f'Unknown section_name for save: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.session_path.open('r', encoding='utf-8') as f:
            original_data: Dict[str, Any] = json.load(f)

        new_data: Dict[str, Any] = original_data.copy()
        new_data[section_name] = self.session_data[section_name]

        with self.session_path.open('w', encoding='utf-8') as f:
            json.dump(new_data, f, indent=4, ensure_ascii=False)


settings: SettingsAPI = SettingsAPI()
