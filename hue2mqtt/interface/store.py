"""
Credential persistence.

Credentials are kept in a small YAML mapping keyed by "user-<hub id>", so a
hub swapped for another one simply finds no credential and registers again.
"""

import logging
import os
from typing import Optional

import yaml


class CredentialStore:

    def __init__(self, path: str, logger: Optional[logging.Logger] = None):
        self.path = path
        self.logger = logger or logging.getLogger(__name__)

    def _read(self) -> dict:
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            return {}
        except yaml.YAMLError as e:
            self.logger.error(f"Credential store {self.path} is unreadable: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return str(value) if value else None

    def save(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            yaml.safe_dump(data, f, sort_keys=True)
        os.replace(tmp_path, self.path)
        self.logger.debug(f"Saved {key} to {self.path}")
