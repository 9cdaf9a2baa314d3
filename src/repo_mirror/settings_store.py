"""Mirror target settings: flat key/value parsing and persistence.

Each repository's settings are a flat map of string keys to string values.
Mirror targets are spread over three keys sharing a suffix:

    mirror-url{suffix}, username{suffix}, password{suffix}

The suffix is "" for the first (legacy) entry and "0", "1", ... after a save,
since serialize() rewrites suffixes densely from the target index.
"""

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, MutableMapping, Protocol, Union

SETTING_MIRROR_URL = "mirror-url"
SETTING_USERNAME = "username"
SETTING_PASSWORD = "password"

# Reserved scope holding process-wide settings such as the codec key
PLUGIN_SCOPE = "__plugin__"


@dataclass(frozen=True)
class MirrorTarget:
    """A configured mirror remote.

    The password is plaintext on the settings-save path and ciphertext
    everywhere else; only the scheduler decrypts it.
    """

    url: str
    username: str = ""
    password: str = ""
    index: int = 0

    def __repr__(self) -> str:
        # Never show the password, even encrypted
        return (
            f"MirrorTarget(url={self.url!r}, username={self.username!r}, "
            f"password={'***' if self.password else ''!r}, index={self.index})"
        )


class Encryptor(Protocol):
    def encrypt(self, plaintext: str) -> str:
        ...


def parse(flat_settings: Mapping[str, str]) -> List[MirrorTarget]:
    """
    Build mirror targets from a flat settings map.

    Targets appear in the order their ``mirror-url`` keys were first seen,
    so serializing the result is stable.

    Args:
        flat_settings: Repository settings

    Returns:
        Targets with sequential indexes, passwords left as stored
    """
    targets = []

    for key in flat_settings:
        if not key.startswith(SETTING_MIRROR_URL):
            continue

        suffix = key[len(SETTING_MIRROR_URL):]
        targets.append(
            MirrorTarget(
                url=flat_settings.get(SETTING_MIRROR_URL + suffix) or "",
                username=flat_settings.get(SETTING_USERNAME + suffix) or "",
                password=flat_settings.get(SETTING_PASSWORD + suffix) or "",
                index=len(targets),
            )
        )

    return targets


def serialize(targets: List[MirrorTarget], codec: Encryptor) -> Dict[str, str]:
    """
    Flatten targets back into settings, encrypting passwords.

    Suffixes are rewritten to 0..N-1 following list order, which compacts
    entries deleted from the middle of the list.

    Args:
        targets: Validated targets with plaintext passwords
        codec: Credential codec used to encrypt non-empty passwords

    Returns:
        Flat settings map with exactly three keys per target
    """
    values: Dict[str, str] = {}

    for position, target in enumerate(targets):
        suffix = str(position)
        values[SETTING_MIRROR_URL + suffix] = target.url
        values[SETTING_USERNAME + suffix] = target.username
        values[SETTING_PASSWORD + suffix] = (
            codec.encrypt(target.password) if target.password else ""
        )

    return values


class SettingsStore:
    """Persists flat settings maps per repository in a JSON file."""

    def __init__(self, settings_file: Union[str, Path]):
        """
        Initialize SettingsStore.

        Args:
            settings_file: Path to JSON file for storing settings
        """
        self.settings_file = Path(settings_file).expanduser()

    def load(self, repository: str) -> Dict[str, str]:
        """
        Load the settings of a repository.

        Args:
            repository: Repository identifier

        Returns:
            Flat settings map, or empty dict if nothing is stored
        """
        return dict(self._load_all().get(repository, {}))

    def save(self, repository: str, flat_settings: Mapping[str, str]) -> None:
        """
        Replace the settings of a repository.

        Args:
            repository: Repository identifier
            flat_settings: Complete flat settings map (string values only)
        """
        all_settings = self._load_all()
        all_settings[repository] = {str(k): str(v) for k, v in flat_settings.items()}
        self._save_all(all_settings)

    def repositories(self) -> List[str]:
        """Get identifiers of all repositories with stored settings."""
        return [name for name in self._load_all() if name != PLUGIN_SCOPE]

    def plugin_settings(self) -> "PluginSettings":
        """Get a write-through view of the process-wide settings."""
        return PluginSettings(self)

    def _load_all(self) -> Dict[str, Dict[str, str]]:
        """Load all settings from file."""
        if not self.settings_file.exists():
            return {}

        with open(self.settings_file, "r") as f:
            data: Dict[str, Dict[str, str]] = json.load(f)
        return data

    def _save_all(self, all_settings: Dict[str, Dict[str, str]]) -> None:
        """
        Save all settings to file.

        The new content is written to a private temporary file in the same
        directory and renamed over the old one, so concurrent readers see
        either the previous or the new settings and the encryption key is
        never readable by other users.
        """
        self.settings_file.parent.mkdir(parents=True, exist_ok=True)

        # mkstemp creates the file with mode 0600
        fd, tmp_name = tempfile.mkstemp(
            dir=self.settings_file.parent,
            prefix=f".{self.settings_file.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(all_settings, f, indent=2)
            os.replace(tmp_name, self.settings_file)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class PluginSettings(MutableMapping[str, str]):
    """Process-wide settings; every write is persisted immediately."""

    def __init__(self, store: SettingsStore):
        self._store = store

    def _values(self) -> Dict[str, str]:
        return self._store.load(PLUGIN_SCOPE)

    def __getitem__(self, key: str) -> str:
        return self._values()[key]

    def __setitem__(self, key: str, value: str) -> None:
        values = self._values()
        values[key] = value
        self._store.save(PLUGIN_SCOPE, values)

    def __delitem__(self, key: str) -> None:
        values = self._values()
        del values[key]
        self._store.save(PLUGIN_SCOPE, values)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values())

    def __len__(self) -> int:
        return len(self._values())
