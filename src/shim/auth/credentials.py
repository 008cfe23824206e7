# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Flat-file credential store.

The backing file holds one ``username:hash`` record per line. The in-memory
map is the source of truth for reads; writes go to the file first and only
then to memory, so a failed write leaves both unchanged.
"""

from __future__ import annotations

import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from shim.auth.passwords import hash_password, verify_password
from shim.errors import CredentialStoreError
from shim.logging_config import get_logger

logger = get_logger(__name__)

SEPARATOR = ":"


def parse_line(line: str) -> Optional[Tuple[str, str]]:
    """Return (username, hash) for a well-formed record line, else None."""
    parts = line.strip().split(SEPARATOR)
    if len(parts) != 2:
        return None
    username, hash_value = parts[0].strip(), parts[1].strip()
    if not username or not hash_value:
        return None
    return username, hash_value


def valid_username(username: str) -> bool:
    if not username or SEPARATOR in username:
        return False
    return not any(ch.isspace() for ch in username)


class CredentialStore:
    def __init__(self, path: Union[str, Path], *, debug: bool = False) -> None:
        self.path = Path(path)
        self.debug = debug
        self._users: Dict[str, str] = {}
        self._write_lock = threading.Lock()
        self.reload()

    def reload(self) -> None:
        """(Re)read the backing file. A missing file means an empty store."""
        with self._write_lock:
            self._users = self._read_file()
        logger.info("Loaded %d user(s) from %s", len(self._users), self.path)

    def _read_file(self) -> Dict[str, str]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("No credential file at %s yet, starting empty", self.path)
            return {}
        except OSError as e:
            raise CredentialStoreError(f"Cannot read {self.path}: {e}") from e

        users: Dict[str, str] = {}
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            rec = parse_line(line)
            if rec is None:
                logger.warning("Skipping malformed line %d in %s", lineno, self.path)
                continue
            users[rec[0]] = rec[1]
        return users

    def __contains__(self, username: object) -> bool:
        return username in self._users

    def __len__(self) -> int:
        return len(self._users)

    def usernames(self) -> List[str]:
        return sorted(self._users)

    def verify_password(self, username: str, plain: str) -> bool:
        hash_value = self._users.get(username)
        if hash_value is None:
            return False
        return verify_password(hash_value, plain)

    def register(self, username: str, plain: str) -> bool:
        """Add a user. False when the name is taken or unusable.

        Raises CredentialStoreError when the file cannot be appended to.
        """
        if not valid_username(username) or not plain:
            return False
        with self._write_lock:
            if username in self._users:
                return False
            hash_value = hash_password(plain)
            self._append(f"{username}{SEPARATOR}{hash_value}\n")
            self._users[username] = hash_value
        if self.debug:
            logger.debug("Registered user[%s] with hash[%s]", username, hash_value)
        else:
            logger.info("Registered user %s", username)
        return True

    def change_password(self, username: str, old: str, new: str) -> bool:
        """Replace a user's hash when ``old`` verifies. Raises CredentialStoreError on I/O failure."""
        if not new:
            return False
        with self._write_lock:
            if not self.verify_password(username, old):
                logger.info("Failed to change the password of user %s", username)
                return False
            old_hash = self._users[username]
            new_hash = hash_password(new)
            updated = dict(self._users)
            updated[username] = new_hash
            self._rewrite(updated)
            self._users = updated
        if self.debug:
            logger.debug("Changed the password of user[%s] from[%s] to[%s]", username, old_hash, new_hash)
        else:
            logger.info("Changed the password of user %s", username)
        return True

    def _append(self, record: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(record)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise CredentialStoreError(f"Cannot write {self.path}: {e}") from e

    def _rewrite(self, users: Dict[str, str]) -> None:
        """Write the whole file to a sibling temp file, then rename it over the original."""
        body = "".join(f"{u}{SEPARATOR}{h}\n" for u, h in users.items())
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(body)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise CredentialStoreError(f"Cannot rewrite {self.path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
