#!/usr/bin/env python3
from __future__ import annotations

from getpass import getpass

from shim.auth.credentials import CredentialStore
from shim.auth.passwords import length_problem
from shim.config import Settings
from shim.errors import CredentialStoreError


def main() -> None:
    settings = Settings.from_env()
    store = CredentialStore(settings.users_path, debug=settings.debug)

    username = input("Username: ").strip()
    if username in store:
        raise SystemExit(f"User {username} already exists")

    pw1 = getpass("Password: ")
    pw2 = getpass("Repeat password: ")
    if pw1 != pw2:
        raise SystemExit("Passwords don't match")
    problem = length_problem(pw1)
    if problem:
        raise SystemExit(problem)

    try:
        ok = store.register(username, pw1)
    except CredentialStoreError as e:
        raise SystemExit(str(e))
    if not ok:
        raise SystemExit(f"Could not register {username!r}")
    print(f"OK -> {store.path}")


if __name__ == "__main__":
    main()
