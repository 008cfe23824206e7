# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later


class ShimAuthError(Exception):
    """Base class for errors raised by the auth subsystem."""


class CredentialStoreError(ShimAuthError):
    """The credential file could not be read or written."""
