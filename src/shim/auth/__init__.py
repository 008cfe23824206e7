# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Authentication and sessions.

This package provides:
- Password hashing/verification (argon2)
- Flat-file credential store (username:hash per line)
- In-memory session store with fingerprint binding and expiry sweep
- Signed ``sessionID`` cookies (itsdangerous)
- AuthGateway, the request-level gate wrapped around protected routes
"""
