"""Lecture Reminder notification backend.

Reminds lecturers and enrolled students of upcoming lectures over email,
SMS, push and calendar channels, with per-owner channel settings whose
credentials are kept encrypted at rest.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
