"""Status package: enums and exceptions for handling application state and errors.

This package defines:
    - Status: a StrEnum of possible application states
    - STATUS_MESSAGE: default user-facing messages per status
    - ErrorKind: transient/permanent classification of failures
    - BaseStatusException: base exception for status-driven error handling
    - Specific exceptions (e.g., NetworkException) tagged with statuses
"""
