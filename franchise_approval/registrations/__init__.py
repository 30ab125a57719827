"""Franchise registration review: state machine, store and Slack flow."""

from .state import (
    Approve,
    Command,
    Decision,
    Notify,
    Outcome,
    ProvisionAccess,
    Reject,
    RequestPageGeneration,
    Revert,
    SideEffect,
    decide,
)
from .store import RegistrationRecord, RegistrationStore

__all__ = [
    "Approve",
    "Command",
    "Decision",
    "Notify",
    "Outcome",
    "ProvisionAccess",
    "Reject",
    "RegistrationRecord",
    "RegistrationStore",
    "RequestPageGeneration",
    "Revert",
    "SideEffect",
    "decide",
]
