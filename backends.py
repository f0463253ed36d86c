"""Collaborator backend loading from REWARDMAN settings."""

from django.utils.module_loading import import_string

from rewardman.conf import rewardman_settings


def _load(path: str):
    return import_string(path)()


def get_reward_backend():
    return _load(rewardman_settings.REWARD_BACKEND)


def get_notification_backend():
    return _load(rewardman_settings.NOTIFICATION_BACKEND)


def get_identity_resolver():
    return _load(rewardman_settings.IDENTITY_BACKEND)


def get_fulfillment_backend():
    return _load(rewardman_settings.FULFILLMENT_BACKEND)
