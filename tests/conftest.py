import pytest


@pytest.fixture(autouse=True)
def reset_metrics():
    from recognition import monitoring

    monitoring.reset_for_tests()
    yield
    monitoring.reset_for_tests()


@pytest.fixture(autouse=True)
def reset_session_registry():
    from recognition.registry import set_session_registry

    set_session_registry(None)
    yield
    set_session_registry(None)


@pytest.fixture
def clear_cache():
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()


@pytest.fixture(scope="session", autouse=True)
def close_database_connections():
    """Close database connections at the end of the run.

    Prevents the 'database is being accessed by other users' error during
    teardown when PostgreSQL is used.
    """
    yield
    from django.db import connections

    for conn in connections.all():
        conn.close()


@pytest.fixture
def make_user(db):
    """Create an account with a school role profile."""

    from django.contrib.auth.models import User

    from users.models import UserProfile

    def _make(username: str, role: str, **fields):
        user = User.objects.create_user(username=username, password="Pass-1234!", **fields)
        UserProfile.objects.create(user=user, role=role)
        return user

    return _make


@pytest.fixture
def api_client():
    from rest_framework.test import APIClient

    return APIClient()
